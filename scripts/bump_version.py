#!/usr/bin/env python3
"""Bump the ghsum version in pyproject.toml and the package.

Usage:
    python scripts/bump_version.py 0.2.0
    python scripts/bump_version.py          # show current version
"""

import re
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent

# Files carrying the version, with a regex whose group(1) is the prefix to keep
TARGETS = [
    ("pyproject.toml",    r'^(version\s*=\s*)"[^"]+"'),
    ("ghsum/__init__.py", r'^(__version__\s*=\s*)"[^"]+"'),
]


def current_version() -> str:
    text = (ROOT / "pyproject.toml").read_text()
    m = re.search(r'^version\s*=\s*"([^"]+)"', text, re.MULTILINE)
    if not m:
        raise RuntimeError("Cannot find version in pyproject.toml")
    return m.group(1)


def bump_file(path: Path, pattern: str, new_version: str) -> None:
    text = path.read_text()
    new_text, n = re.subn(pattern, rf'\g<1>"{new_version}"', text, count=1, flags=re.MULTILINE)
    if n == 0:
        raise RuntimeError(f"Pattern not found in {path}")
    path.write_text(new_text)


def main() -> None:
    old = current_version()

    if len(sys.argv) < 2:
        print(f"Current version: {old}")
        print("\nUsage: python scripts/bump_version.py <new-version>")
        return

    new = sys.argv[1]
    if new == old:
        print(f"Already at {old}")
        return

    for relpath, pattern in TARGETS:
        bump_file(ROOT / relpath, pattern, new)
        print(f"  {relpath}: {old} -> {new}")

    print(f"\nBumped {len(TARGETS)} files to {new}")


if __name__ == "__main__":
    main()
