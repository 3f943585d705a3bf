"""
Configuration for the bounded activity cache.

Fixed quota constants and key names are module-level so every component
agrees on them. Per-store overrides live in a TOML file in the store
directory.
"""

import os
import tomllib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

import tomli_w


CONFIG_FILENAME = "ghsum.toml"
CONFIG_VERSION = 1

# Admission limit for writes (kept below the platform quota)
SAFE_LIMIT = int(4.5 * 1024 * 1024)
# Theoretical ceiling, used only for usage reporting
REPORT_LIMIT = 5 * 1024 * 1024
NEAR_LIMIT_PERCENT = 80

# Key names
SEARCH_RESULTS_KEY = "github-search-results"
EVENTS_RESULTS_KEY = "github-events-results"
RAW_EVENTS_KEY = "github-raw-events-results"
RAW_DATA_KEY = "github-raw-data-storage"  # legacy, raw data now lives in the record store
LAST_SEARCH_PARAMS_KEY = "github-last-search-params"  # legacy cache validation
ITEM_UI_STATE_KEY = "github-item-ui-state"
UI_SETTINGS_KEY = "github-ui-settings"
FORM_SETTINGS_KEY = "github-form-settings"
USERNAME_CACHE_KEY = "github-username-cache"

SECRET_FIELD = "githubToken"

# Stale raw caches first, then UI preferences
EVICTION_PRIORITY: tuple[str, ...] = (
    SEARCH_RESULTS_KEY,
    EVENTS_RESULTS_KEY,
    RAW_EVENTS_KEY,
    RAW_DATA_KEY,
    ITEM_UI_STATE_KEY,
    UI_SETTINGS_KEY,
)

PURGE_KEYS: tuple[str, ...] = (
    SEARCH_RESULTS_KEY,
    EVENTS_RESULTS_KEY,
    RAW_EVENTS_KEY,
    RAW_DATA_KEY,
    LAST_SEARCH_PARAMS_KEY,
    ITEM_UI_STATE_KEY,
    UI_SETTINGS_KEY,
    FORM_SETTINGS_KEY,
    USERNAME_CACHE_KEY,
)


@dataclass(frozen=True)
class QuotaBudget:
    """Byte ceilings: ``safe_limit`` for admission, ``report_limit`` for stats."""
    safe_limit: int = SAFE_LIMIT
    report_limit: int = REPORT_LIMIT
    near_limit_percent: float = NEAR_LIMIT_PERCENT

    def __post_init__(self):
        if self.safe_limit >= self.report_limit:
            raise ValueError(
                f"safe_limit ({self.safe_limit}) must be below report_limit ({self.report_limit})"
            )


DEFAULT_BUDGET = QuotaBudget()


def get_default_store_path() -> Path:
    """Store directory: GHSUM_STORE_PATH or ~/.ghsum."""
    env = os.environ.get("GHSUM_STORE_PATH")
    if env:
        return Path(env).expanduser()
    return Path.home() / ".ghsum"


@dataclass
class StoreConfig:
    """Complete store configuration."""
    path: Path
    version: int = CONFIG_VERSION
    created: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    safe_limit: int = SAFE_LIMIT
    report_limit: int = REPORT_LIMIT
    # Quota the key-value store itself enforces; may be lower than report_limit
    hard_limit: int = REPORT_LIMIT
    eviction_priority: list[str] = field(default_factory=lambda: list(EVICTION_PRIORITY))
    secret_field: str = SECRET_FIELD

    @property
    def config_path(self) -> Path:
        """Path to the TOML config file."""
        return self.path / CONFIG_FILENAME

    @property
    def budget(self) -> QuotaBudget:
        return QuotaBudget(safe_limit=self.safe_limit, report_limit=self.report_limit)

    def exists(self) -> bool:
        """Check if config file exists."""
        return self.config_path.exists()


def load_config(store_path: Path) -> StoreConfig:
    """
    Load configuration from a store directory.

    Raises:
        FileNotFoundError: If config doesn't exist
        ValueError: If config is invalid
    """
    config_path = store_path / CONFIG_FILENAME

    if not config_path.exists():
        raise FileNotFoundError(f"Config not found: {config_path}")

    with open(config_path, "rb") as f:
        data = tomllib.load(f)

    store = data.get("store", {})
    version = store.get("version", 1)
    if version > CONFIG_VERSION:
        raise ValueError(f"Config version {version} is newer than supported ({CONFIG_VERSION})")

    quota = data.get("quota", {})
    cache = data.get("cache", {})
    config = StoreConfig(
        path=store_path,
        version=version,
        created=store.get("created", ""),
        safe_limit=int(quota.get("safe_limit", SAFE_LIMIT)),
        report_limit=int(quota.get("report_limit", REPORT_LIMIT)),
        hard_limit=int(quota.get("hard_limit", REPORT_LIMIT)),
        eviction_priority=list(cache.get("eviction_priority", EVICTION_PRIORITY)),
        secret_field=cache.get("secret_field", SECRET_FIELD),
    )
    # Raises ValueError unless safe_limit < report_limit
    QuotaBudget(safe_limit=config.safe_limit, report_limit=config.report_limit)
    return config


def save_config(config: StoreConfig) -> None:
    """
    Save configuration to the store directory.

    Creates the directory if it doesn't exist.
    """
    config.path.mkdir(parents=True, exist_ok=True)

    data = {
        "store": {
            "version": config.version,
            "created": config.created,
        },
        "quota": {
            "safe_limit": config.safe_limit,
            "report_limit": config.report_limit,
            "hard_limit": config.hard_limit,
        },
        "cache": {
            "eviction_priority": list(config.eviction_priority),
            "secret_field": config.secret_field,
        },
    }

    with open(config.config_path, "wb") as f:
        tomli_w.dump(data, f)


def load_or_create_config(store_path: Path) -> StoreConfig:
    """
    Load existing config or create a new one with defaults.

    This is the main entry point for config management.
    """
    if (store_path / CONFIG_FILENAME).exists():
        return load_config(store_path)
    config = StoreConfig(path=store_path)
    save_config(config)
    return config
