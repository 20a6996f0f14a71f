"""
Glossary store configuration.

Each store directory holds a ``termbook.toml`` naming the database file,
the reading provider used for search tokens, and the fuzzy-match
threshold. Missing keys fall back to defaults.
"""

import os
import tomllib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import tomli_w


CONFIG_FILENAME = "termbook.toml"
CONFIG_VERSION = 1
DEFAULT_DATABASE = "terms.db"
DEFAULT_TOKENIZER = "janome"
DEFAULT_THRESHOLD = 0.4


@dataclass
class ProviderConfig:
    """A provider name and the keyword arguments it is created with."""
    name: str
    params: dict[str, Any] = field(default_factory=dict)


@dataclass
class StoreConfig:
    """Settings for one store directory."""
    path: Path
    version: int = CONFIG_VERSION
    created: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    database: str = DEFAULT_DATABASE

    tokenizer: ProviderConfig = field(default_factory=lambda: ProviderConfig(DEFAULT_TOKENIZER))
    search_threshold: float = DEFAULT_THRESHOLD

    @property
    def config_path(self) -> Path:
        return self.path / CONFIG_FILENAME

    @property
    def database_path(self) -> Path:
        """The SQLite file; a relative ``database`` is resolved against the store."""
        db = Path(self.database).expanduser()
        return db if db.is_absolute() else self.path / db

    def exists(self) -> bool:
        return self.config_path.exists()

    def to_toml_dict(self) -> dict[str, Any]:
        return {
            "store": {
                "version": self.version,
                "created": self.created,
                "database": self.database,
            },
            "tokenizer": {"name": self.tokenizer.name, **self.tokenizer.params},
            "search": {"threshold": self.search_threshold},
        }


def get_default_store_path() -> Path:
    """
    Store directory used when none is given.

    TERMBOOK_STORE_PATH if set, otherwise ~/.termbook
    """
    env = os.environ.get("TERMBOOK_STORE_PATH")
    if env:
        return Path(env).expanduser().resolve()
    return Path.home() / ".termbook"


def create_default_config(store_path: Path) -> StoreConfig:
    return StoreConfig(path=store_path)


def _parse_threshold(search: dict[str, Any]) -> float:
    threshold = search.get("threshold", DEFAULT_THRESHOLD)
    if isinstance(threshold, bool) or not isinstance(threshold, (int, float)):
        raise ValueError(f"search.threshold must be between 0 and 1, got {threshold!r}")
    if not 0.0 <= threshold <= 1.0:
        raise ValueError(f"search.threshold must be between 0 and 1, got {threshold!r}")
    return float(threshold)


def _parse_tokenizer(section: dict[str, Any]) -> ProviderConfig:
    params = dict(section)
    name = params.pop("name", DEFAULT_TOKENIZER)
    return ProviderConfig(name=name, params=params)


def load_config(store_path: Path) -> StoreConfig:
    """
    Read ``termbook.toml`` from a store directory.

    Raises:
        FileNotFoundError: If the store has no config file
        ValueError: If the version is unsupported or a value is out of range
    """
    config_file = store_path / CONFIG_FILENAME
    if not config_file.exists():
        raise FileNotFoundError(f"No {CONFIG_FILENAME} in {store_path}")

    with open(config_file, "rb") as f:
        data = tomllib.load(f)

    store = data.get("store", {})
    version = store.get("version", CONFIG_VERSION)
    if version > CONFIG_VERSION:
        raise ValueError(
            f"{config_file} has version {version}, newer than supported ({CONFIG_VERSION})"
        )

    return StoreConfig(
        path=store_path,
        version=version,
        created=store.get("created", ""),
        database=store.get("database", DEFAULT_DATABASE),
        tokenizer=_parse_tokenizer(data.get("tokenizer", {})),
        search_threshold=_parse_threshold(data.get("search", {})),
    )


def save_config(config: StoreConfig) -> None:
    """Write ``termbook.toml``, creating the store directory if needed."""
    config.path.mkdir(parents=True, exist_ok=True)
    with open(config.config_path, "wb") as f:
        tomli_w.dump(config.to_toml_dict(), f)


def load_or_create_config(store_path: Path) -> StoreConfig:
    """Config for ``store_path``, writing a default one on first use."""
    if (store_path / CONFIG_FILENAME).exists():
        return load_config(store_path)
    config = create_default_config(store_path)
    save_config(config)
    return config
