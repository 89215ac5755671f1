"""
Configuration management for brainsearch stores.

The configuration is stored as a TOML file in the store directory.
It names the embedding provider and the retrieval limits.
"""

import os
import tomllib
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import tomli_w


CONFIG_FILENAME = "brainsearch.toml"
CONFIG_VERSION = 1
DEFAULT_STORE_DIR = ".brainsearch"


@dataclass
class ProviderConfig:
    """Configuration for a single provider."""
    name: str
    params: dict[str, Any] = field(default_factory=dict)


@dataclass
class SearchSettings:
    """Limits and thresholds for search, relations and chunking."""
    default_limit: int = 10
    max_limit: int = 100
    # Hard cap on candidates scored per request, independent of limit
    max_candidates: int = 1000
    max_related: int = 50
    tag_candidate_limit: int = 100
    max_keywords: int = 10
    chunk_size: int = 1000
    chunk_overlap: int = 200
    chunk_threshold: int = 1000
    profile_min_score: float = 0.7

    @classmethod
    def from_dict(cls, data: dict) -> "SearchSettings":
        """Build settings from a TOML section, ignoring unknown keys."""
        defaults = {f.name: f.default for f in fields(cls)}
        values = {}
        for key, value in data.items():
            if key not in defaults:
                continue
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError(f"Search setting {key!r} must be a number: {value!r}")
            # Counts and sizes are used as slice bounds and SQL LIMITs
            if isinstance(defaults[key], int) and not isinstance(value, int):
                raise ValueError(f"Search setting {key!r} must be an integer: {value!r}")
            values[key] = value
        settings = cls(**values)
        if settings.chunk_overlap >= settings.chunk_size:
            raise ValueError("chunk_overlap must be smaller than chunk_size")
        return settings


@dataclass
class StoreConfig:
    """Complete store configuration."""
    path: Path
    version: int = CONFIG_VERSION
    created: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    # None means keyword-only operation
    embedding: Optional[ProviderConfig] = field(
        default_factory=lambda: ProviderConfig("sentence-transformers")
    )
    search: SearchSettings = field(default_factory=SearchSettings)

    @property
    def config_path(self) -> Path:
        """Path to the TOML config file."""
        return self.path / CONFIG_FILENAME

    @property
    def db_path(self) -> Path:
        """Path to the SQLite item database."""
        return self.path / "items.db"

    def exists(self) -> bool:
        """Check if config file exists."""
        return self.config_path.exists()


def get_default_store_path() -> Path:
    """
    Resolve the store directory.

    Priority: BRAINSEARCH_STORE_PATH, then ~/.brainsearch
    """
    env_path = os.environ.get("BRAINSEARCH_STORE_PATH")
    if env_path:
        return Path(env_path).expanduser().resolve()
    return Path.home() / DEFAULT_STORE_DIR


def detect_default_embedding() -> ProviderConfig:
    """
    Pick the embedding provider for a new store.

    OpenAI when an API key is available (BRAINSEARCH_OPENAI_API_KEY or
    OPENAI_API_KEY), otherwise local sentence-transformers.
    """
    has_openai_key = bool(
        os.environ.get("BRAINSEARCH_OPENAI_API_KEY") or
        os.environ.get("OPENAI_API_KEY")
    )
    if has_openai_key:
        return ProviderConfig("openai", {"model": "text-embedding-3-small"})
    return ProviderConfig("sentence-transformers")


def create_default_config(store_path: Path) -> StoreConfig:
    """Create a new config with auto-detected defaults."""
    return StoreConfig(path=store_path, embedding=detect_default_embedding())


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

    version = data.get("store", {}).get("version", 1)
    if version > CONFIG_VERSION:
        raise ValueError(f"Config version {version} is newer than supported ({CONFIG_VERSION})")

    embedding = None
    section = data.get("embedding")
    if section and section.get("name"):
        embedding = ProviderConfig(
            name=section["name"],
            params={k: v for k, v in section.items() if k != "name"},
        )

    return StoreConfig(
        path=store_path,
        version=version,
        created=data.get("store", {}).get("created", ""),
        embedding=embedding,
        search=SearchSettings.from_dict(data.get("search", {})),
    )


def save_config(config: StoreConfig) -> None:
    """
    Save configuration to the store directory.

    Creates the directory if it doesn't exist.
    """
    config.path.mkdir(parents=True, exist_ok=True)

    data: dict[str, Any] = {
        "store": {
            "version": config.version,
            "created": config.created,
        },
    }
    if config.embedding is not None:
        section = {"name": config.embedding.name}
        section.update(config.embedding.params)
        data["embedding"] = section
    data["search"] = asdict(config.search)

    with open(config.config_path, "wb") as f:
        tomli_w.dump(data, f)


def load_or_create_config(store_path: Path) -> StoreConfig:
    """
    Load existing config or create a new one with defaults.

    This is the main entry point for config management.
    """
    if (store_path / CONFIG_FILENAME).exists():
        return load_config(store_path)
    config = create_default_config(store_path)
    save_config(config)
    return config
