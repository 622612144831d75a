"""
Configuration management for similarity index stores.

The configuration is stored as a TOML file in the store directory.
It specifies the embedding provider, the credential passed to it, and
the tunables for chunking, filtering, and ignored folders.
"""

import os
import tomllib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import tomli_w


CONFIG_FILENAME = "silicon.toml"
CONFIG_VERSION = 1

API_KEY_PLACEHOLDER = "YOUR_API_KEY_HERE"

DEFAULT_EMBEDDING_PROVIDER = "openai"
DEFAULT_EMBEDDING_MODEL = "text-embedding-3-large"
DEFAULT_THRESHOLD = 0.5
DEFAULT_MAX_CHUNK_CHARS = 2000
DEFAULT_PRECISION = 6
DEFAULT_OVERSAMPLE = 20


@dataclass
class ProviderConfig:
    """Configuration for a single provider."""
    name: str
    params: dict[str, Any] = field(default_factory=dict)


def _default_embedding() -> ProviderConfig:
    return ProviderConfig(DEFAULT_EMBEDDING_PROVIDER, {"model": DEFAULT_EMBEDDING_MODEL})


@dataclass
class IndexConfig:
    """Complete store configuration."""
    path: Path
    version: int = CONFIG_VERSION
    created: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    embedding: ProviderConfig = field(default_factory=_default_embedding)
    api_key: str = API_KEY_PLACEHOLDER

    threshold: float = DEFAULT_THRESHOLD
    ignore_prefixes: list[str] = field(default_factory=list)
    vault: Optional[Path] = None

    max_chunk_chars: int = DEFAULT_MAX_CHUNK_CHARS
    precision: int = DEFAULT_PRECISION
    oversample: int = DEFAULT_OVERSAMPLE

    def __post_init__(self):
        validate_threshold(self.threshold)
        self.ignore_prefixes = clean_prefixes(self.ignore_prefixes)

    @property
    def config_path(self) -> Path:
        """Path to the TOML config file."""
        return self.path / CONFIG_FILENAME

    @property
    def db_path(self) -> Path:
        """Path to the SQLite record store."""
        return self.path / "silicon.db"

    @property
    def effective_api_key(self) -> str:
        """Credential passed to the provider: environment first, then stored."""
        return _env_api_key() or self.api_key

    @property
    def api_key_configured(self) -> bool:
        key = self.effective_api_key
        return bool(key) and API_KEY_PLACEHOLDER not in key

    def exists(self) -> bool:
        """Check if config file exists."""
        return self.config_path.exists()


def validate_threshold(value: float) -> None:
    if not 0.0 <= value <= 1.0:
        raise ValueError(f"threshold must be between 0 and 1 (got {value})")


def clean_prefixes(prefixes) -> list[str]:
    """
    Normalize the ignore list.

    Accepts a list or a comma-separated string. Blank entries are dropped:
    an empty prefix would otherwise match every document.
    """
    if isinstance(prefixes, str):
        prefixes = prefixes.split(",")
    return [p.strip() for p in prefixes if p and p.strip()]


def get_default_store_path() -> Path:
    """Store directory: SILICON_STORE_PATH, else ~/.silicon."""
    env = os.environ.get("SILICON_STORE_PATH")
    if env:
        return Path(env).expanduser().resolve()
    return Path.home() / ".silicon"


def _env_api_key() -> Optional[str]:
    return os.environ.get("SILICON_OPENAI_API_KEY") or os.environ.get("OPENAI_API_KEY")


def load_config(store_path: Path) -> IndexConfig:
    """
    Load configuration from a store directory.

    Environment credentials take precedence over the stored api_key.

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

    def parse_provider(section: dict) -> ProviderConfig:
        return ProviderConfig(
            name=section.get("name", ""),
            params={k: v for k, v in section.items() if k != "name"},
        )

    index = data.get("index", {})
    vault = index.get("vault")

    return IndexConfig(
        path=store_path,
        version=version,
        created=store.get("created", ""),
        embedding=parse_provider(data.get("embedding", {
            "name": DEFAULT_EMBEDDING_PROVIDER, "model": DEFAULT_EMBEDDING_MODEL,
        })),
        api_key=store.get("api_key", API_KEY_PLACEHOLDER),
        threshold=float(index.get("threshold", DEFAULT_THRESHOLD)),
        ignore_prefixes=index.get("ignore_prefixes", []),
        vault=Path(vault).expanduser() if vault else None,
        max_chunk_chars=int(index.get("max_chunk_chars", DEFAULT_MAX_CHUNK_CHARS)),
        precision=int(index.get("precision", DEFAULT_PRECISION)),
        oversample=int(index.get("oversample", DEFAULT_OVERSAMPLE)),
    )


def save_config(config: IndexConfig) -> None:
    """
    Save configuration to the store directory.

    Creates the directory if it doesn't exist. Credentials from the
    environment are never written to disk.
    """
    config.path.mkdir(parents=True, exist_ok=True)

    def provider_to_dict(p: ProviderConfig) -> dict:
        d = {"name": p.name}
        d.update(p.params)
        return d

    index: dict[str, Any] = {
        "threshold": config.threshold,
        "ignore_prefixes": list(config.ignore_prefixes),
        "max_chunk_chars": config.max_chunk_chars,
        "precision": config.precision,
        "oversample": config.oversample,
    }
    if config.vault is not None:
        index["vault"] = str(config.vault)

    data = {
        "store": {
            "version": config.version,
            "created": config.created,
            "api_key": config.api_key,
        },
        "embedding": provider_to_dict(config.embedding),
        "index": index,
    }

    with open(config.config_path, "wb") as f:
        tomli_w.dump(data, f)


def create_default_config(store_path: Path) -> IndexConfig:
    """Create a new config with defaults."""
    return IndexConfig(path=store_path)


def load_or_create_config(store_path: Path) -> IndexConfig:
    """
    Load existing config or create a new one with defaults.

    This is the main entry point for config management.
    """
    config_path = store_path / CONFIG_FILENAME

    if config_path.exists():
        return load_config(store_path)
    else:
        config = create_default_config(store_path)
        save_config(config)
        return config
