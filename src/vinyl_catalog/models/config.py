"""Configuration model for the vinyl catalog."""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from ..exceptions import ConfigurationError

BACKENDS = ("memory", "file", "redis")

ENV_BACKEND = "VINYL_CATALOG_BACKEND"
ENV_DATA_DIR = "VINYL_CATALOG_DATA_DIR"
ENV_REDIS_URL = "VINYL_CATALOG_REDIS_URL"


@dataclass
class StorageConfig:
    """Configuration for the key-value store behind the catalogue."""
    backend: str = "file"  # "memory", "file" or "redis"
    data_directory: Path = field(default_factory=lambda: Path.home() / ".vinyl-catalog" / "data")
    redis_url: str = "redis://localhost:6379/0"
    key_prefix: str = "vinyl-catalog:"
    operation_timeout_seconds: float = 5.0
    retry_backoff_seconds: float = 0.1
    max_write_attempts: int = 3


@dataclass
class StatisticsConfig:
    """Configuration for the collection dashboard."""
    top_n: int = 10
    latest_additions: int = 10
    missing_data_entries: int = 20


@dataclass
class CatalogConfig:
    """Main configuration model."""
    storage: StorageConfig = field(default_factory=StorageConfig)
    statistics: StatisticsConfig = field(default_factory=StatisticsConfig)

    @classmethod
    def default(cls) -> "CatalogConfig":
        """Create a default configuration."""
        return cls()

    @classmethod
    def in_memory(cls) -> "CatalogConfig":
        """Configuration for tests and throwaway sessions."""
        return cls(storage=StorageConfig(backend="memory"))

    def validate(self) -> None:
        """Raise ConfigurationError for settings that cannot work."""
        if self.storage.backend not in BACKENDS:
            raise ConfigurationError(
                f"Unknown storage backend {self.storage.backend!r}; expected one of {', '.join(BACKENDS)}"
            )
        if self.storage.max_write_attempts < 1:
            raise ConfigurationError("max_write_attempts must be at least 1")
        if self.storage.operation_timeout_seconds <= 0:
            raise ConfigurationError("operation_timeout_seconds must be positive")


def _dataclass_to_dict(obj):
    """Convert dataclass to dict recursively."""
    from dataclasses import asdict, is_dataclass
    if is_dataclass(obj):
        return {key: _dataclass_to_dict(value) for key, value in asdict(obj).items()}
    elif isinstance(obj, Path):
        return str(obj)
    elif isinstance(obj, dict):
        return {key: _dataclass_to_dict(value) for key, value in obj.items()}
    elif isinstance(obj, list):
        return [_dataclass_to_dict(item) for item in obj]
    else:
        return obj


def _dict_to_dataclass(data, dataclass_type):
    """Convert dict to dataclass recursively."""
    from dataclasses import fields, is_dataclass
    if not is_dataclass(dataclass_type):
        return data

    kwargs = {}
    for f in fields(dataclass_type):
        if f.name not in data:
            continue
        if hasattr(f.type, '__dataclass_fields__'):
            kwargs[f.name] = _dict_to_dataclass(data[f.name], f.type)
        elif f.type is Path:
            kwargs[f.name] = Path(data[f.name]).expanduser()
        else:
            kwargs[f.name] = data[f.name]

    return dataclass_type(**kwargs)


def apply_environment(config: CatalogConfig, environ: Optional[Dict[str, str]] = None) -> CatalogConfig:
    """Override storage settings from VINYL_CATALOG_* environment variables."""
    environ = os.environ if environ is None else environ
    if environ.get(ENV_BACKEND):
        config.storage.backend = environ[ENV_BACKEND].strip().lower()
    if environ.get(ENV_DATA_DIR):
        config.storage.data_directory = Path(environ[ENV_DATA_DIR]).expanduser()
    if environ.get(ENV_REDIS_URL):
        config.storage.redis_url = environ[ENV_REDIS_URL]
    return config


def load_config(config_path: Optional[Path] = None, environ: Optional[Dict[str, str]] = None) -> CatalogConfig:
    """Load configuration from a JSON file (defaults when absent) and the environment."""
    if config_path is not None and Path(config_path).exists():
        try:
            with open(config_path, 'r') as f:
                config_data: Dict[str, Any] = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Cannot read config file {config_path}: {e}") from e
        try:
            config = _dict_to_dataclass(config_data, CatalogConfig)
        except TypeError as e:
            raise ConfigurationError(f"Invalid config file {config_path}: {e}") from e
    else:
        config = CatalogConfig.default()

    apply_environment(config, environ)
    config.validate()
    return config


def save_config(config: CatalogConfig, config_path: Path) -> None:
    """Save configuration to JSON file."""
    config_path = Path(config_path)
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, 'w') as f:
        json.dump(_dataclass_to_dict(config), f, indent=2)
