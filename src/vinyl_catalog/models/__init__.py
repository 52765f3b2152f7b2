"""Data models for the vinyl catalog."""

from .config import CatalogConfig, StatisticsConfig, StorageConfig, load_config, save_config

__all__ = ["CatalogConfig", "StatisticsConfig", "StorageConfig", "load_config", "save_config"]
