"""Configuration module: exports Settings, the YAML loader helpers, and a module-level singleton."""

from src.config.loader import load_config, settings_from_config
from src.config.settings import Settings

settings = Settings()

__all__ = ["Settings", "load_config", "settings", "settings_from_config"]
