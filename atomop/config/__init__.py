"""Configuration management."""

from atomop.config.env_loader import EnvStatus, load_env_or_exit
from atomop.config.settings import Settings, get_settings

__all__ = ["Settings", "get_settings", "EnvStatus", "load_env_or_exit"]
