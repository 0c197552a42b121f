"""Config management module exports."""

from .config_manager import ConfigManager, config_manager
from .config_models import AppSettings, FilePolicyConfig

__all__ = [
    "ConfigManager",
    "config_manager",
    "AppSettings",
    "FilePolicyConfig",
]
