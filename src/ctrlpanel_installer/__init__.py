"""ctrlpanel-installer package."""

from .config import AppConfig, load_config
from .models import DbEngine, InstallConfig, InstallOptions, ManagedFootprint

__all__ = [
    "AppConfig",
    "load_config",
    "DbEngine",
    "InstallConfig",
    "InstallOptions",
    "ManagedFootprint",
]

__version__ = "0.1.0"
