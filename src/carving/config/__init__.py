"""
Configuration module for the carving pipeline.
"""

from .config_loader import CarverConfig
from .settings import CarverSettings, EngineConfig, ExtensionFilterOption

__all__ = ["CarverConfig", "CarverSettings", "EngineConfig", "ExtensionFilterOption"]
