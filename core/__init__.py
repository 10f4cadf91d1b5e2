"""Core utilities and configuration for Bandwriter"""
from core.config import settings
from core.exceptions import BandwriterError, ConfigurationError, DefinitionError
from core.logging import get_logger

__all__ = [
    "settings",
    "get_logger",
    "BandwriterError",
    "ConfigurationError",
    "DefinitionError",
]
