"""
Core module initialization.
Exports configuration and the error taxonomy.
"""

from voice_ordering.core.config import get_settings, Settings, EnvironmentMode
from voice_ordering.core.errors import (
    ErrorCode,
    InitializationError,
    VoiceCommandError,
)

__all__ = [
    "get_settings",
    "Settings",
    "EnvironmentMode",
    "ErrorCode",
    "InitializationError",
    "VoiceCommandError",
]
