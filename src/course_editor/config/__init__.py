"""
Configuration module.

Handles loading of Moodle connection settings and editor options.
"""

from .loader import ConfigLoader
from .models import EditorConfig, MoodleSettings

__all__ = ["ConfigLoader", "EditorConfig", "MoodleSettings"]
