"""
Moodle integration module.

Handles communication with Moodle through its batched AJAX web services.
"""

from .api import (
    MoodleAPI,
    MoodleAPIError,
    MoodleAuthError,
    MoodleNotFoundError,
    MoodleResponseError,
    MoodleValidationError,
    create_api_client,
)

__all__ = [
    # API client
    "MoodleAPI",
    "create_api_client",
    # Exceptions
    "MoodleAPIError",
    "MoodleAuthError",
    "MoodleNotFoundError",
    "MoodleResponseError",
    "MoodleValidationError",
]
