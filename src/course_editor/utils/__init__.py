"""
Utility module.

Logging helpers shared by the client, the state manager and the CLI.
"""

from .logging import setup_logging, get_logger

__all__ = ["setup_logging", "get_logger"]
