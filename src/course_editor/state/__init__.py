"""
Course state module.

The state manager, the update records it reconciles and typed views
over its entities.
"""

from .manager import EventDetail, StateManager, Watcher
from .models import BulkSelection, Course, CourseModule, Section
from .updates import StateUpdate, UpdateAction, parse_updates

__all__ = [
    "StateManager",
    "EventDetail",
    "Watcher",
    "StateUpdate",
    "UpdateAction",
    "parse_updates",
    "Course",
    "Section",
    "CourseModule",
    "BulkSelection",
]
