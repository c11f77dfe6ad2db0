"""Shared fixtures for course editor tests."""

from typing import Any
from unittest.mock import MagicMock

import pytest

from course_editor.moodle.api import MoodleAPI
from course_editor.state.manager import StateManager


@pytest.fixture
def initial_state() -> dict[str, Any]:
    """A small course: three sections, three activities."""
    return {
        "course": {"id": 42, "editmode": True, "sectionlist": [1, 2, 3]},
        "section": [
            {"id": 1, "number": 0, "title": "General", "visible": True, "cmlist": [10, 11]},
            {"id": 2, "number": 1, "title": "Week 1", "visible": True, "cmlist": [12]},
            {"id": 3, "number": 2, "title": "Week 2", "visible": False, "cmlist": []},
        ],
        "cm": [
            {"id": 10, "sectionid": 1, "name": "Announcements", "visible": True},
            {"id": 11, "sectionid": 1, "name": "Syllabus", "visible": False},
            {"id": 12, "sectionid": 2, "name": "Quiz 1", "visible": True},
        ],
    }


@pytest.fixture
def state_manager(initial_state) -> StateManager:
    manager = StateManager()
    manager.set_initial_state(initial_state)
    return manager


@pytest.fixture
def fake_api() -> MagicMock:
    """MoodleAPI double whose call_json answers with an empty update list."""
    api = MagicMock(spec=MoodleAPI)
    api.call_json.return_value = []
    return api
