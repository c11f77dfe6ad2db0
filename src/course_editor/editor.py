"""
Main course editor.

Loads the initial course state from Moodle and dispatches named mutations
against it. UI code subscribes to state events and calls dispatch on user
interaction.
"""

from collections.abc import Callable, Mapping
from typing import Any

from .exceptions import UnknownMutationError
from .moodle.api import MoodleAPI, MoodleResponseError
from .mutations import Mutations
from .state.manager import EventDetail, StateManager, Watcher
from .state.updates import is_entity_id
from .utils.logging import get_logger

logger = get_logger(__name__)

# Dispatch names accepted for the default mutations
MUTATION_NAMES = {
    "cm_move": "move_modules",
    "cmMove": "move_modules",
    "section_move": "move_sections",
    "sectionMove": "move_sections",
    "cm_state": "refresh_modules",
    "cmState": "refresh_modules",
    "section_state": "refresh_sections",
    "sectionState": "refresh_sections",
    "course_state": "refresh_course",
    "courseState": "refresh_course",
    "cm_show": "cm_show",
    "cmShow": "cm_show",
    "cm_hide": "cm_hide",
    "cmHide": "cm_hide",
    "section_show": "section_show",
    "sectionShow": "section_show",
    "section_hide": "section_hide",
    "sectionHide": "section_hide",
    "bulk_enable": "bulk_enable",
    "bulkEnable": "bulk_enable",
    "cm_select": "cm_select",
    "cmSelect": "cm_select",
    "cm_unselect": "cm_unselect",
    "cmUnselect": "cm_unselect",
    "section_select": "section_select",
    "sectionSelect": "section_select",
    "section_unselect": "section_unselect",
    "sectionUnselect": "section_unselect",
}


class CourseEditor:
    """Course editor: one state manager plus the mutations that change it."""

    STATE_METHOD = "core_course_get_state"

    def __init__(
        self,
        api: MoodleAPI,
        mutations: Mutations | None = None,
        state_manager: StateManager | None = None,
        state_method: str = STATE_METHOD,
    ):
        self.api = api
        self.state_manager = state_manager or StateManager()
        self.state_method = state_method
        self.editing = False
        self._mutations: dict[str, Callable[..., Any]] = {}

        mutations = mutations or Mutations(api)
        for name, attribute in MUTATION_NAMES.items():
            self._mutations[name] = getattr(mutations, attribute)

    def init(self, course_id: int) -> None:
        """Load the initial state of a course.

        Raises:
            MoodleAPIError: If the state cannot be fetched
            MoodleResponseError: If the state payload is malformed
        """
        logger.info(f"Loading course {course_id} state")
        try:
            data = self.api.call_json(self.state_method, courseid=course_id)
        except Exception:
            logger.error(f"Exception raised while loading course {course_id} state")
            raise

        if not isinstance(data, dict):
            raise MoodleResponseError(f"Course {course_id} state must be an object, got {type(data).__name__}")
        data.setdefault("course", {})
        data.setdefault("section", [])
        data.setdefault("cm", [])

        if not isinstance(data["course"], dict):
            raise MoodleResponseError(f"Invalid course element in course {course_id} state")
        for name in ("section", "cm"):
            items = data[name]
            if not isinstance(items, list) or not all(
                isinstance(item, dict) and is_entity_id(item.get("id", 0)) for item in items
            ):
                raise MoodleResponseError(f"Invalid {name} list in course {course_id} state")

        # Edit mode can change over time, components should call is_editing
        self.editing = bool(data["course"].get("editmode", False))
        self.state_manager.set_initial_state(data)

    def is_editing(self) -> bool:
        return self.editing

    def add_mutations(self, mutations: Mapping[str, Callable[..., Any]]) -> None:
        """Register new mutations or replace existing ones.

        Each callable receives the state manager followed by the dispatch
        arguments.
        """
        self._mutations.update(mutations)

    def dispatch(self, name: str, *args: Any, **kwargs: Any) -> None:
        """Run a mutation by name.

        Raises:
            UnknownMutationError: If no mutation is registered under name
        """
        mutation = self._mutations.get(name)
        if mutation is None:
            raise UnknownMutationError(f"Unknown {name} mutation")
        try:
            mutation(self.state_manager, *args, **kwargs)
        except Exception as e:
            logger.error(f"Exception dispatching {name}: {e}")
            raise

    def subscribe(self, event: str, handler: Callable[[EventDetail], None], name: str | None = None) -> Watcher:
        return self.state_manager.subscribe(event, handler, name)

    def get(self, name: str, entity_id: Any = None) -> Any:
        return self.state_manager.get(name, entity_id)
