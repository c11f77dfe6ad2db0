"""
Course editor mutations.

Every mutation turns an editing intent into a core_course_edit call and
feeds the returned update records to the state manager. Arguments are
validated before anything is sent; remote failures propagate to the
caller untouched and nothing is retried.
"""

import threading
from collections.abc import Iterable, Mapping
from typing import Any

from .exceptions import InvalidArgumentError
from .moodle.api import MoodleAPI
from .state.manager import StateManager, UpdateHandler
from .state.models import BulkSelection
from .state.updates import StateUpdate, UpdateAction, parse_updates, update
from .utils.logging import get_logger

logger = get_logger(__name__)


def _validate_ids(ids: Iterable[Any] | None, label: str) -> list[int]:
    if ids is None:
        raise InvalidArgumentError(f"{label} required")
    result = list(ids)
    if not result:
        raise InvalidArgumentError(f"{label} cannot be empty")
    for value in result:
        if isinstance(value, bool) or not isinstance(value, int):
            raise InvalidArgumentError(f"Invalid id {value!r} in {label}")
    return result


def _validate_target(value: Any, label: str) -> None:
    if value is not None and (isinstance(value, bool) or not isinstance(value, int)):
        raise InvalidArgumentError(f"Invalid {label} {value!r}")


class Mutations:
    """Default course editor mutations."""

    EDIT_METHOD = "core_course_edit"

    def __init__(self, api: MoodleAPI, edit_method: str = EDIT_METHOD):
        """
        Args:
            api: Moodle AJAX client
            edit_method: Web service that executes the state actions
        """
        self.api = api
        self.edit_method = edit_method

    # -------------------------------------------------------------------------
    # Web service helpers
    # -------------------------------------------------------------------------

    def _call_edit_webservice(
        self,
        action: str,
        course_id: int,
        ids: list[int],
        target_section_id: int | None = None,
        target_cm_id: int | None = None,
    ) -> list[StateUpdate]:
        """Call the edit web service and parse the returned update list."""
        args: dict[str, Any] = {
            "action": action,
            "courseid": course_id,
            "ids": ids,
        }
        if target_section_id is not None:
            args["targetsectionid"] = target_section_id
        if target_cm_id is not None:
            args["targetcmid"] = target_cm_id

        logger.info(f"Executing {action} on course {course_id} for ids {ids}")
        payload = self.api.call_json(self.edit_method, **args)
        updates = parse_updates(payload)
        logger.debug(f"{action} returned {len(updates)} updates")
        return updates

    def _remote_mutation(
        self,
        state_manager: StateManager,
        action: str,
        ids: list[int],
        lock: str | None = None,
        target_section_id: int | None = None,
        target_cm_id: int | None = None,
        overrides: Mapping[UpdateAction, UpdateHandler] | None = None,
    ) -> None:
        """Run one remote action and reconcile its result.

        Elements of type ``lock`` listed in ``ids`` stay locked while the
        request is in flight.
        """
        course_id = self._course_id(state_manager)
        if lock:
            self.set_locked(state_manager, lock, ids, True)
        try:
            updates = self._call_edit_webservice(
                action,
                course_id,
                ids,
                target_section_id=target_section_id,
                target_cm_id=target_cm_id,
            )
            state_manager.process_updates(updates, overrides)
        finally:
            if lock:
                self.set_locked(state_manager, lock, ids, False)

    def _course_id(self, state_manager: StateManager) -> int:
        course = state_manager.get("course") if state_manager.loaded else None
        if not course or course.get("id") is None:
            raise InvalidArgumentError("Course state is not loaded")
        return course["id"]

    def _filter_ids(self, state_manager: StateManager, name: str, ids: Iterable[Any], predicate=None) -> list[Any]:
        """Drop unknown ids and, optionally, those the predicate rejects."""
        result = []
        for entity_id in ids:
            entity = state_manager.get(name, entity_id) if state_manager.has(name, entity_id) else None
            if entity is None:
                logger.warning(f"{name} with ID {entity_id} does not exist")
                continue
            if predicate is None or predicate(entity):
                result.append(entity_id)
        return result

    def set_locked(self, state_manager: StateManager, name: str, ids: Iterable[Any], value: bool) -> None:
        """Set the locked flag of every known element in the list."""
        updates = [
            update(name, id=entity_id, locked=value)
            for entity_id in ids
            if state_manager.has(name, entity_id)
        ]
        if updates:
            state_manager.process_updates(updates)

    # -------------------------------------------------------------------------
    # Moves
    # -------------------------------------------------------------------------

    def move_modules(
        self,
        state_manager: StateManager,
        cm_ids: Iterable[int],
        target_section_id: int | None = None,
        target_cm_id: int | None = None,
    ) -> None:
        """Move course modules to a section or right above another module.

        When target_cm_id is given the server places the modules before it,
        in that module's section, and target_section_id is ignored.

        Raises:
            InvalidArgumentError: If no target or no module is given
        """
        ids = _validate_ids(cm_ids, "Course module ids")
        _validate_target(target_section_id, "target section id")
        _validate_target(target_cm_id, "target course module id")
        if target_section_id is None and target_cm_id is None:
            raise InvalidArgumentError("Mutation cm_move requires target_section_id or target_cm_id")

        self._remote_mutation(
            state_manager,
            "cm_move",
            ids,
            lock="cm",
            target_section_id=target_section_id,
            target_cm_id=target_cm_id,
        )

    def move_sections(
        self,
        state_manager: StateManager,
        section_ids: Iterable[int],
        target_section_id: int | None,
    ) -> None:
        """Move sections right after the target section.

        Raises:
            InvalidArgumentError: If no target or no section is given
        """
        ids = _validate_ids(section_ids, "Section ids")
        _validate_target(target_section_id, "target section id")
        if target_section_id is None:
            raise InvalidArgumentError("Mutation section_move requires target_section_id")

        self._remote_mutation(
            state_manager,
            "section_move",
            ids,
            lock="section",
            target_section_id=target_section_id,
        )

    # -------------------------------------------------------------------------
    # Refreshes
    # -------------------------------------------------------------------------

    def refresh_modules(self, state_manager: StateManager, cm_ids: Iterable[int]) -> None:
        """Pull the current state of some course modules."""
        ids = _validate_ids(cm_ids, "Course module ids")
        self._remote_mutation(
            state_manager,
            "cm_state",
            ids,
            overrides={UpdateAction.UPDATE: state_manager.forced_update},
        )

    def refresh_sections(self, state_manager: StateManager, section_ids: Iterable[int]) -> None:
        """Pull the current state of some sections."""
        ids = _validate_ids(section_ids, "Section ids")
        self._remote_mutation(
            state_manager,
            "section_state",
            ids,
            overrides={UpdateAction.UPDATE: state_manager.forced_update},
        )

    def refresh_course(self, state_manager: StateManager) -> None:
        """Pull the full course state."""
        self._remote_mutation(
            state_manager,
            "course_state",
            [],
            overrides={UpdateAction.UPDATE: state_manager.forced_update},
        )

    # -------------------------------------------------------------------------
    # Visibility
    # -------------------------------------------------------------------------

    def _set_visibility(
        self,
        state_manager: StateManager,
        name: str,
        ids: Iterable[Any],
        visible: bool,
    ) -> None:
        pending = self._filter_ids(
            state_manager,
            name,
            _validate_ids(ids, f"{name} ids"),
            lambda entity: bool(entity.get("visible", True)) != visible,
        )
        action = f"{name}_{'show' if visible else 'hide'}"
        if not pending:
            logger.debug(f"Nothing to do for {action}")
            return
        self._remote_mutation(state_manager, action, pending, lock=name)

    def cm_show(self, state_manager: StateManager, cm_ids: Iterable[int]) -> None:
        """Show course modules that are currently hidden."""
        self._set_visibility(state_manager, "cm", cm_ids, True)

    def cm_hide(self, state_manager: StateManager, cm_ids: Iterable[int]) -> None:
        """Hide course modules that are currently visible."""
        self._set_visibility(state_manager, "cm", cm_ids, False)

    def section_show(self, state_manager: StateManager, section_ids: Iterable[int]) -> None:
        self._set_visibility(state_manager, "section", section_ids, True)

    def section_hide(self, state_manager: StateManager, section_ids: Iterable[int]) -> None:
        self._set_visibility(state_manager, "section", section_ids, False)

    # -------------------------------------------------------------------------
    # Bulk selection (local only)
    # -------------------------------------------------------------------------

    def bulk_enable(self, state_manager: StateManager, enabled: bool) -> None:
        """Switch bulk editing on or off. Either way the selection is cleared."""
        state_manager.process_updates(
            [update("bulk", enabled=bool(enabled), selected_type="", selection=[])]
        )

    def _set_bulk_selection(
        self,
        state_manager: StateManager,
        name: str,
        ids: Iterable[Any],
        selected: bool,
    ) -> None:
        bulk = BulkSelection.from_state(state_manager.get("bulk"))
        if bulk.selected_type not in ("", name):
            logger.debug(f"Cannot select {name} while {bulk.selected_type} is selected")
            return

        selection = bulk.selection
        for entity_id in ids:
            if not state_manager.has(name, entity_id):
                continue
            if selected and entity_id not in selection:
                selection.append(entity_id)
            elif not selected and entity_id in selection:
                selection.remove(entity_id)

        state_manager.process_updates(
            [update("bulk", selection=selection, selected_type=name if selection else "")]
        )

    def cm_select(self, state_manager: StateManager, cm_ids: Iterable[int]) -> None:
        self._set_bulk_selection(state_manager, "cm", cm_ids, True)

    def cm_unselect(self, state_manager: StateManager, cm_ids: Iterable[int]) -> None:
        self._set_bulk_selection(state_manager, "cm", cm_ids, False)

    def section_select(self, state_manager: StateManager, section_ids: Iterable[int]) -> None:
        self._set_bulk_selection(state_manager, "section", section_ids, True)

    def section_unselect(self, state_manager: StateManager, section_ids: Iterable[int]) -> None:
        self._set_bulk_selection(state_manager, "section", section_ids, False)


class SequencedMutations(Mutations):
    """Mutations that run one at a time per course.

    A mutation waits until the previous one for the same course has been
    reconciled, so overlapping edits apply in the order they were issued.
    Local bulk selection changes take the same lock. The state manager is
    only safe to share between threads when every change goes through
    these mutations.

    The lock is reentrant: a watcher may dispatch another mutation for the
    same course while the current one publishes its events.
    """

    def __init__(self, api: MoodleAPI, edit_method: str = Mutations.EDIT_METHOD):
        super().__init__(api, edit_method)
        self._guard = threading.Lock()
        self._course_locks: dict[int, threading.RLock] = {}

    def _lock_for(self, course_id: int) -> threading.RLock:
        with self._guard:
            return self._course_locks.setdefault(course_id, threading.RLock())

    def _remote_mutation(self, state_manager: StateManager, action: str, ids: list[int], **kwargs: Any) -> None:
        with self._lock_for(self._course_id(state_manager)):
            super()._remote_mutation(state_manager, action, ids, **kwargs)

    def bulk_enable(self, state_manager: StateManager, enabled: bool) -> None:
        with self._lock_for(self._course_id(state_manager)):
            super().bulk_enable(state_manager, enabled)

    def _set_bulk_selection(
        self,
        state_manager: StateManager,
        name: str,
        ids: Iterable[Any],
        selected: bool,
    ) -> None:
        with self._lock_for(self._course_id(state_manager)):
            super()._set_bulk_selection(state_manager, name, ids, selected)
