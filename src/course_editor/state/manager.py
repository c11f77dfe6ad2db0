"""
Course state manager.

Holds the client-side mirror of a course (course, sections, course modules
and bulk selection). The mirror only changes through process_updates, which
applies a whole list of update records and then notifies the watchers
subscribed to the affected events.

Events published:
    state:loaded             after set_initial_state
    <name>:created           an entity was inserted
    <name>:updated           an entity changed at least one field
    <name>:deleted           an entity was removed
    <name>.<field>:updated   a single field changed value
"""

import copy
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from ..utils.logging import get_logger
from .updates import StateUpdate, UpdateAction, parse_updates

logger = get_logger(__name__)

UpdateHandler = Callable[[StateUpdate], None]

BULK_DEFAULTS = {"enabled": False, "selected_type": "", "selection": []}


@dataclass(frozen=True)
class EventDetail:
    """What a watcher receives when an event fires."""

    action: str
    state: "StateManager"
    element: dict[str, Any] | None = None


@dataclass(eq=False)
class Watcher:
    """A handler subscribed to one event name."""

    event: str
    handler: Callable[[EventDetail], None]
    name: str = "Unknown component"


class StateManager:
    """Reactive store for the course editor state."""

    def __init__(self):
        self._state: dict[str, Any] = {}
        self._lists: set[str] = set()
        self._watchers: dict[str, list[Watcher]] = {}
        self._events: list[tuple[str, dict[str, Any] | None]] = []
        self._publishing = False
        self.loaded = False

    # -------------------------------------------------------------------------
    # Loading and reading
    # -------------------------------------------------------------------------

    def set_initial_state(self, data: Mapping[str, Any]) -> None:
        """Load the initial state and publish state:loaded.

        List values become maps keyed by entity id. Any other value is
        stored as a single entity.
        """
        state: dict[str, Any] = {}
        lists: set[str] = set()
        for name, value in data.items():
            if isinstance(value, list):
                lists.add(name)
                state[name] = {item.get("id", 0): copy.deepcopy(item) for item in value}
            else:
                state[name] = copy.deepcopy(value)

        state.setdefault("bulk", copy.deepcopy(BULK_DEFAULTS))

        self._state = state
        self._lists = lists
        self.loaded = True

        logger.debug(
            "State loaded: "
            + ", ".join(f"{name}={len(state[name])}" for name in sorted(lists))
        )
        self._events.append(("state:loaded", None))
        self._publish()

    def get(self, name: str, entity_id: Any = None) -> Any:
        """Return a copy of a state element.

        Args:
            name: Entity type (course, section, cm, bulk...)
            entity_id: Id of a list entity. When omitted on a list type,
                the whole id-keyed map is returned.

        Returns:
            A deep copy of the element, or None for an unknown id

        Raises:
            KeyError: If the entity type is not part of the state
        """
        if name not in self._state:
            raise KeyError(f"Unknown state element {name}")
        if name in self._lists and entity_id is not None:
            return copy.deepcopy(self._state[name].get(entity_id))
        return copy.deepcopy(self._state[name])

    def has(self, name: str, entity_id: Any) -> bool:
        return name in self._lists and entity_id in self._state[name]

    def ids(self, name: str) -> list[Any]:
        if name not in self._lists:
            return []
        return list(self._state[name])

    def snapshot(self) -> dict[str, Any]:
        """Deep copy of the complete state."""
        return copy.deepcopy(self._state)

    # -------------------------------------------------------------------------
    # Watchers
    # -------------------------------------------------------------------------

    def subscribe(
        self,
        event: str,
        handler: Callable[[EventDetail], None],
        name: str | None = None,
    ) -> Watcher:
        """Register a handler for an event name.

        A state:loaded watcher registered after the state is loaded is
        called straight away.
        """
        if not event:
            raise ValueError(f"Empty watcher in {name or 'Unknown component'}")
        watcher = Watcher(event=event, handler=handler, name=name or "Unknown component")
        self._watchers.setdefault(event, []).append(watcher)

        if event == "state:loaded" and self.loaded:
            self._call_watcher(watcher, EventDetail(action=event, state=self))
        return watcher

    def unsubscribe(self, watcher: Watcher) -> None:
        watchers = self._watchers.get(watcher.event, [])
        if watcher in watchers:
            watchers.remove(watcher)

    # -------------------------------------------------------------------------
    # Reconciliation
    # -------------------------------------------------------------------------

    def process_updates(
        self,
        updates: Iterable[StateUpdate | Mapping[str, Any]],
        overrides: Mapping[UpdateAction, UpdateHandler] | None = None,
    ) -> None:
        """Apply a list of update records in order.

        The whole list is validated first and applied on top of a snapshot;
        if anything fails the state is restored and no event is published.
        Watchers run once the full list is applied.

        Args:
            updates: StateUpdate objects or raw update records
            overrides: Per-action handlers replacing the default policy
                for this call (e.g. {UpdateAction.UPDATE: self.forced_update})

        Raises:
            MoodleResponseError: If a raw record is malformed
        """
        records = parse_updates(list(updates))
        snapshot = copy.deepcopy(self._state)
        lists = set(self._lists)
        pending = len(self._events)

        try:
            for record in records:
                self._apply(record, overrides)
        except Exception:
            self._state = snapshot
            self._lists = lists
            del self._events[pending:]
            raise

        self._publish()

    def forced_update(self, update: StateUpdate) -> None:
        """Merge into an existing entity or insert it when it is unknown."""
        if self._find(update.name, update.entity_id) is None:
            self._insert(update.name, update.fields)
        else:
            self._merge(update.name, update.entity_id, update.fields)

    def _apply(
        self,
        update: StateUpdate,
        overrides: Mapping[UpdateAction, UpdateHandler] | None,
    ) -> None:
        handler = overrides.get(update.action) if overrides else None
        if handler is not None:
            handler(update)
            return

        match update.action:
            case UpdateAction.CREATE:
                # Creating a known id merges instead of duplicating
                self.forced_update(update)
            case UpdateAction.UPDATE:
                if self._find(update.name, update.entity_id) is None:
                    logger.debug(f"Inexistent {update.name} {update.entity_id}, update dropped")
                    return
                self._merge(update.name, update.entity_id, update.fields)
            case UpdateAction.DELETE:
                self._remove(update.name, update.entity_id)
            case _:
                raise ValueError(f"Unsupported update action {update.action!r}")

    def _find(self, name: str, entity_id: Any) -> dict[str, Any] | None:
        if name in self._lists:
            return self._state[name].get(entity_id)
        return self._state.get(name)

    def _insert(self, name: str, fields: Mapping[str, Any]) -> None:
        entity = copy.deepcopy(dict(fields))
        if name in self._lists:
            self._state[name][entity.get("id", 0)] = entity
        else:
            self._state[name] = entity
        self._events.append((f"{name}:created", entity))

    def _merge(self, name: str, entity_id: Any, fields: Mapping[str, Any]) -> None:
        current = self._find(name, entity_id)
        changed = False
        for prop, value in fields.items():
            if prop in current and current[prop] == value:
                continue
            current[prop] = copy.deepcopy(value)
            self._events.append((f"{name}.{prop}:updated", current))
            changed = True
        if changed:
            self._events.append((f"{name}:updated", current))

    def _remove(self, name: str, entity_id: Any) -> None:
        if name in self._lists:
            previous = self._state[name].pop(entity_id, None)
        else:
            previous = self._state.pop(name, None)
        if previous is None:
            return
        self._events.append((f"{name}:deleted", previous))
        self._prune_selection(name, entity_id)

    def _prune_selection(self, name: str, entity_id: Any) -> None:
        bulk = self._state.get("bulk")
        if not bulk or bulk.get("selected_type") != name:
            return
        selection = [item for item in bulk.get("selection", []) if item != entity_id]
        if len(selection) == len(bulk.get("selection", [])):
            return
        fields: dict[str, Any] = {"selection": selection}
        if not selection:
            fields["selected_type"] = ""
        self._merge("bulk", None, fields)

    # -------------------------------------------------------------------------
    # Publishing
    # -------------------------------------------------------------------------

    def _publish(self) -> None:
        # A watcher that processes more updates only queues more events
        if self._publishing:
            return
        self._publishing = True
        try:
            while self._events:
                events, self._events = self._events, []
                published: set[str] = set()
                for action, element in events:
                    key = f"{action}.{element.get('id', 0) if element else 0}"
                    if key in published:
                        continue
                    published.add(key)
                    detail = EventDetail(action=action, state=self, element=copy.deepcopy(element))
                    for watcher in list(self._watchers.get(action, [])):
                        self._call_watcher(watcher, detail)
        finally:
            self._publishing = False

    def _call_watcher(self, watcher: Watcher, detail: EventDetail) -> None:
        logger.debug(f'Executing "{watcher.name}" {detail.action} watcher')
        try:
            watcher.handler(detail)
        except Exception:
            logger.exception(f'Component "{watcher.name}" error while watching {detail.action}')
