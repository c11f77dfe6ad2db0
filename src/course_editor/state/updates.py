"""State update records returned by the course editor web services."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ..moodle.api import MoodleResponseError


def is_entity_id(value: Any) -> bool:
    """Entity ids are integers or strings."""
    return isinstance(value, (int, str)) and not isinstance(value, bool)


class UpdateAction(str, Enum):
    """What an update record does to its entity."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class StateUpdate:
    """One create/update/delete of a single state entity."""

    action: UpdateAction
    name: str
    fields: dict[str, Any] = field(default_factory=dict)

    @property
    def entity_id(self) -> Any:
        """Id of the affected entity (0 when the record has none)."""
        return self.fields.get("id", 0)

    @classmethod
    def from_dict(cls, data: Any) -> "StateUpdate":
        """Create a StateUpdate from a decoded update record.

        Raises:
            MoodleResponseError: If the record is malformed
        """
        if not isinstance(data, dict):
            raise MoodleResponseError(f"Update record must be an object, got {data!r}")

        try:
            action = UpdateAction(data.get("action"))
        except ValueError as e:
            raise MoodleResponseError(f"Unknown update action {data.get('action')!r}") from e

        name = data.get("name")
        if not isinstance(name, str) or not name:
            raise MoodleResponseError(f"Update record without name: {data!r}")

        fields = data.get("fields", {})
        if not isinstance(fields, dict):
            raise MoodleResponseError(f"Update fields for {name} must be an object")
        if not is_entity_id(fields.get("id", 0)):
            raise MoodleResponseError(f"Invalid id {fields['id']!r} in {name} update")

        return cls(action=action, name=name, fields=dict(fields))


def parse_updates(payload: Any) -> list[StateUpdate]:
    """Parse a whole update list.

    Nothing is returned unless every record is valid, so a bad record
    never leaves half a list applied.

    Raises:
        MoodleResponseError: If the payload is not a list of update records
    """
    if not isinstance(payload, list):
        raise MoodleResponseError(f"Expected a list of updates, got {type(payload).__name__}")
    return [
        item if isinstance(item, StateUpdate) else StateUpdate.from_dict(item)
        for item in payload
    ]


def create(name: str, /, **fields: Any) -> StateUpdate:
    return StateUpdate(UpdateAction.CREATE, name, fields)


def update(name: str, /, **fields: Any) -> StateUpdate:
    return StateUpdate(UpdateAction.UPDATE, name, fields)


def delete(name: str, entity_id: Any) -> StateUpdate:
    return StateUpdate(UpdateAction.DELETE, name, {"id": entity_id})
