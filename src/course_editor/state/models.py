"""Typed read-only views over course state entities."""

from dataclasses import dataclass, field
from typing import Any


@dataclass
class Course:
    """The course being edited."""

    id: int
    editmode: bool = False
    section_ids: list[int] = field(default_factory=list)

    @classmethod
    def from_state(cls, data: dict[str, Any]) -> "Course":
        """Create a Course from the course state element."""
        return cls(
            id=data.get("id", 0),
            editmode=bool(data.get("editmode", False)),
            section_ids=list(data.get("sectionlist", [])),
        )


@dataclass
class Section:
    """A course section and the modules it contains, in display order."""

    id: int
    number: int = 0
    title: str = ""
    visible: bool = True
    cm_ids: list[int] = field(default_factory=list)
    locked: bool = False

    @classmethod
    def from_state(cls, data: dict[str, Any]) -> "Section":
        """Create a Section from a section state element."""
        return cls(
            id=data["id"],
            number=data.get("number", data.get("section", 0)),
            title=data.get("title", data.get("name", "")),
            visible=bool(data.get("visible", True)),
            cm_ids=list(data.get("cmlist", [])),
            locked=bool(data.get("locked", False)),
        )


@dataclass
class CourseModule:
    """An activity or resource placed in a section."""

    id: int
    section_id: int
    name: str = ""
    modname: str = ""
    visible: bool = True
    locked: bool = False

    @classmethod
    def from_state(cls, data: dict[str, Any]) -> "CourseModule":
        """Create a CourseModule from a cm state element."""
        return cls(
            id=data["id"],
            section_id=data.get("sectionid", 0),
            name=data.get("name", ""),
            modname=data.get("module", data.get("modname", "")),
            visible=bool(data.get("visible", True)),
            locked=bool(data.get("locked", False)),
        )


@dataclass
class BulkSelection:
    """Elements selected for a bulk action. Never sent to the server."""

    enabled: bool = False
    selected_type: str = ""
    selection: list[int] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.selection

    @classmethod
    def from_state(cls, data: dict[str, Any]) -> "BulkSelection":
        return cls(
            enabled=bool(data.get("enabled", False)),
            selected_type=data.get("selected_type", ""),
            selection=list(data.get("selection", [])),
        )
