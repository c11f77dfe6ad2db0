"""Configuration data models."""

from dataclasses import dataclass, field
from typing import Any


@dataclass
class MoodleSettings:
    """Moodle connection settings."""

    url: str
    sesskey: str | None = None
    session_cookie: str | None = None
    timeout: float = 30.0
    verify_ssl: bool = True
    edit_method: str = "core_course_edit"
    state_method: str = "core_course_get_state"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MoodleSettings":
        return cls(
            url=data["url"],
            sesskey=data.get("sesskey"),
            session_cookie=data.get("session_cookie"),
            timeout=float(data.get("timeout", 30.0)),
            verify_ssl=data.get("verify_ssl", True),
            edit_method=data.get("edit_method", "core_course_edit"),
            state_method=data.get("state_method", "core_course_get_state"),
        )


@dataclass
class EditorConfig:
    """Complete editor configuration."""

    moodle: MoodleSettings
    course_id: int | None = None
    sequenced: bool = False
    log_level: str = "INFO"
    log_file: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EditorConfig":
        moodle = MoodleSettings.from_dict(data.get("moodle", {}))
        known = {"moodle", "course_id", "sequenced", "log_level", "log_file"}

        return cls(
            moodle=moodle,
            course_id=data.get("course_id"),
            sequenced=data.get("sequenced", False),
            log_level=str(data.get("log_level", "INFO")).upper(),
            log_file=data.get("log_file"),
            extra={k: v for k, v in data.items() if k not in known},
        )
