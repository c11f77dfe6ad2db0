"""Exceptions raised by the course editor before or around remote calls."""


class CourseEditorError(Exception):
    """Base exception for course editor errors."""

    pass


class InvalidArgumentError(CourseEditorError, ValueError):
    """A mutation was called with missing or invalid arguments.

    Raised before any remote call is made, so retrying with the same
    arguments will fail again.
    """

    pass


class UnknownMutationError(CourseEditorError, KeyError):
    """No mutation is registered under the requested name."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else "Unknown mutation"
