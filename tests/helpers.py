"""Helpers for building Moodle AJAX responses in tests."""

import json
from typing import Any

import httpx


def ajax_response(*results: Any, status_code: int = 200) -> httpx.Response:
    """Build a lib/ajax/service.php response with one success entry per result."""
    return httpx.Response(
        status_code,
        json=[{"error": False, "data": result} for result in results],
    )


def ajax_error(errorcode: str, message: str = "Error") -> httpx.Response:
    """Build a lib/ajax/service.php response for a single failed call."""
    return httpx.Response(
        200,
        json=[
            {
                "error": True,
                "exception": {"message": message, "errorcode": errorcode, "link": "", "moreinfourl": ""},
            }
        ],
    )


def encoded(value: Any) -> str:
    """Encode a payload the way PARAM_RAW web services return it."""
    return json.dumps(value)
