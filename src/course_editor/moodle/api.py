"""
Moodle AJAX web service client.

This module talks to Moodle's batched AJAX endpoint (lib/ajax/service.php),
the same entry point the course editor uses in the browser. Every request
carries a list of calls and every response a list of results in the same
order, each one flagged as success or failure.

Moodle AJAX documentation:
https://moodledev.io/docs/guides/javascript/ajax
"""

import json
from typing import Any

import httpx

from ..utils.logging import get_logger

logger = get_logger(__name__)


# -----------------------------------------------------------------------------
# Exceptions
# -----------------------------------------------------------------------------


class MoodleAPIError(Exception):
    """Base exception for Moodle web service failures."""

    def __init__(self, message: str, error_code: str | None = None, debug_info: str | None = None):
        super().__init__(message)
        self.error_code = error_code
        self.debug_info = debug_info


class MoodleAuthError(MoodleAPIError):
    """Session expired, bad sesskey or missing capability."""

    pass


class MoodleNotFoundError(MoodleAPIError):
    """Resource not found error."""

    pass


class MoodleValidationError(MoodleAPIError):
    """Invalid parameters or validation error."""

    pass


class MoodleResponseError(MoodleAPIError):
    """The server answered with something that is not a valid payload."""

    pass


AUTH_ERROR_CODES = (
    "invalidsesskey",
    "requireloginerror",
    "servicerequireslogin",
    "accessexception",
    "nopermissions",
)
NOT_FOUND_ERROR_CODES = ("invalidrecord", "cannotfindrecord", "invalidcourseid")
VALIDATION_ERROR_CODES = ("invalidparameter", "invalidargument")


# -----------------------------------------------------------------------------
# API Client
# -----------------------------------------------------------------------------


class MoodleAPI:
    """
    Low-level Moodle AJAX client.

    Handles HTTP requests, session parameters and error mapping for
    Moodle's batched AJAX service.

    Usage:
        api = MoodleAPI(
            base_url="https://moodle.example.edu",
            sesskey="abc123XYZ",
            session_cookie="...",
        )
        state = api.call_json("core_course_get_state", courseid=42)
    """

    # Request timeout in seconds
    DEFAULT_TIMEOUT = 30.0

    SERVICE_PATH = "/lib/ajax/service.php"

    SESSION_COOKIE_NAME = "MoodleSession"

    def __init__(
        self,
        base_url: str,
        sesskey: str,
        session_cookie: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        verify_ssl: bool = True,
        transport: httpx.BaseTransport | None = None,
    ):
        """
        Initialize the Moodle AJAX client.

        Args:
            base_url: Base URL of the Moodle instance (e.g., https://moodle.example.edu)
            sesskey: Session key of the logged-in user
            session_cookie: Value of the MoodleSession cookie
            timeout: Request timeout in seconds
            verify_ssl: Whether to verify SSL certificates
            transport: Optional httpx transport (used by tests)
        """
        self.base_url = base_url.rstrip("/")
        self.sesskey = sesskey
        self.session_cookie = session_cookie
        self.timeout = timeout
        self.verify_ssl = verify_ssl
        self._transport = transport
        self._client: httpx.Client | None = None

    @property
    def client(self) -> httpx.Client:
        """Get or create the HTTP client."""
        if self._client is None:
            headers = {"Accept": "application/json"}
            if self.session_cookie:
                headers["Cookie"] = f"{self.SESSION_COOKIE_NAME}={self.session_cookie}"
            self._client = httpx.Client(
                timeout=self.timeout,
                verify=self.verify_ssl,
                headers=headers,
                transport=self._transport,
            )
        return self._client

    def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            self._client.close()
            self._client = None

    def __enter__(self) -> "MoodleAPI":
        return self

    def __exit__(self, *args) -> None:
        self.close()

    # -------------------------------------------------------------------------
    # Core API Methods
    # -------------------------------------------------------------------------

    def call_batch(self, calls: list[tuple[str, dict[str, Any]]]) -> list[Any]:
        """
        Send several web service calls in a single request.

        Args:
            calls: List of (methodname, args) pairs

        Returns:
            The data of every call, in request order

        Raises:
            MoodleAuthError: If the session is not valid
            MoodleResponseError: If the response is not a valid batch result
            MoodleAPIError: If any call failed or the HTTP request failed
        """
        if not calls:
            return []

        endpoint = f"{self.base_url}{self.SERVICE_PATH}"
        methodnames = ",".join(name for name, _ in calls)
        payload = [
            {"index": index, "methodname": name, "args": args}
            for index, (name, args) in enumerate(calls)
        ]

        logger.debug(f"Calling Moodle AJAX: {methodnames}")

        try:
            response = self.client.post(
                endpoint,
                params={"sesskey": self.sesskey, "info": methodnames},
                json=payload,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"HTTP error calling {methodnames}: {e}")
            raise MoodleAPIError(f"HTTP {e.response.status_code}: {e.response.text}") from e
        except httpx.RequestError as e:
            logger.error(f"Request error calling {methodnames}: {e}")
            raise MoodleAPIError(f"Request failed: {e}") from e

        try:
            data = response.json()
        except ValueError as e:
            logger.error(f"Non-JSON response calling {methodnames}")
            raise MoodleResponseError(f"Invalid JSON response from {methodnames}") from e

        # A session or sesskey failure replaces the whole batch with one error
        if isinstance(data, dict):
            self._check_error(data, methodnames)
            raise MoodleResponseError(f"Unexpected response from {methodnames}: {data!r}")

        if not isinstance(data, list) or len(data) != len(calls):
            raise MoodleResponseError(
                f"Expected {len(calls)} results from {methodnames}, got {data!r}"
            )

        results = []
        for (name, _), item in zip(calls, data):
            if not isinstance(item, dict):
                raise MoodleResponseError(f"Malformed result for {name}: {item!r}")
            if item.get("error"):
                self._check_error(item.get("exception") or {}, name)
                raise MoodleAPIError(f"Call to {name} failed")
            results.append(item.get("data"))

        return results

    def call(self, methodname: str, **args: Any) -> Any:
        """Make a single web service call and return its data."""
        return self.call_batch([(methodname, args)])[0]

    def call_json(self, methodname: str, **args: Any) -> Any:
        """
        Call a web service that returns a JSON-encoded string and decode it.

        Args:
            methodname: The Moodle web service function name
            **args: Function parameters

        Returns:
            Decoded JSON value

        Raises:
            MoodleResponseError: If the returned data is not valid JSON
        """
        raw = self.call(methodname, **args)
        if not isinstance(raw, (str, bytes)):
            raise MoodleResponseError(f"Expected encoded JSON from {methodname}, got {type(raw).__name__}")
        try:
            return json.loads(raw)
        except ValueError as e:
            logger.error(f"Cannot decode payload from {methodname}: {e}")
            raise MoodleResponseError(f"Invalid JSON payload from {methodname}") from e

    def _check_error(self, data: Any, methodname: str) -> None:
        """
        Check an error structure returned by Moodle.

        Args:
            data: Parsed error data
            methodname: The function that was called

        Raises:
            MoodleAuthError: If authentication/authorization failed
            MoodleNotFoundError: If resource was not found
            MoodleValidationError: If validation failed
            MoodleAPIError: For other errors
        """
        if not isinstance(data, dict):
            return

        if "exception" in data or "errorcode" in data or data.get("error"):
            error_code = data.get("errorcode", "unknown")
            message = data.get("message") or data.get("exception") or data.get("error") or "Unknown error"
            if not isinstance(message, str):
                message = str(message)
            debug_info = data.get("debuginfo")

            logger.error(f"Moodle API error in {methodname}: [{error_code}] {message}")

            # Map to specific exception types
            if error_code in AUTH_ERROR_CODES:
                raise MoodleAuthError(message, error_code, debug_info)
            elif error_code in NOT_FOUND_ERROR_CODES:
                raise MoodleNotFoundError(message, error_code, debug_info)
            elif error_code in VALIDATION_ERROR_CODES:
                raise MoodleValidationError(message, error_code, debug_info)
            else:
                raise MoodleAPIError(message, error_code, debug_info)


# -----------------------------------------------------------------------------
# Convenience Functions
# -----------------------------------------------------------------------------


def create_api_client(settings) -> MoodleAPI:
    """
    Create a MoodleAPI client from connection settings.

    Args:
        settings: MoodleSettings with url, sesskey and session cookie

    Returns:
        Configured MoodleAPI instance

    Raises:
        ValueError: If no session key is available
    """
    if not settings.sesskey:
        raise ValueError(
            "Moodle session key required. Set it in the config file or the MOODLE_SESSKEY environment variable."
        )

    return MoodleAPI(
        base_url=settings.url,
        sesskey=settings.sesskey,
        session_cookie=settings.session_cookie,
        timeout=settings.timeout,
        verify_ssl=settings.verify_ssl,
    )
