"""Error types and display-message normalisation for Supabase failures.

Remote failures reach the pages in many shapes: PostgREST error bodies
(``message``/``details``/``hint``/``code``), GoTrue bodies (``msg``,
``error_description``), wrapped ``{"error": {...}}`` envelopes, plain strings
and Python exceptions. :func:`error_message` turns any of them into a single
string that is safe to show to a user.
"""

from __future__ import annotations

import json
import math
import re
from typing import Any, Dict, List, Mapping, Optional, Set

import httpx


GENERIC_OBJECT_TOKEN = "[object Object]"

UNKNOWN_ERROR = "Unknown error"
INVALID_EXCEPTION_MESSAGE = "An unexpected error occurred (Invalid Error Message)"
INVALID_STRING_MESSAGE = "Unknown error (Invalid String)"
DATABASE_DETAILS_UNAVAILABLE = "Database error (Details unavailable)"
EMPTY_OBJECT_MESSAGE = "An unexpected error occurred (Empty Object)"
CIRCULAR_OBJECT_MESSAGE = "Unknown error object (Circular structure?)"

_DEFAULT_REPR = re.compile(r"<[\w.]+ object at 0x[0-9a-fA-F]+>")

MISSING_TABLE_SIGNATURES = (
    "42p01",
    "pgrst205",
    "does not exist",
    "relation",
    "could not find the table",
)

AUTH_GUIDANCE = (
    (
        "invalid login credentials",
        "Check your email and password. New accounts must confirm their email address before signing in.",
    ),
    (
        "email not confirmed",
        "This email is registered but not verified yet. Open the confirmation link in your inbox or use another email.",
    ),
    (
        "already registered",
        "An account with this email already exists. Sign in instead.",
    ),
)


class SupabaseError(RuntimeError):
    """A failed call against the Supabase REST, auth or storage API.

    ``payload`` is the decoded error body (always a mapping) and ``status`` the
    HTTP status code, or ``None`` when the request never got a response.
    """

    def __init__(self, payload: Mapping[str, Any] | None = None, status: int | None = None) -> None:
        self.payload: Dict[str, Any] = dict(payload or {})
        self.status = status
        super().__init__(error_message(self.payload))

    @property
    def code(self) -> str | None:
        for key in ("code", "error_code", "error"):
            value = self.payload.get(key)
            if isinstance(value, str) and value:
                return value
        return None

    @classmethod
    def from_response(cls, response: httpx.Response) -> "SupabaseError":
        try:
            body = response.json()
        except ValueError:
            text = (response.text or "").strip()
            body = {"message": text or f"HTTP {response.status_code}"}

        if isinstance(body, list):
            body = body[0] if body and isinstance(body[0], dict) else {"message": json.dumps(body)}
        elif not isinstance(body, dict):
            body = {"message": str(body)}
        return cls(body, response.status_code)


class LoginRequired(Exception):
    """Raised by pages that need a signed-in user."""

    def __init__(self, redirect_to: str = "/login") -> None:
        self.redirect_to = redirect_to
        super().__init__("You must be signed in to continue")


def error_message(error: Any) -> str:
    """Return one non-empty, human-readable message for ``error``."""

    return _normalise(error, set())


def _normalise(error: Any, seen: Set[int]) -> str:
    if _is_falsy(error):
        return UNKNOWN_ERROR

    if isinstance(error, SupabaseError):
        return _normalise(error.payload, seen)

    if isinstance(error, BaseException):
        if len(error.args) == 1 and isinstance(error.args[0], Mapping):
            return _normalise(error.args[0], seen)
        message = str(error)
        if _is_generic(message):
            return INVALID_EXCEPTION_MESSAGE
        return message or type(error).__name__

    if isinstance(error, str):
        if _is_generic(error):
            return INVALID_STRING_MESSAGE
        return error

    structured = _as_structure(error)
    if structured is None:
        text = str(error)
        if _is_generic(text):
            return f"Unknown error ({type(error).__name__})"
        return text

    return _normalise_structure(error, structured, seen | {id(error)})


def _normalise_structure(original: Any, data: Any, seen: Set[int]) -> str:
    if isinstance(data, Mapping):
        nested = data.get("error")
        if _as_structure(nested) is not None and id(nested) not in seen:
            return _normalise(nested, seen)

        if "message" in data:
            message = data["message"]
            if isinstance(message, (Mapping, list, tuple)):
                try:
                    return json.dumps(message, default=str)
                except (ValueError, RecursionError):
                    return CIRCULAR_OBJECT_MESSAGE

            text = "" if message is None else str(message)
            details = data.get("details")
            hint = data.get("hint")
            if details:
                text += f" ({details})"
            if hint:
                text += f" Hint: {hint}"
            if _is_generic(text) or not text.strip():
                return DATABASE_DETAILS_UNAVAILABLE
            return text

        for key in ("error_description", "msg"):
            if key in data:
                text = _text(data[key])
                if text:
                    return text

    try:
        serialised = json.dumps(data, default=str, skipkeys=True)
    except (ValueError, RecursionError):
        return CIRCULAR_OBJECT_MESSAGE

    if serialised in ("{}", "[]"):
        text = str(original)
        if _is_generic(text) or text == serialised or not text:
            keys = _own_keys(original)
            if keys:
                return f"Error Keys: {', '.join(keys)}"
            return EMPTY_OBJECT_MESSAGE
        return text
    return serialised


def _as_structure(value: Any) -> Any:
    if isinstance(value, (str, bytes, BaseException)):
        return None
    if isinstance(value, Mapping):
        return value
    if isinstance(value, (list, tuple)):
        return list(value)
    attributes = getattr(value, "__dict__", None)
    if isinstance(attributes, dict) and not isinstance(value, type):
        return {key: item for key, item in attributes.items() if not key.startswith("_")}
    return None


def _own_keys(value: Any) -> List[str]:
    if isinstance(value, Mapping):
        return [str(key) for key in value.keys()]
    attributes = getattr(value, "__dict__", None)
    if isinstance(attributes, dict):
        return [str(key) for key in attributes]
    return []


def _is_falsy(value: Any) -> bool:
    if value is None or value is False:
        return True
    if isinstance(value, (str, int)) and not value:
        return True
    if isinstance(value, float) and (value == 0 or math.isnan(value)):
        return True
    return False


def _is_generic(text: str) -> bool:
    return text == GENERIC_OBJECT_TOKEN or bool(_DEFAULT_REPR.fullmatch(text))


def _text(value: Any) -> str:
    if value is None:
        return ""
    text = str(value).strip()
    if _is_generic(text):
        return ""
    return text


# ---------------------------------------------------------------------------
# Classification helpers used by the pages


def is_missing_table_error(message: str | None) -> bool:
    """True when a normalised message looks like an undefined-table failure."""

    if not message:
        return False
    lowered = message.lower()
    return any(signature in lowered for signature in MISSING_TABLE_SIGNATURES)


def is_conflict_error(error: Any) -> bool:
    if isinstance(error, SupabaseError):
        if error.status == 409 or error.code == "23505":
            return True
    return "duplicate key" in error_message(error).lower()


def auth_guidance(message: str | None) -> Optional[str]:
    """Follow-up advice for well-known authentication failures."""

    if not message:
        return None
    lowered = message.lower()
    for needle, advice in AUTH_GUIDANCE:
        if needle in lowered:
            return advice
    return None
