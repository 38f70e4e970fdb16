"""
Utility functions shared across the app. This includes:
- normalize_digits: keep only digits (phone numbers, account codes).
- parse_optional_int / parse_date: tolerant parsing of JSON/query input.
- parse_text: stripped strings from JSON input; non-strings are rejected.
- json_body: request JSON as a dict (empty for a missing body, error for non-objects).
- ok: the success envelope used by every JSON route.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, Optional

from flask import jsonify, request

from .errors import ValidationError


def normalize_digits(value: Any) -> str:
    """Keep only digits."""
    if value is None:
        return ""
    return "".join(ch for ch in str(value) if ch.isdigit())


def parse_optional_int(value: Any) -> Optional[int]:
    """Parse optional int from JSON/query; returns None for empty/invalid."""
    if value is None or isinstance(value, bool):
        return None
    raw = str(value).strip()
    if raw == "":
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def parse_text(value: Any, field: str, *, required: bool = False) -> Optional[str]:
    """
    Stripped text from JSON input.

    Missing or blank values return None (or raise when required); numbers,
    lists and objects raise ValidationError instead of being coerced.
    """
    if value is None:
        text = ""
    elif isinstance(value, str):
        text = value.strip()
    else:
        raise ValidationError(field, f"{field} must be a string")
    if not text:
        if required:
            raise ValidationError(field, f"{field} is required")
        return None
    return text


def parse_date(value: Any, field: str) -> Optional[date]:
    """
    Parse an ISO date (YYYY-MM-DD, or a full ISO timestamp) into a date.

    Empty values return None; malformed values raise ValidationError.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    raw = str(value).strip()
    if raw == "":
        return None
    try:
        if len(raw) > 10:
            return datetime.fromisoformat(raw.replace("Z", "+00:00")).date()
        return date.fromisoformat(raw)
    except ValueError:
        raise ValidationError(field, f"{field} must be an ISO date (YYYY-MM-DD)") from None


def json_body() -> Dict[str, Any]:
    """Request JSON as a dict. Non-object bodies are a validation error."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("body", "Request body must be a JSON object")
    return data


def ok(data: Any = None, status: int = 200, **extra: Any):
    """Success envelope: {"success": true, "data": ...}."""
    payload: Dict[str, Any] = {"success": True, "data": data}
    payload.update(extra)
    return jsonify(payload), status
