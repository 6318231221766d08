"""Resolve dotted field paths against an alert payload."""

from __future__ import annotations

import json
from datetime import datetime
from decimal import Decimal
from typing import Any, Mapping, Tuple, Union

from karo.alert import AlertPayload
from karo.errors import FieldNotFoundError

WHOLE_PAYLOAD_PATHS = ("", ".")

PayloadLike = Union[AlertPayload, Mapping[str, Any]]


def as_payload(payload: PayloadLike) -> AlertPayload:
    if isinstance(payload, AlertPayload):
        return payload
    return AlertPayload.from_dict(payload)


def stringify(value: Any) -> str:
    """Uniform textual form of a resolved value."""
    if isinstance(value, str):
        return value
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (int, float, Decimal)):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (Mapping, list, tuple)):
        return json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)
    return str(value)


def resolve_field(payload: PayloadLike, path: str) -> Tuple[str, bool]:
    """
    Resolve ``path`` against ``payload``.

    Returns ``(value, True)`` on success and ``("", False)`` when any
    segment is missing or an intermediate segment is not a record.
    An empty path or ``"."`` yields the whole payload as canonical JSON.
    """
    payload = as_payload(payload)

    if path in WHOLE_PAYLOAD_PATHS:
        return payload.to_json(), True

    value, found = payload.flat_value(path)
    if found:
        return stringify(value), True

    current: Any = payload.top_level()
    segments = path.split(".")
    for segment in segments[:-1]:
        current = current.get(segment) if isinstance(current, Mapping) else None
        if not isinstance(current, Mapping):
            return "", False

    last = segments[-1]
    if last not in current:
        return "", False
    return stringify(current[last]), True


def require_field(payload: PayloadLike, path: str) -> str:
    """Like :func:`resolve_field` but raises :class:`FieldNotFoundError`."""
    value, found = resolve_field(payload, path)
    if not found:
        raise FieldNotFoundError(path)
    return value
