"""
Kubernetes identifier sanitization.

Resource names must be DNS-1123 labels: lowercase alphanumerics and '-',
starting and ending with an alphanumeric, at most 63 characters. Label
values allow mixed case plus '_' and '.', with the same boundary and
length rules. Both transforms are total and idempotent.
"""

from __future__ import annotations

import re
import secrets
import string
import time
from typing import Callable, Optional

MAX_NAME_LENGTH = 63
MAX_LABEL_VALUE_LENGTH = 63
SUFFIX_RANDOM_LENGTH = 8

_NAME_INVALID = re.compile(r"[^a-z0-9-]")
_NAME_LEADING = re.compile(r"^[^a-z0-9]+")
_NAME_TRAILING = re.compile(r"[^a-z0-9]+$")

_LABEL_INVALID = re.compile(r"[^A-Za-z0-9_.-]")
_LABEL_LEADING = re.compile(r"^[^A-Za-z0-9]+")
_LABEL_TRAILING = re.compile(r"[^A-Za-z0-9]+$")

_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits


def sanitize_name(value: str, max_length: int = MAX_NAME_LENGTH) -> str:
    """Normalize ``value`` into a DNS-1123 label (may be empty)."""
    name = _NAME_INVALID.sub("-", value.lower())
    name = _NAME_LEADING.sub("", name)
    name = name[:max_length]
    return _NAME_TRAILING.sub("", name)


def sanitize_label_value(value: str) -> str:
    """Normalize ``value`` into a valid label value (may be empty)."""
    label = _LABEL_INVALID.sub("-", value)
    label = _LABEL_LEADING.sub("", label)
    label = label[:MAX_LABEL_VALUE_LENGTH]
    return _LABEL_TRAILING.sub("", label)


def random_suffix(length: int = SUFFIX_RANDOM_LENGTH) -> str:
    return "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(length))


def generate_job_name(
    rule_name: str,
    action_name: str,
    clock: Callable[[], float] = time.time,
    suffix: Optional[str] = None,
) -> str:
    """
    Compose a unique job name ``{rule}-{action}-{epoch}-{random}``.

    The ``{epoch}-{random}`` suffix is never truncated; the sanitized
    ``{rule}-{action}`` prefix is shortened to make room for it. Returns
    an empty string when the prefix sanitizes to nothing.
    """
    prefix = sanitize_name(f"{rule_name}-{action_name}")
    if not prefix:
        return ""
    tail = f"{int(clock())}-{suffix or random_suffix()}"
    prefix = sanitize_name(prefix, max_length=MAX_NAME_LENGTH - len(tail) - 1)
    if not prefix:
        return tail
    return f"{prefix}-{tail}"
