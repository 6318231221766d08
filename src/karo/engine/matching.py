"""
Alert matching.

A rule applies to an alert when its ``alertName`` equals the alert name
exactly and every matcher evaluates true. Matchers never raise: an
attribute that cannot be resolved, a non-numeric operand or a broken
regular expression all make the matcher evaluate false.
"""

from __future__ import annotations

import logging
import re
from decimal import Decimal, InvalidOperation
from typing import Optional, Tuple

from karo.alert import LABELS
from karo.engine.fields import PayloadLike, as_payload, resolve_field
from karo.models import Matcher, MatchOperator, ReactionRule

logger = logging.getLogger(__name__)


def resolve_matcher_value(matcher: Matcher, payload: PayloadLike) -> Tuple[str, bool]:
    """
    Resolve the attribute a matcher refers to.

    A bare name that is not a top-level field falls back to the label of
    that name, so ``severity`` matches ``labels.severity``. Top-level fields
    win: a label called ``status`` is only reachable as ``labels.status``.
    """
    payload = as_payload(payload)
    path = matcher.attribute_path
    value, found = resolve_field(payload, path)
    if found or "." in path or not path:
        return value, found
    return resolve_field(payload, f"{LABELS}.{path}")


def _first(values) -> Optional[str]:
    return values[0] if values else None


def _to_number(value: Optional[str]) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        number = Decimal(value.strip())
    except (InvalidOperation, AttributeError):
        return None
    if not number.is_finite():
        return None
    return number


def _regex_search(pattern: Optional[str], value: str) -> Optional[bool]:
    """True/False for a match, None when the pattern is missing or invalid."""
    if pattern is None:
        return None
    try:
        return re.search(pattern, value) is not None
    except re.error as e:
        logger.debug(f"Invalid matcher regex {pattern!r}: {e}")
        return None


def evaluate_matcher(matcher: Matcher, payload: PayloadLike) -> bool:
    """Evaluate one matcher against an alert payload."""
    actual, found = resolve_matcher_value(matcher, payload)
    op = matcher.operator

    if op == MatchOperator.EXISTS:
        return found
    if op == MatchOperator.DOES_NOT_EXIST:
        return not found
    if not found:
        # Negated operators do not fire on absent attributes either.
        return False

    expected = _first(matcher.values)

    if op == MatchOperator.EQUAL:
        return expected is not None and actual == expected
    if op == MatchOperator.NOT_EQUAL:
        return actual != expected
    if op == MatchOperator.IN:
        return actual in matcher.values
    if op == MatchOperator.NOT_IN:
        return actual not in matcher.values
    if op in (MatchOperator.GREATER_THAN, MatchOperator.LESS_THAN):
        left, right = _to_number(actual), _to_number(expected)
        if left is None or right is None:
            return False
        return left > right if op == MatchOperator.GREATER_THAN else left < right
    if op in (MatchOperator.REGEX, MatchOperator.NOT_REGEX):
        matched = _regex_search(expected, actual)
        if matched is None:
            return False
        return matched if op == MatchOperator.REGEX else not matched

    return False


def rule_matches(rule: ReactionRule, alert_name: str, payload: PayloadLike) -> bool:
    """Whether ``rule`` applies to the named alert."""
    if rule.alert_name != alert_name:
        return False
    if not rule.matchers:
        return True
    payload = as_payload(payload)
    return all(evaluate_matcher(m, payload) for m in rule.matchers)
