"""
kopf handlers for AlertReaction resources.

Keeps the ``Ready`` condition of each AlertReaction in sync with its
spec. Run with ``karo operator`` (``kopf run -m karo.operator``).
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

import kopf
from pydantic import ValidationError

from karo.models import API_GROUP, API_VERSION, PLURAL, Condition, ReactionRule

logger = logging.getLogger(__name__)

CONDITION_READY = "Ready"
REASON_READY = "AlertReactionReady"
REASON_INVALID_MOUNT = "InvalidVolumeMount"
REASON_INVALID_SPEC = "InvalidSpec"
MESSAGE_READY = "AlertReaction is ready to process alerts"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def ready_condition(now: Optional[datetime] = None) -> Condition:
    return Condition(
        type=CONDITION_READY,
        status="True",
        reason=REASON_READY,
        message=MESSAGE_READY,
        last_transition_time=now or _now(),
    )


def not_ready_condition(reason: str, message: str, now: Optional[datetime] = None) -> Condition:
    return Condition(
        type=CONDITION_READY,
        status="False",
        reason=reason,
        message=message,
        last_transition_time=now or _now(),
    )


def validate_volume_mounts(rule: ReactionRule) -> List[str]:
    """Return one message per action volume mount naming an undeclared volume."""
    declared = set(rule.volume_names())
    problems = []
    for action in rule.actions:
        for mount in action.volume_mounts:
            if mount.name not in declared:
                problems.append(
                    f"action {action.name} mounts undeclared volume {mount.name}"
                )
    return problems


def next_conditions(
    existing: List[Mapping[str, Any]],
    condition: Condition,
) -> Optional[List[Dict[str, Any]]]:
    """
    Append ``condition`` unless the last condition has the same type and status.

    Returns the new list, or None when nothing changes.
    """
    if existing:
        last = existing[-1]
        if last.get("type") == condition.type and last.get("status") == condition.status:
            return None
    return [dict(c) for c in existing] + [condition.to_resource()]


def evaluate(body: Mapping[str, Any], now: Optional[datetime] = None) -> Condition:
    """Compute the Ready condition for an AlertReaction resource."""
    try:
        rule = ReactionRule.from_resource(dict(body))
    except ValidationError as e:
        return not_ready_condition(REASON_INVALID_SPEC, str(e), now)

    problems = validate_volume_mounts(rule)
    if problems:
        return not_ready_condition(REASON_INVALID_MOUNT, "; ".join(problems), now)
    return ready_condition(now)


def reconcile(body: Mapping[str, Any], now: Optional[datetime] = None) -> Optional[List[Dict[str, Any]]]:
    """Conditions to write for ``body``, or None when already up to date."""
    status = body.get("status") or {}
    existing = list(status.get("conditions") or [])
    return next_conditions(existing, evaluate(body, now))


@kopf.on.create(API_GROUP, API_VERSION, PLURAL)
@kopf.on.resume(API_GROUP, API_VERSION, PLURAL)
@kopf.on.update(API_GROUP, API_VERSION, PLURAL)
def sync_ready_condition(body, name, namespace, patch, **_):
    """Set the Ready condition of an AlertReaction."""
    conditions = reconcile(body)
    if conditions is None:
        logger.debug(f"AlertReaction {namespace}/{name} conditions up to date")
        return

    latest = conditions[-1]
    patch.status["conditions"] = conditions
    if latest["status"] == "True":
        logger.info(f"AlertReaction {namespace}/{name} is ready")
    else:
        logger.warning(f"AlertReaction {namespace}/{name} is not ready: {latest['message']}")
