"""
Alert payload model.

``AlertPayload`` is the typed form of a single alert as seen by the matching
engine: label and annotation maps, top-level scalar fields (status,
timestamps, generator URL, fingerprint), any further nested records, and
optional pre-flattened dotted keys such as ``labels.instance``.

Alertmanager webhook bodies are parsed with :class:`AlertmanagerWebhook`.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

LABELS = "labels"
ANNOTATIONS = "annotations"


class AlertStatus(Enum):
    """Alert status."""
    FIRING = "firing"
    RESOLVED = "resolved"


def _rfc3339(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat().replace("+00:00", "Z")
    return value


@dataclass
class AlertPayload:
    """
    A single alert.

    ``fields`` holds top-level values other than labels and annotations;
    values that are themselves mappings are nested records and can be
    traversed by dotted paths. ``flattened`` holds dotted keys that were
    supplied pre-flattened and are looked up verbatim.
    """
    labels: Dict[str, str] = field(default_factory=dict)
    annotations: Dict[str, str] = field(default_factory=dict)
    fields: Dict[str, Any] = field(default_factory=dict)
    flattened: Dict[str, Any] = field(default_factory=dict)

    @property
    def status(self) -> Optional[str]:
        return self.fields.get("status")

    @property
    def fingerprint(self) -> Optional[str]:
        return self.fields.get("fingerprint")

    @property
    def alert_name(self) -> Optional[str]:
        return self.labels.get("alertname")

    @property
    def is_firing(self) -> bool:
        return self.status == AlertStatus.FIRING.value

    def flat_value(self, key: str) -> Tuple[Any, bool]:
        """Look up a pre-flattened dotted key."""
        if key in self.flattened:
            return self.flattened[key], True
        return None, False

    def top_level(self) -> Dict[str, Any]:
        """The payload as one nested record (labels/annotations as sub-records)."""
        record: Dict[str, Any] = dict(self.fields)
        record[LABELS] = self.labels
        record[ANNOTATIONS] = self.annotations
        return record

    def to_dict(self) -> Dict[str, Any]:
        """Nested record including flattened keys, JSON-compatible."""
        record = {k: _rfc3339(v) for k, v in self.top_level().items()}
        record.update(self.flattened)
        return record

    def to_json(self) -> str:
        """Canonical encoding: sorted keys, compact separators."""
        return json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"), default=str)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AlertPayload":
        """
        Build a payload from a loosely-typed mapping.

        Keys containing a dot are treated as pre-flattened lookup keys.
        ``labels`` and ``annotations`` must be mappings when present.
        """
        labels: Dict[str, str] = {}
        annotations: Dict[str, str] = {}
        fields: Dict[str, Any] = {}
        flattened: Dict[str, Any] = {}

        for key, value in data.items():
            if key in (LABELS, ANNOTATIONS):
                if value is None:
                    continue
                if not isinstance(value, Mapping):
                    raise ValueError(f"alert {key} must be a mapping, got {type(value).__name__}")
                target = labels if key == LABELS else annotations
                target.update({str(k): v for k, v in value.items()})
            elif "." in key:
                flattened[key] = value
            else:
                fields[key] = value

        return cls(labels=labels, annotations=annotations, fields=fields, flattened=flattened)

    @classmethod
    def from_alertmanager_alert(cls, alert: Mapping[str, Any]) -> "AlertPayload":
        """
        Build a payload from one entry of an Alertmanager webhook ``alerts`` list.

        Labels and annotations are additionally exposed as flattened
        ``labels.<name>`` / ``annotations.<name>`` keys.
        """
        labels = dict(alert.get("labels") or {})
        annotations = dict(alert.get("annotations") or {})

        flattened: Dict[str, Any] = {}
        for k, v in labels.items():
            flattened[f"{LABELS}.{k}"] = v
        for k, v in annotations.items():
            flattened[f"{ANNOTATIONS}.{k}"] = v

        return cls(
            labels=labels,
            annotations=annotations,
            fields={
                "status": alert.get("status", AlertStatus.FIRING.value),
                "startsAt": alert.get("startsAt", ""),
                "endsAt": alert.get("endsAt", ""),
                "generatorURL": alert.get("generatorURL", ""),
                "fingerprint": alert.get("fingerprint", ""),
            },
            flattened=flattened,
        )


@dataclass
class AlertmanagerWebhook:
    """Alertmanager webhook body (version 4)."""
    version: str = ""
    group_key: str = ""
    truncated_alerts: int = 0
    status: str = ""
    receiver: str = ""
    group_labels: Dict[str, str] = field(default_factory=dict)
    common_labels: Dict[str, str] = field(default_factory=dict)
    common_annotations: Dict[str, str] = field(default_factory=dict)
    external_url: str = ""
    alerts: List[Dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_json(cls, payload: Any) -> "AlertmanagerWebhook":
        """Parse a decoded JSON body; raises ValueError when malformed."""
        if not isinstance(payload, Mapping):
            raise ValueError("webhook body must be a JSON object")

        alerts = payload.get("alerts") or []
        if not isinstance(alerts, list) or not all(isinstance(a, Mapping) for a in alerts):
            raise ValueError("'alerts' must be a list of objects")

        return cls(
            version=str(payload.get("version", "")),
            group_key=payload.get("groupKey", ""),
            truncated_alerts=int(payload.get("truncatedAlerts") or 0),
            status=payload.get("status", ""),
            receiver=payload.get("receiver", ""),
            group_labels=dict(payload.get("groupLabels") or {}),
            common_labels=dict(payload.get("commonLabels") or {}),
            common_annotations=dict(payload.get("commonAnnotations") or {}),
            external_url=payload.get("externalURL", ""),
            alerts=[dict(a) for a in alerts],
        )

    def __iter__(self) -> Iterator[Dict[str, Any]]:
        return iter(self.alerts)
