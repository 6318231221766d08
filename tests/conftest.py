"""
Pytest configuration and fixtures for karo tests.
"""

from __future__ import annotations

import io
import json
import logging
import os
from typing import Any, Dict, Generator, List

import pytest

from karo.alert import AlertPayload
from karo.config import reset_config
from karo.engine import build_processor
from karo.logger import EVENTS_LOGGER_NAME, ReactionLogger
from karo.models import ReactionRule
from karo.storage import MemoryBackend


# ============================================================================
# Environment Fixtures
# ============================================================================


@pytest.fixture
def clean_config(monkeypatch) -> Generator[None, None, None]:
    """Start from default configuration, ignoring KARO_* variables."""
    for key in list(os.environ):
        if key.startswith("KARO_"):
            monkeypatch.delenv(key, raising=False)
    reset_config()
    yield
    reset_config()


# ============================================================================
# Model Fixtures
# ============================================================================


def make_rule(
    name: str = "cpu-reaction",
    alert_name: str = "HighCPUUsage",
    namespace: str = "monitoring",
    **spec: Any,
) -> ReactionRule:
    """Build a rule from custom-resource style fields."""
    spec.setdefault("actions", [{"name": "scale-up", "image": "busybox", "command": ["echo", "hi"]}])
    return ReactionRule.from_resource({
        "apiVersion": "alertreaction.io/v1alpha1",
        "kind": "AlertReaction",
        "metadata": {"name": name, "namespace": namespace, "uid": f"uid-{name}"},
        "spec": {"alertName": alert_name, **spec},
    })


@pytest.fixture
def sample_rule_resource() -> Dict[str, Any]:
    """Sample AlertReaction resource as returned by the API."""
    return {
        "apiVersion": "alertreaction.io/v1alpha1",
        "kind": "AlertReaction",
        "metadata": {
            "name": "cpu-reaction",
            "namespace": "monitoring",
            "uid": "0f6c3b8e-1111-2222-3333-444455556666",
        },
        "spec": {
            "alertName": "HighCPUUsage",
            "matchers": [
                {"name": "severity", "operator": "Equal", "values": ["critical"]},
            ],
            "actions": [
                {
                    "name": "scale-up",
                    "image": "bitnami/kubectl:latest",
                    "command": ["kubectl", "scale"],
                    "args": ["--replicas=3", "deployment/web"],
                    "serviceAccount": "scaler",
                    "env": [
                        {"name": "STATIC", "value": "yes"},
                        {"name": "INSTANCE", "valueFrom": {"alertRef": {"fieldPath": "labels.instance"}}},
                    ],
                    "resources": {
                        "limits": {"cpu": "500m", "memory": "128Mi"},
                        "requests": {"cpu": "100m"},
                    },
                    "volumeMounts": [{"name": "scratch", "mountPath": "/scratch"}],
                },
            ],
            "volumes": [{"name": "scratch", "emptyDir": {"sizeLimit": "1Gi"}}],
        },
    }


@pytest.fixture
def sample_rule(sample_rule_resource) -> ReactionRule:
    return ReactionRule.from_resource(sample_rule_resource)


@pytest.fixture
def firing_alert() -> Dict[str, Any]:
    """One alert as it appears in an Alertmanager webhook body."""
    return {
        "status": "firing",
        "labels": {
            "alertname": "HighCPUUsage",
            "severity": "critical",
            "instance": "node-1:9100",
        },
        "annotations": {"summary": "CPU above 90%"},
        "startsAt": "2024-01-01T00:00:00Z",
        "endsAt": "0001-01-01T00:00:00Z",
        "generatorURL": "http://prometheus/graph",
        "fingerprint": "abc123",
    }


@pytest.fixture
def payload(firing_alert) -> AlertPayload:
    return AlertPayload.from_alertmanager_alert(firing_alert)


@pytest.fixture
def webhook_body(firing_alert) -> Dict[str, Any]:
    return {
        "version": "4",
        "groupKey": "{}:{alertname=\"HighCPUUsage\"}",
        "status": "firing",
        "receiver": "karo",
        "groupLabels": {"alertname": "HighCPUUsage"},
        "commonLabels": {"alertname": "HighCPUUsage"},
        "commonAnnotations": {},
        "externalURL": "http://alertmanager:9093",
        "alerts": [firing_alert],
    }


# ============================================================================
# Backend Fixtures
# ============================================================================


@pytest.fixture
def backend(sample_rule) -> MemoryBackend:
    return MemoryBackend(rules=[sample_rule])


@pytest.fixture
def processor(backend):
    return build_processor(backend, synthesis_timeout_s=5.0)


# ============================================================================
# Logging Fixtures
# ============================================================================


@pytest.fixture
def captured_events() -> Generator[io.StringIO, None, None]:
    """Capture output of the structured event logger."""
    output = io.StringIO()
    events_logger = logging.getLogger(EVENTS_LOGGER_NAME)
    original = list(events_logger.handlers)

    events_logger.handlers.clear()
    handler = logging.StreamHandler(output)
    handler.setFormatter(logging.Formatter("%(message)s"))
    events_logger.addHandler(handler)

    yield output

    events_logger.handlers.clear()
    events_logger.handlers.extend(original)


@pytest.fixture
def events(captured_events) -> ReactionLogger:
    return ReactionLogger(service_name="test-service")


def parse_events(output: io.StringIO) -> List[Dict[str, Any]]:
    """All JSON log lines written so far."""
    return [json.loads(line) for line in output.getvalue().splitlines() if line.strip()]


@pytest.fixture
def rule_factory():
    return make_rule


@pytest.fixture
def read_events(captured_events):
    """Callable returning the parsed events captured so far."""
    return lambda: parse_events(captured_events)
