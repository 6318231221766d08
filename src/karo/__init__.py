"""
karo - Kubernetes Alert Reaction Operator.

Turns firing Prometheus/Alertmanager alerts into Kubernetes Jobs. An
AlertReaction resource binds an alert name (plus optional matchers on the
alert's labels, annotations and fields) to a list of container actions;
each matching alert creates one Job per action, with environment values
taken from the alert, ConfigMaps or Secrets.

Example usage:
    from karo import AlertPayload, build_processor
    from karo.storage import get_backend, StorageType

    backend = get_backend(StorageType.FILE, rules_path="./rules")
    processor = build_processor(backend)
    result = processor.process_alert("HighCPUUsage", AlertPayload.from_dict({
        "labels": {"alertname": "HighCPUUsage", "severity": "critical"},
    }))
    for job in result.jobs:
        print(job.metadata.name)
"""

__version__ = "0.1.0"
__all__ = [
    "AlertDispatcher",
    "AlertPayload",
    "AlertProcessor",
    "ReactionRule",
    "build_processor",
    "__version__",
]


# Lazy imports to avoid loading the kubernetes client at import time
def __getattr__(name: str):
    if name == "AlertDispatcher":
        from karo.dispatcher import AlertDispatcher
        return AlertDispatcher
    if name == "AlertPayload":
        from karo.alert import AlertPayload
        return AlertPayload
    if name == "AlertProcessor":
        from karo.engine.processor import AlertProcessor
        return AlertProcessor
    if name == "ReactionRule":
        from karo.models import ReactionRule
        return ReactionRule
    if name == "build_processor":
        from karo.engine import build_processor
        return build_processor
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
