"""
Alert matching and job synthesis engine.

Example:
    from karo.engine import build_processor
    from karo.storage import get_backend, StorageType

    backend = get_backend(StorageType.MEMORY)
    processor = build_processor(backend)
    result = processor.process_alert("HighCPUUsage", payload)
"""

from karo.engine.environment import EnvironmentResolver
from karo.engine.fields import require_field, resolve_field
from karo.engine.matching import evaluate_matcher, rule_matches
from karo.engine.processor import (
    ActionOutcome,
    AlertProcessor,
    DEFAULT_MAX_WORKERS,
    DEFAULT_SYNTHESIS_TIMEOUT_S,
    ProcessResult,
    RuleTrigger,
)
from karo.engine.sanitize import generate_job_name, sanitize_label_value, sanitize_name
from karo.engine.synthesizer import DEFAULT_TTL_SECONDS_AFTER_FINISHED, JobSynthesizer


def build_processor(
    backend,
    ttl_seconds_after_finished: int = DEFAULT_TTL_SECONDS_AFTER_FINISHED,
    max_workers: int = DEFAULT_MAX_WORKERS,
    synthesis_timeout_s: float = DEFAULT_SYNTHESIS_TIMEOUT_S,
) -> AlertProcessor:
    """Wire a processor whose rules and lookups both come from ``backend``."""
    synthesizer = JobSynthesizer(
        EnvironmentResolver(backend),
        ttl_seconds_after_finished=ttl_seconds_after_finished,
    )
    return AlertProcessor(
        backend,
        synthesizer,
        max_workers=max_workers,
        synthesis_timeout_s=synthesis_timeout_s,
    )


__all__ = [
    "ActionOutcome",
    "AlertProcessor",
    "EnvironmentResolver",
    "JobSynthesizer",
    "ProcessResult",
    "RuleTrigger",
    "build_processor",
    "evaluate_matcher",
    "generate_job_name",
    "require_field",
    "resolve_field",
    "rule_matches",
    "sanitize_label_value",
    "sanitize_name",
]
