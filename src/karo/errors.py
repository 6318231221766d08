"""
Exception hierarchy for karo.

Engine functions raise these; the alert processor turns them into
per-action outcomes so one failing action never stops a batch.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


class KaroError(Exception):
    """Base class for all karo errors."""


class FieldNotFoundError(KaroError):
    """A dotted path did not resolve against an alert payload."""

    def __init__(self, path: str, reason: str = "not found"):
        self.path = path
        super().__init__(f"alert field {path!r} {reason}")


class EnvironmentResolutionError(KaroError):
    """An action's environment could not be resolved."""

    def __init__(self, env_name: str, message: str):
        self.env_name = env_name
        super().__init__(f"failed to resolve env var {env_name}: {message}")


class ReferenceNotFoundError(EnvironmentResolutionError):
    """A required ConfigMap/Secret, or a key in it, does not exist."""

    def __init__(self, env_name: str, store_kind: str, object_name: str, key: str):
        self.store_kind = store_kind
        self.object_name = object_name
        self.key = key
        super().__init__(env_name, f"key {key} not found in {store_kind} {object_name}")


class SynthesisStep(str, Enum):
    """Steps of job synthesis, used to report where synthesis failed."""
    NAME = "name"
    ENVIRONMENT = "environment"
    RESOURCES = "resources"
    VOLUMES = "volumes"


class SynthesisError(KaroError):
    """Job synthesis failed for one (rule, action) pair."""

    def __init__(
        self,
        step: SynthesisStep,
        message: str,
        rule_name: str = "",
        action_name: str = "",
        cause: Optional[BaseException] = None,
    ):
        self.step = step
        self.rule_name = rule_name
        self.action_name = action_name
        self.cause = cause
        super().__init__(f"{step.value}: {message}")


class SubmissionError(KaroError):
    """The job sink rejected a synthesized job."""
