"""
Job synthesis.

Turns a matched rule, one of its actions and the alert payload into a
complete ``batch/v1`` Job. Synthesis has no side effects besides the
key/value lookups done by the environment resolver; submitting the job
is left to the caller.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Dict, List, Optional

from kubernetes.client import (
    V1ConfigMapVolumeSource,
    V1Container,
    V1EmptyDirVolumeSource,
    V1HostPathVolumeSource,
    V1Job,
    V1JobSpec,
    V1ObjectMeta,
    V1OwnerReference,
    V1PersistentVolumeClaimVolumeSource,
    V1PodSpec,
    V1PodTemplateSpec,
    V1ResourceRequirements,
    V1SecretVolumeSource,
    V1Volume,
    V1VolumeMount,
)
from kubernetes.utils import parse_quantity

from karo.engine.environment import EnvironmentResolver
from karo.engine.fields import PayloadLike, as_payload
from karo.engine.sanitize import generate_job_name, sanitize_label_value
from karo.errors import EnvironmentResolutionError, SynthesisError, SynthesisStep
from karo.models import Action, ReactionRule, ResourceRequirements, Volume, VolumeMount

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS_AFTER_FINISHED = 300
CONTAINER_NAME = "action"
RESTART_POLICY_NEVER = "Never"

LABEL_APP_NAME = "app.kubernetes.io/name"
LABEL_APP_COMPONENT = "app.kubernetes.io/component"
LABEL_OWNER = "alert-reaction/owner"
LABEL_ALERT_NAME = "alert-reaction/alert-name"
LABEL_ACTION_NAME = "alert-reaction/action-name"

APP_NAME = "alert-reaction-job"
APP_COMPONENT = "job"


def job_labels(rule: ReactionRule, action: Action) -> Dict[str, str]:
    """Identity labels plus sanitized rule/alert/action correlation labels."""
    return {
        LABEL_APP_NAME: APP_NAME,
        LABEL_APP_COMPONENT: APP_COMPONENT,
        LABEL_OWNER: sanitize_label_value(rule.name),
        LABEL_ALERT_NAME: sanitize_label_value(rule.alert_name),
        LABEL_ACTION_NAME: sanitize_label_value(action.name),
    }


def rule_selector(rule: ReactionRule) -> str:
    """Label selector for all jobs produced by ``rule``."""
    return f"{LABEL_OWNER}={sanitize_label_value(rule.name)}"


def convert_resources(resources: Optional[ResourceRequirements]) -> Optional[V1ResourceRequirements]:
    """Validate quantity strings and build the container resource spec."""
    if resources is None:
        return None

    def _checked(section: str, values: Dict[str, str]) -> Dict[str, str]:
        for resource_name, quantity in values.items():
            try:
                parse_quantity(quantity)
            except (ValueError, TypeError, ArithmeticError) as e:
                raise SynthesisError(
                    SynthesisStep.RESOURCES,
                    f"invalid {section} quantity {quantity!r} for {resource_name}: {e}",
                    cause=e,
                ) from e
        return dict(values)

    return V1ResourceRequirements(
        limits=_checked("limits", resources.limits),
        requests=_checked("requests", resources.requests),
    )


def convert_volume(volume: Volume) -> V1Volume:
    """Convert a rule volume; exactly one source kind must be set."""
    sources = volume.sources()
    if len(sources) != 1:
        detail = "no valid source defined" if not sources else (
            f"multiple sources defined: {', '.join(sorted(sources))}"
        )
        raise SynthesisError(SynthesisStep.VOLUMES, f"volume {volume.name} has {detail}")

    if volume.config_map is not None:
        src = volume.config_map
        return V1Volume(
            name=volume.name,
            config_map=V1ConfigMapVolumeSource(
                name=src.name, default_mode=src.default_mode, optional=src.optional,
            ),
        )

    if volume.secret is not None:
        src = volume.secret
        return V1Volume(
            name=volume.name,
            secret=V1SecretVolumeSource(
                secret_name=src.secret_name, default_mode=src.default_mode, optional=src.optional,
            ),
        )

    if volume.empty_dir is not None:
        src = volume.empty_dir
        if src.size_limit:
            try:
                parse_quantity(src.size_limit)
            except (ValueError, TypeError, ArithmeticError) as e:
                raise SynthesisError(
                    SynthesisStep.VOLUMES,
                    f"volume {volume.name} has invalid sizeLimit {src.size_limit!r}",
                    cause=e,
                ) from e
        return V1Volume(
            name=volume.name,
            empty_dir=V1EmptyDirVolumeSource(
                medium=src.medium or None, size_limit=src.size_limit or None,
            ),
        )

    if volume.persistent_volume_claim is not None:
        src = volume.persistent_volume_claim
        return V1Volume(
            name=volume.name,
            persistent_volume_claim=V1PersistentVolumeClaimVolumeSource(
                claim_name=src.claim_name, read_only=src.read_only,
            ),
        )

    src = volume.host_path
    return V1Volume(
        name=volume.name,
        host_path=V1HostPathVolumeSource(path=src.path, type=src.type or None),
    )


def convert_volume_mounts(mounts: List[VolumeMount]) -> List[V1VolumeMount]:
    # Mount names are not checked against the rule's volumes here; the
    # operator validates that when the rule is admitted.
    return [
        V1VolumeMount(
            name=m.name,
            mount_path=m.mount_path,
            sub_path=m.sub_path or None,
            read_only=m.read_only,
        )
        for m in mounts
    ]


class JobSynthesizer:
    """
    Build Jobs for (rule, action, alert) triples.

    Example:
        synthesizer = JobSynthesizer(EnvironmentResolver(backend))
        job = synthesizer.synthesize(rule, rule.actions[0], payload)
    """

    def __init__(
        self,
        env_resolver: EnvironmentResolver,
        ttl_seconds_after_finished: int = DEFAULT_TTL_SECONDS_AFTER_FINISHED,
        clock: Callable[[], float] = time.time,
    ):
        self.env_resolver = env_resolver
        self.ttl_seconds_after_finished = ttl_seconds_after_finished
        self.clock = clock

    def synthesize(self, rule: ReactionRule, action: Action, payload: PayloadLike) -> V1Job:
        """
        Synthesize the Job for one action.

        Raises:
            SynthesisError: with ``step`` set to the failing stage.
        """
        try:
            return self._synthesize(rule, action, as_payload(payload))
        except SynthesisError as e:
            e.rule_name = rule.name
            e.action_name = action.name
            raise

    def _synthesize(self, rule: ReactionRule, action: Action, payload) -> V1Job:
        job_name = generate_job_name(rule.name, action.name, clock=self.clock)
        if not job_name:
            raise SynthesisError(
                SynthesisStep.NAME,
                f"rule {rule.name!r} and action {action.name!r} sanitize to an empty job name",
            )

        try:
            env = self.env_resolver.resolve(rule.namespace, action.env, payload)
        except EnvironmentResolutionError as e:
            raise SynthesisError(
                SynthesisStep.ENVIRONMENT,
                f"failed to process environment variables: {e}",
                cause=e,
            ) from e

        resources = convert_resources(action.resources)
        volumes = [convert_volume(v) for v in rule.volumes]
        volume_mounts = convert_volume_mounts(action.volume_mounts)

        container = V1Container(
            name=CONTAINER_NAME,
            image=action.image,
            command=list(action.command) or None,
            args=list(action.args) or None,
            env=env or None,
            resources=resources,
            volume_mounts=volume_mounts or None,
        )

        metadata = V1ObjectMeta(
            name=job_name,
            namespace=rule.namespace,
            labels=job_labels(rule, action),
            owner_references=[
                V1OwnerReference(
                    api_version=rule.api_version,
                    kind=rule.kind,
                    name=rule.name,
                    uid=rule.uid or "",
                ),
            ],
        )

        return V1Job(
            api_version="batch/v1",
            kind="Job",
            metadata=metadata,
            spec=V1JobSpec(
                ttl_seconds_after_finished=self.ttl_seconds_after_finished,
                template=V1PodTemplateSpec(
                    spec=V1PodSpec(
                        restart_policy=RESTART_POLICY_NEVER,
                        service_account_name=action.service_account or None,
                        volumes=volumes or None,
                        containers=[container],
                    ),
                ),
            ),
        )
