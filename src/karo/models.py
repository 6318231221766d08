"""
Pydantic models for the AlertReaction custom resource.

These models mirror the OpenAPI schema of ``alertreactions.alertreaction.io``
so that raw custom-resource dicts (as returned by the Kubernetes API or
loaded from YAML) validate directly. Field names are snake_case in Python
and camelCase on the wire.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

API_GROUP = "alertreaction.io"
API_VERSION = "v1alpha1"
KIND = "AlertReaction"
PLURAL = "alertreactions"


class _Model(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def to_resource(self) -> Dict[str, Any]:
        """Dump using wire (camelCase) names, omitting unset optionals."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class MatchOperator(str, Enum):
    """Comparison operators supported by alert matchers."""
    EQUAL = "Equal"
    NOT_EQUAL = "NotEqual"
    IN = "In"
    NOT_IN = "NotIn"
    EXISTS = "Exists"
    DOES_NOT_EXIST = "DoesNotExist"
    GREATER_THAN = "GreaterThan"
    LESS_THAN = "LessThan"
    REGEX = "Regex"
    NOT_REGEX = "NotRegex"


class Matcher(_Model):
    """A single attribute condition of a reaction rule."""
    attribute_path: str = Field(..., alias="name", description="Dotted alert attribute path")
    operator: MatchOperator = Field(..., description="Comparison operator")
    values: List[str] = Field(default_factory=list, description="Expected value(s)")

    @field_validator("values", mode="before")
    @classmethod
    def _stringify_values(cls, v: Any) -> Any:
        # YAML authors write `values: [80]`
        if isinstance(v, list):
            return [str(item) if not isinstance(item, str) else item for item in v]
        return v


class AlertFieldSelector(_Model):
    field_path: str = Field("", alias="fieldPath", description="Dotted path into the alert")


class ConfigMapKeySelector(_Model):
    name: str
    key: str
    optional: bool = False


class SecretKeySelector(_Model):
    name: str
    key: str
    optional: bool = False


class EnvVarSource(_Model):
    """Exactly one source must be selected."""
    alert_ref: Optional[AlertFieldSelector] = Field(None, alias="alertRef")
    config_map_key_ref: Optional[ConfigMapKeySelector] = Field(None, alias="configMapKeyRef")
    secret_key_ref: Optional[SecretKeySelector] = Field(None, alias="secretKeyRef")

    @model_validator(mode="after")
    def _one_source(self) -> "EnvVarSource":
        selected = [
            s for s in (self.alert_ref, self.config_map_key_ref, self.secret_key_ref)
            if s is not None
        ]
        if len(selected) != 1:
            raise ValueError(
                "valueFrom must set exactly one of alertRef, configMapKeyRef, secretKeyRef"
            )
        return self


class EnvVar(_Model):
    """Environment variable declared on an action."""
    name: str
    value: Optional[str] = None
    value_from: Optional[EnvVarSource] = Field(None, alias="valueFrom")

    @model_validator(mode="after")
    def _value_or_source(self) -> "EnvVar":
        if self.value is not None and self.value_from is not None:
            raise ValueError(f"env var {self.name}: value and valueFrom are mutually exclusive")
        return self


class ResourceRequirements(_Model):
    limits: Dict[str, str] = Field(default_factory=dict)
    requests: Dict[str, str] = Field(default_factory=dict)


class ConfigMapVolumeSource(_Model):
    name: str
    default_mode: Optional[int] = Field(None, alias="defaultMode")
    optional: Optional[bool] = None


class SecretVolumeSource(_Model):
    secret_name: str = Field(..., alias="secretName")
    default_mode: Optional[int] = Field(None, alias="defaultMode")
    optional: Optional[bool] = None


class EmptyDirVolumeSource(_Model):
    medium: Optional[str] = None
    size_limit: Optional[str] = Field(None, alias="sizeLimit")


class PersistentVolumeClaimVolumeSource(_Model):
    claim_name: str = Field(..., alias="claimName")
    read_only: bool = Field(False, alias="readOnly")


class HostPathVolumeSource(_Model):
    path: str
    type: Optional[str] = None


class Volume(_Model):
    """
    Named volume shared by all actions of a rule.

    Exactly one source should be set. This is checked when the volume is
    converted for a job, not here, so a malformed rule still loads and
    fails per action.
    """
    name: str
    config_map: Optional[ConfigMapVolumeSource] = Field(None, alias="configMap")
    secret: Optional[SecretVolumeSource] = None
    empty_dir: Optional[EmptyDirVolumeSource] = Field(None, alias="emptyDir")
    persistent_volume_claim: Optional[PersistentVolumeClaimVolumeSource] = Field(
        None, alias="persistentVolumeClaim"
    )
    host_path: Optional[HostPathVolumeSource] = Field(None, alias="hostPath")

    def sources(self) -> Dict[str, Any]:
        """Return the source kinds that are set, keyed by wire name."""
        candidates = {
            "configMap": self.config_map,
            "secret": self.secret,
            "emptyDir": self.empty_dir,
            "persistentVolumeClaim": self.persistent_volume_claim,
            "hostPath": self.host_path,
        }
        return {k: v for k, v in candidates.items() if v is not None}


class VolumeMount(_Model):
    name: str
    mount_path: str = Field(..., alias="mountPath")
    sub_path: Optional[str] = Field(None, alias="subPath")
    read_only: bool = Field(False, alias="readOnly")


class Action(_Model):
    """Template for one job created when the rule fires."""
    name: str
    image: str
    command: List[str] = Field(default_factory=list)
    args: List[str] = Field(default_factory=list)
    env: List[EnvVar] = Field(default_factory=list)
    resources: Optional[ResourceRequirements] = None
    volume_mounts: List[VolumeMount] = Field(default_factory=list, alias="volumeMounts")
    service_account: Optional[str] = Field(None, alias="serviceAccount")


class ReactionRule(_Model):
    """
    An AlertReaction: binds an alert name and matchers to actions.

    Identity fields come from the resource metadata; the rest from ``spec``.
    Use :meth:`from_resource` to build one from a custom-resource dict.
    """
    name: str
    namespace: str = "default"
    uid: Optional[str] = None
    api_version: str = Field(f"{API_GROUP}/{API_VERSION}", alias="apiVersion")
    kind: str = KIND
    alert_name: str = Field(..., alias="alertName")
    matchers: List[Matcher] = Field(default_factory=list)
    actions: List[Action] = Field(..., min_length=1)
    volumes: List[Volume] = Field(default_factory=list)

    @classmethod
    def from_resource(cls, obj: Dict[str, Any]) -> "ReactionRule":
        """Build a rule from an ``AlertReaction`` custom-resource dict."""
        metadata = obj.get("metadata") or {}
        spec = obj.get("spec") or {}
        return cls.model_validate({
            "apiVersion": obj.get("apiVersion", f"{API_GROUP}/{API_VERSION}"),
            "kind": obj.get("kind", KIND),
            "name": metadata.get("name", ""),
            "namespace": metadata.get("namespace") or "default",
            "uid": metadata.get("uid"),
            **spec,
        })

    def volume_names(self) -> List[str]:
        return [v.name for v in self.volumes]


class JobReference(_Model):
    """Reference to a job created for a rule."""
    name: str
    namespace: str
    action_name: str = Field(..., alias="actionName")
    created_at: datetime = Field(..., alias="createdAt")


class Condition(_Model):
    type: str
    status: str
    reason: str = ""
    message: str = ""
    last_transition_time: Optional[datetime] = Field(None, alias="lastTransitionTime")


class ReactionStatus(_Model):
    """Observed state of an AlertReaction."""
    last_triggered: Optional[datetime] = Field(None, alias="lastTriggered")
    trigger_count: int = Field(0, alias="triggerCount")
    last_jobs_created: List[JobReference] = Field(default_factory=list, alias="lastJobsCreated")
    conditions: List[Condition] = Field(default_factory=list)
