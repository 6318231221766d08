"""
Kubernetes API backend.

Rules are AlertReaction custom resources, env references read ConfigMaps
and Secrets, jobs are created through the batch API and status is written
to the AlertReaction status subresource.
"""

from __future__ import annotations

import base64
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from kubernetes import client, config
from kubernetes.client.rest import ApiException
from pydantic import ValidationError

from karo.errors import SubmissionError
from karo.models import API_GROUP, API_VERSION, PLURAL, JobReference, ReactionRule
from karo.storage.base import BaseBackend, StorageType, StoreKind, register_backend

logger = logging.getLogger(__name__)

K8S_API_CONNECT_TIMEOUT_S = 3
K8S_API_READ_TIMEOUT_S = 5
STATUS_CONFLICT_RETRIES = 5


def load_kube_config(kubeconfig: Optional[str] = None) -> None:
    """Load an explicit kubeconfig, else in-cluster config, else the default kubeconfig."""
    if kubeconfig:
        config.load_kube_config(config_file=kubeconfig)
        return
    try:
        config.load_incluster_config()
    except config.ConfigException:
        config.load_kube_config()


@register_backend(StorageType.KUBERNETES)
class KubernetesBackend(BaseBackend):
    """
    Backend talking to the Kubernetes API.

    Watches all namespaces unless ``namespace`` is given. Every call carries
    a ``(connect, read)`` request timeout so a slow API server only fails
    the action that is waiting on it.

    Requires the AlertReaction CRD to be installed.
    """

    def __init__(
        self,
        namespace: Optional[str] = None,
        kubeconfig: Optional[str] = None,
        connect_timeout_s: float = K8S_API_CONNECT_TIMEOUT_S,
        read_timeout_s: float = K8S_API_READ_TIMEOUT_S,
        api_client: Optional[client.ApiClient] = None,
    ):
        super().__init__(namespace=namespace)

        if api_client is None:
            load_kube_config(kubeconfig)

        self.custom_api = client.CustomObjectsApi(api_client)
        self.core_api = client.CoreV1Api(api_client)
        self.batch_api = client.BatchV1Api(api_client)
        self.request_timeout: Tuple[float, float] = (connect_timeout_s, read_timeout_s)
        logger.debug(f"KubernetesBackend initialized for namespace {namespace or '<all>'}")

    def list_rules(self) -> List[ReactionRule]:
        if self.namespace:
            response = self.custom_api.list_namespaced_custom_object(
                group=API_GROUP,
                version=API_VERSION,
                namespace=self.namespace,
                plural=PLURAL,
                _request_timeout=self.request_timeout,
            )
        else:
            response = self.custom_api.list_cluster_custom_object(
                group=API_GROUP,
                version=API_VERSION,
                plural=PLURAL,
                _request_timeout=self.request_timeout,
            )

        rules = []
        for item in response.get("items", []):
            try:
                rules.append(ReactionRule.from_resource(item))
            except ValidationError as e:
                meta = item.get("metadata", {})
                logger.error(
                    f"Skipping invalid AlertReaction {meta.get('namespace')}/{meta.get('name')}: {e}"
                )
        return rules

    def get_value(
        self,
        namespace: str,
        store_kind: StoreKind,
        object_name: str,
        key: str,
    ) -> Optional[str]:
        try:
            if StoreKind(store_kind) == StoreKind.CONFIG_MAP:
                obj = self.core_api.read_namespaced_config_map(
                    name=object_name, namespace=namespace, _request_timeout=self.request_timeout,
                )
                return (obj.data or {}).get(key)

            obj = self.core_api.read_namespaced_secret(
                name=object_name, namespace=namespace, _request_timeout=self.request_timeout,
            )
        except ApiException as e:
            if e.status == 404:
                return None
            raise

        encoded = (obj.data or {}).get(key)
        if encoded is None:
            return None
        return base64.b64decode(encoded).decode("utf-8")

    def submit(self, job: client.V1Job) -> None:
        target = f"{job.metadata.namespace}/{job.metadata.name}"
        try:
            self.batch_api.create_namespaced_job(
                namespace=job.metadata.namespace,
                body=job,
                _request_timeout=self.request_timeout,
            )
        except ApiException as e:
            raise SubmissionError(f"failed to create job {target}: {e.status} {e.reason}") from e
        except Exception as e:
            # Transport errors (timeouts, refused connections) from urllib3
            raise SubmissionError(f"failed to create job {target}: {e}") from e

    def _get_rule_object(self, rule: ReactionRule) -> Dict[str, Any]:
        return self.custom_api.get_namespaced_custom_object(
            group=API_GROUP,
            version=API_VERSION,
            namespace=rule.namespace,
            plural=PLURAL,
            name=rule.name,
            _request_timeout=self.request_timeout,
        )

    def patch_status(
        self,
        rule: ReactionRule,
        status: Dict[str, Any],
        resource_version: Optional[str] = None,
    ) -> None:
        """
        Merge-patch the status subresource of ``rule``.

        With ``resource_version`` the API server rejects the patch with 409
        if the object changed since it was read.
        """
        body: Dict[str, Any] = {"status": status}
        if resource_version:
            body["metadata"] = {"resourceVersion": resource_version}
        self.custom_api.patch_namespaced_custom_object_status(
            group=API_GROUP,
            version=API_VERSION,
            namespace=rule.namespace,
            plural=PLURAL,
            name=rule.name,
            body=body,
            _request_timeout=self.request_timeout,
        )

    def record_trigger(
        self,
        rule: ReactionRule,
        jobs: Sequence[JobReference],
        triggered_at: datetime,
    ) -> None:
        last_jobs = [j.to_resource() for j in jobs]
        for attempt in range(1, STATUS_CONFLICT_RETRIES + 1):
            obj = self._get_rule_object(rule)
            current = obj.get("status") or {}
            try:
                self.patch_status(
                    rule,
                    {
                        "lastTriggered": triggered_at.isoformat().replace("+00:00", "Z"),
                        "triggerCount": int(current.get("triggerCount", 0)) + 1,
                        "lastJobsCreated": last_jobs,
                    },
                    resource_version=(obj.get("metadata") or {}).get("resourceVersion"),
                )
                return
            except ApiException as e:
                if e.status != 409 or attempt == STATUS_CONFLICT_RETRIES:
                    raise
                logger.debug(
                    f"Status of AlertReaction {rule.namespace}/{rule.name} changed concurrently, "
                    f"retrying ({attempt}/{STATUS_CONFLICT_RETRIES})"
                )
