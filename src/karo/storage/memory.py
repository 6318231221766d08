"""
In-memory backend.

Holds rules, ConfigMap/Secret data, submitted jobs and rule status in
process memory. Used for tests and dry runs.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from kubernetes.client import V1Job

from karo.errors import SubmissionError
from karo.models import JobReference, ReactionRule, ReactionStatus
from karo.storage.base import BaseBackend, StorageType, StoreKind, register_backend

logger = logging.getLogger(__name__)

ObjectKey = Tuple[str, str]


@register_backend(StorageType.MEMORY)
class MemoryBackend(BaseBackend):
    """
    Backend keeping everything in dictionaries.

    Example:
        backend = MemoryBackend(rules=[rule])
        backend.put_secret("default", "db", {"password": "s3cret"})
    """

    def __init__(
        self,
        namespace: Optional[str] = None,
        rules: Optional[Iterable[ReactionRule]] = None,
    ):
        super().__init__(namespace=namespace)
        self.rules: List[ReactionRule] = list(rules or [])
        self.stores: Dict[StoreKind, Dict[ObjectKey, Dict[str, str]]] = {
            StoreKind.CONFIG_MAP: {},
            StoreKind.SECRET: {},
        }
        self.jobs: List[V1Job] = []
        self.statuses: Dict[ObjectKey, ReactionStatus] = {}
        self._lock = threading.Lock()

    def add_rule(self, rule: ReactionRule) -> None:
        with self._lock:
            self.rules.append(rule)

    def put_config_map(self, namespace: str, name: str, data: Dict[str, str]) -> None:
        with self._lock:
            self.stores[StoreKind.CONFIG_MAP][(namespace, name)] = dict(data)

    def put_secret(self, namespace: str, name: str, data: Dict[str, str]) -> None:
        with self._lock:
            self.stores[StoreKind.SECRET][(namespace, name)] = dict(data)

    def status_of(self, rule: ReactionRule) -> ReactionStatus:
        with self._lock:
            return self.statuses.get((rule.namespace, rule.name), ReactionStatus())

    def list_rules(self) -> List[ReactionRule]:
        with self._lock:
            rules = list(self.rules)
        if self.namespace:
            return [r for r in rules if r.namespace == self.namespace]
        return rules

    def get_value(
        self,
        namespace: str,
        store_kind: StoreKind,
        object_name: str,
        key: str,
    ) -> Optional[str]:
        with self._lock:
            data = self.stores[StoreKind(store_kind)].get((namespace, object_name))
        if data is None:
            return None
        return data.get(key)

    def submit(self, job: V1Job) -> None:
        with self._lock:
            for existing in self.jobs:
                if (
                    existing.metadata.name == job.metadata.name
                    and existing.metadata.namespace == job.metadata.namespace
                ):
                    raise SubmissionError(f"job {job.metadata.name} already exists")
            self.jobs.append(job)
        logger.debug(f"Stored job {job.metadata.namespace}/{job.metadata.name}")

    def record_trigger(
        self,
        rule: ReactionRule,
        jobs: Sequence[JobReference],
        triggered_at: datetime,
    ) -> None:
        with self._lock:
            key = (rule.namespace, rule.name)
            status = self.statuses.get(key, ReactionStatus())
            self.statuses[key] = status.model_copy(update={
                "last_triggered": triggered_at,
                "trigger_count": status.trigger_count + 1,
                "last_jobs_created": list(jobs),
            })
