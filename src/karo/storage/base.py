"""
Collaborator interfaces and backend factory.

The matching engine reads rules and external key/value data, and its
caller submits jobs and records rule status. Each concern is a small
protocol; a backend implements all four for one environment.
"""

from __future__ import annotations

import logging
import os
from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, Sequence, Type, runtime_checkable

from kubernetes.client import V1Job

from karo.models import JobReference, ReactionRule

logger = logging.getLogger(__name__)


class StorageType(str, Enum):
    """Available backend types."""
    KUBERNETES = "kubernetes"
    FILE = "file"
    MEMORY = "memory"


class StoreKind(str, Enum):
    """External key/value stores an env var can reference."""
    CONFIG_MAP = "ConfigMap"
    SECRET = "Secret"


@runtime_checkable
class RuleSource(Protocol):
    def list_rules(self) -> List[ReactionRule]:
        """Return all currently defined rules."""
        ...


@runtime_checkable
class ValueLookup(Protocol):
    def get_value(
        self,
        namespace: str,
        store_kind: StoreKind,
        object_name: str,
        key: str,
    ) -> Optional[str]:
        """
        Return the value of ``key`` in the named object.

        Returns None when the object or the key does not exist; raises
        on any other failure (timeouts, permission errors, ...).
        """
        ...


@runtime_checkable
class JobSink(Protocol):
    def submit(self, job: V1Job) -> None:
        """Create the job; raises SubmissionError when rejected."""
        ...


@runtime_checkable
class StatusSink(Protocol):
    def record_trigger(
        self,
        rule: ReactionRule,
        jobs: Sequence[JobReference],
        triggered_at: datetime,
    ) -> None:
        """Bump the trigger counter and store the jobs created for ``rule``."""
        ...


class BaseBackend(ABC):
    """
    Base class for backends implementing every collaborator protocol.
    """

    def __init__(self, namespace: Optional[str] = None):
        self.namespace = namespace

    @abstractmethod
    def list_rules(self) -> List[ReactionRule]:
        pass

    @abstractmethod
    def get_value(
        self,
        namespace: str,
        store_kind: StoreKind,
        object_name: str,
        key: str,
    ) -> Optional[str]:
        pass

    @abstractmethod
    def submit(self, job: V1Job) -> None:
        pass

    @abstractmethod
    def record_trigger(
        self,
        rule: ReactionRule,
        jobs: Sequence[JobReference],
        triggered_at: datetime,
    ) -> None:
        pass


_BACKENDS: Dict[StorageType, Type[BaseBackend]] = {}


def register_backend(storage_type: StorageType):
    """Decorator to register a backend."""
    def decorator(cls: Type[BaseBackend]) -> Type[BaseBackend]:
        _BACKENDS[storage_type] = cls
        return cls
    return decorator


def get_backend(
    storage_type: Optional[StorageType] = None,
    namespace: Optional[str] = None,
    **kwargs: Any,
) -> BaseBackend:
    """
    Get a backend instance.

    Auto-detects when ``storage_type`` is not given: Kubernetes when
    running in-cluster or a kubeconfig is present, file backend otherwise.
    """
    # Import backends to register them
    from karo.storage import file, kubernetes, memory  # noqa: F401

    if storage_type is None:
        storage_type = _detect_storage_type()
    storage_type = StorageType(storage_type)

    if storage_type not in _BACKENDS:
        raise ValueError(f"Unknown storage type: {storage_type}")

    backend_class = _BACKENDS[storage_type]
    return backend_class(namespace=namespace, **kwargs)


def _detect_storage_type() -> StorageType:
    """Auto-detect the appropriate backend type."""
    if os.path.exists("/var/run/secrets/kubernetes.io/serviceaccount"):
        logger.info("Detected in-cluster Kubernetes environment")
        return StorageType.KUBERNETES

    if os.environ.get("KUBECONFIG"):
        logger.info("Detected KUBECONFIG environment variable")
        return StorageType.KUBERNETES

    if os.path.exists(os.path.expanduser("~/.kube/config")):
        logger.info("Detected local kubeconfig file")
        return StorageType.KUBERNETES

    logger.info("No Kubernetes detected, using file backend")
    return StorageType.FILE


def backend_from_config(cfg: Any) -> BaseBackend:
    """Build the backend selected by a :class:`karo.config.KaroConfig`."""
    if cfg.storage_type == "auto":
        storage_type = _detect_storage_type()
    else:
        storage_type = StorageType(cfg.storage_type)
    return get_backend(storage_type, namespace=cfg.namespace, **cfg.backend_kwargs(storage_type))
