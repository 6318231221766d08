"""
Backends for the collaborators around the matching engine.

- Kubernetes (AlertReaction CRDs, ConfigMaps/Secrets, batch Jobs)
- Local development (manifest files)
- Tests (in memory)

Example:
    from karo.storage import get_backend, StorageType

    # Auto-detect backend
    backend = get_backend()

    # Explicitly use manifest files for local dev
    backend = get_backend(StorageType.FILE, rules_path="./rules")
"""

from karo.storage.base import (
    BaseBackend,
    JobSink,
    RuleSource,
    StatusSink,
    StorageType,
    StoreKind,
    ValueLookup,
    backend_from_config,
    get_backend,
)
from karo.storage.file import FileBackend
from karo.storage.kubernetes import KubernetesBackend
from karo.storage.memory import MemoryBackend

__all__ = [
    "BaseBackend",
    "FileBackend",
    "JobSink",
    "KubernetesBackend",
    "MemoryBackend",
    "RuleSource",
    "StatusSink",
    "StorageType",
    "StoreKind",
    "ValueLookup",
    "backend_from_config",
    "get_backend",
]
