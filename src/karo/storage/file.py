"""
File-based backend for local development.

Reads AlertReaction, ConfigMap and Secret manifests from a YAML file or a
directory of YAML files. Submitted jobs are written as manifests under
``output_dir/<namespace>/<job-name>.yaml`` and rule status under
``output_dir/<namespace>/<rule>.status.yaml``.

Layout:
    rules/
    ├── cpu-reaction.yaml      # kind: AlertReaction
    └── values.yaml            # kind: ConfigMap / Secret
"""

from __future__ import annotations

import base64
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence

import yaml
from kubernetes.client import ApiClient, V1Job
from pydantic import ValidationError

from karo.models import KIND, JobReference, ReactionRule
from karo.storage.base import StorageType, StoreKind, register_backend
from karo.storage.memory import MemoryBackend, ObjectKey

logger = logging.getLogger(__name__)

YAML_SUFFIXES = (".yaml", ".yml")


def iter_manifests(path: Path) -> Iterator[Dict[str, Any]]:
    """Yield every YAML document under ``path`` (file or directory)."""
    if path.is_dir():
        files = sorted(p for p in path.iterdir() if p.suffix in YAML_SUFFIXES)
    else:
        files = [path]

    for file_path in files:
        with open(file_path, "r", encoding="utf-8") as f:
            for doc in yaml.safe_load_all(f):
                if isinstance(doc, dict):
                    yield doc


def to_manifest(obj: Any) -> Dict[str, Any]:
    """Serialize a kubernetes client model to a plain camelCase dict."""
    return ApiClient().sanitize_for_serialization(obj)


def decode_secret_data(doc: Dict[str, Any]) -> Dict[str, str]:
    """Decode a Secret manifest's base64 ``data`` merged with its ``stringData``."""
    data = {
        k: base64.b64decode(v).decode("utf-8")
        for k, v in (doc.get("data") or {}).items()
    }
    data.update({k: str(v) for k, v in (doc.get("stringData") or {}).items()})
    return data


@register_backend(StorageType.FILE)
class FileBackend(MemoryBackend):
    """
    Manifest-directory backend.

    Ideal for:
    - Local development
    - Dry runs (``karo match``)
    - Testing rules without a cluster
    """

    def __init__(
        self,
        namespace: Optional[str] = None,
        rules_path: Optional[str] = None,
        output_dir: Optional[str] = None,
    ):
        super().__init__(namespace=namespace)
        self.rules_path = Path(rules_path or os.environ.get("KARO_RULES_PATH", "."))
        self.output_dir = Path(output_dir) if output_dir else None
        self.reload()

    def reload(self) -> None:
        """Re-read all manifests from ``rules_path``."""
        rules: List[ReactionRule] = []
        stores: Dict[StoreKind, Dict[ObjectKey, Dict[str, str]]] = {
            StoreKind.CONFIG_MAP: {},
            StoreKind.SECRET: {},
        }

        if not self.rules_path.exists():
            logger.warning(f"Rules path {self.rules_path} does not exist")
        else:
            for doc in iter_manifests(self.rules_path):
                kind = doc.get("kind")
                metadata = doc.get("metadata") or {}
                namespace = metadata.get("namespace") or "default"
                name = metadata.get("name", "")

                if kind == KIND:
                    try:
                        rules.append(ReactionRule.from_resource(doc))
                    except ValidationError as e:
                        logger.error(f"Skipping invalid AlertReaction {namespace}/{name}: {e}")
                elif kind == "ConfigMap":
                    stores[StoreKind.CONFIG_MAP][(namespace, name)] = {
                        k: str(v) for k, v in (doc.get("data") or {}).items()
                    }
                elif kind == "Secret":
                    try:
                        data = decode_secret_data(doc)
                    except (ValueError, TypeError) as e:
                        logger.error(f"Skipping invalid Secret {namespace}/{name}: {e}")
                        continue
                    stores[StoreKind.SECRET][(namespace, name)] = data

        # Readers see either the old or the new manifests, never a partial load
        with self._lock:
            self.rules = rules
            self.stores = stores
        logger.debug(f"Loaded {len(rules)} AlertReaction(s) from {self.rules_path}")

    def list_rules(self) -> List[ReactionRule]:
        self.reload()
        return super().list_rules()

    def submit(self, job: V1Job) -> None:
        super().submit(job)
        if self.output_dir is None:
            return
        target = self.output_dir / job.metadata.namespace / f"{job.metadata.name}.yaml"
        target.parent.mkdir(parents=True, exist_ok=True)
        with open(target, "w", encoding="utf-8") as f:
            yaml.safe_dump(to_manifest(job), f, default_flow_style=False, sort_keys=False)
        logger.info(f"Wrote job manifest {target}")

    def record_trigger(
        self,
        rule: ReactionRule,
        jobs: Sequence[JobReference],
        triggered_at: datetime,
    ) -> None:
        super().record_trigger(rule, jobs, triggered_at)
        if self.output_dir is None:
            return
        target = self.output_dir / rule.namespace / f"{rule.name}.status.yaml"
        target.parent.mkdir(parents=True, exist_ok=True)
        with open(target, "w", encoding="utf-8") as f:
            yaml.safe_dump(self.status_of(rule).to_resource(), f, default_flow_style=False)
