"""
Environment resolution for actions.

Each declared env var resolves to a literal, an alert field, or a key
from a ConfigMap/Secret in the rule's namespace. Resolution is
all-or-nothing: the first required reference that cannot be resolved
aborts the whole action.
"""

from __future__ import annotations

import logging
from typing import List, Sequence

from kubernetes.client import V1EnvVar

from karo.engine.fields import PayloadLike, resolve_field
from karo.errors import EnvironmentResolutionError, ReferenceNotFoundError
from karo.models import EnvVar, EnvVarSource
from karo.storage.base import StoreKind, ValueLookup

logger = logging.getLogger(__name__)


class EnvironmentResolver:
    """
    Resolve declared env vars into concrete name/value pairs.

    Example:
        resolver = EnvironmentResolver(backend)
        env = resolver.resolve("monitoring", action.env, payload)
    """

    def __init__(self, lookup: ValueLookup):
        self.lookup = lookup

    def resolve(
        self,
        namespace: str,
        env_vars: Sequence[EnvVar],
        payload: PayloadLike,
    ) -> List[V1EnvVar]:
        """
        Resolve ``env_vars`` in declaration order.

        Raises:
            EnvironmentResolutionError: an alert field did not resolve,
                or a lookup failed.
            ReferenceNotFoundError: a non-optional ConfigMap/Secret key
                is missing.
        """
        result = []
        for env_var in env_vars:
            if env_var.value is not None:
                value = env_var.value
            elif env_var.value_from is not None:
                value = self._resolve_source(namespace, env_var.name, env_var.value_from, payload)
            else:
                value = ""
            result.append(V1EnvVar(name=env_var.name, value=value))
        return result

    def _resolve_source(
        self,
        namespace: str,
        env_name: str,
        source: EnvVarSource,
        payload: PayloadLike,
    ) -> str:
        if source.alert_ref is not None:
            value, found = resolve_field(payload, source.alert_ref.field_path)
            if not found:
                raise EnvironmentResolutionError(
                    env_name, f"alert field {source.alert_ref.field_path!r} not found"
                )
            return value

        if source.config_map_key_ref is not None:
            ref = source.config_map_key_ref
            return self._lookup(namespace, env_name, StoreKind.CONFIG_MAP, ref.name, ref.key, ref.optional)

        if source.secret_key_ref is not None:
            ref = source.secret_key_ref
            return self._lookup(namespace, env_name, StoreKind.SECRET, ref.name, ref.key, ref.optional)

        raise EnvironmentResolutionError(env_name, "no valid source specified")

    def _lookup(
        self,
        namespace: str,
        env_name: str,
        store_kind: StoreKind,
        object_name: str,
        key: str,
        optional: bool,
    ) -> str:
        try:
            value = self.lookup.get_value(namespace, store_kind, object_name, key)
        except EnvironmentResolutionError:
            raise
        except Exception as e:
            raise EnvironmentResolutionError(
                env_name, f"lookup of {store_kind.value} {namespace}/{object_name} failed: {e}"
            ) from e

        if value is not None:
            return value
        if optional:
            logger.debug(
                f"Optional {store_kind.value} key {object_name}/{key} missing, using empty value for {env_name}"
            )
            return ""
        raise ReferenceNotFoundError(env_name, store_kind.value, object_name, key)
