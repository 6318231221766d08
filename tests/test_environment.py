"""
Tests for environment variable resolution.
"""

from unittest.mock import MagicMock

import pytest

from karo.alert import AlertPayload
from karo.engine.environment import EnvironmentResolver
from karo.errors import EnvironmentResolutionError, ReferenceNotFoundError
from karo.models import EnvVar
from karo.storage import MemoryBackend, StoreKind


def env(**fields):
    return EnvVar.model_validate(fields)


@pytest.fixture
def store():
    backend = MemoryBackend()
    backend.put_config_map("monitoring", "settings", {"region": "eu-west-1"})
    backend.put_secret("monitoring", "credentials", {"token": "s3cret"})
    return backend


@pytest.fixture
def resolver(store):
    return EnvironmentResolver(store)


@pytest.fixture
def alert():
    return AlertPayload.from_dict({"labels": {"instance": "host1", "severity": "critical"}})


def as_pairs(env_vars):
    return [(e.name, e.value) for e in env_vars]


class TestLiteralAndAlertValues:
    def test_literal_value(self, resolver, alert):
        result = resolver.resolve("monitoring", [env(name="MODE", value="fast")], alert)
        assert as_pairs(result) == [("MODE", "fast")]

    def test_alert_reference(self, resolver, alert):
        var = env(name="X", valueFrom={"alertRef": {"fieldPath": "labels.instance"}})
        assert as_pairs(resolver.resolve("monitoring", [var], alert)) == [("X", "host1")]

    def test_missing_alert_field_fails(self, resolver, alert):
        var = env(name="X", valueFrom={"alertRef": {"fieldPath": "labels.absent"}})
        with pytest.raises(EnvironmentResolutionError) as exc_info:
            resolver.resolve("monitoring", [var], alert)
        assert exc_info.value.env_name == "X"
        assert "labels.absent" in str(exc_info.value)

    def test_whole_alert_as_json(self, resolver, alert):
        var = env(name="ALERT", valueFrom={"alertRef": {"fieldPath": "."}})
        (result,) = resolver.resolve("monitoring", [var], alert)
        assert '"instance":"host1"' in result.value

    def test_no_value_and_no_source_is_empty(self, resolver, alert):
        assert as_pairs(resolver.resolve("monitoring", [env(name="EMPTY")], alert)) == [("EMPTY", "")]

    def test_declaration_order_is_kept(self, resolver, alert):
        env_vars = [
            env(name="B", value="2"),
            env(name="A", valueFrom={"alertRef": {"fieldPath": "labels.severity"}}),
            env(name="C", valueFrom={"configMapKeyRef": {"name": "settings", "key": "region"}}),
        ]
        result = resolver.resolve("monitoring", env_vars, alert)
        assert as_pairs(result) == [("B", "2"), ("A", "critical"), ("C", "eu-west-1")]


class TestExternalReferences:
    def test_config_map_key(self, resolver, alert):
        var = env(name="REGION", valueFrom={"configMapKeyRef": {"name": "settings", "key": "region"}})
        assert as_pairs(resolver.resolve("monitoring", [var], alert)) == [("REGION", "eu-west-1")]

    def test_secret_key(self, resolver, alert):
        var = env(name="TOKEN", valueFrom={"secretKeyRef": {"name": "credentials", "key": "token"}})
        assert as_pairs(resolver.resolve("monitoring", [var], alert)) == [("TOKEN", "s3cret")]

    def test_lookup_uses_rule_namespace(self, resolver, alert):
        var = env(name="TOKEN", valueFrom={"secretKeyRef": {"name": "credentials", "key": "token"}})
        with pytest.raises(ReferenceNotFoundError):
            resolver.resolve("other", [var], alert)

    def test_missing_required_secret_key(self, resolver, alert):
        var = env(name="PASSWORD", valueFrom={"secretKeyRef": {"name": "credentials", "key": "password"}})
        with pytest.raises(ReferenceNotFoundError) as exc_info:
            resolver.resolve("monitoring", [var], alert)

        error = exc_info.value
        assert "not found" in str(error)
        assert error.store_kind == "Secret"
        assert error.object_name == "credentials"
        assert error.key == "password"

    def test_missing_required_config_map(self, resolver, alert):
        var = env(name="X", valueFrom={"configMapKeyRef": {"name": "absent", "key": "k"}})
        with pytest.raises(ReferenceNotFoundError):
            resolver.resolve("monitoring", [var], alert)

    @pytest.mark.parametrize("source", [
        {"secretKeyRef": {"name": "credentials", "key": "password", "optional": True}},
        {"secretKeyRef": {"name": "absent", "key": "password", "optional": True}},
        {"configMapKeyRef": {"name": "settings", "key": "zone", "optional": True}},
    ])
    def test_optional_missing_is_empty(self, resolver, alert, source):
        var = env(name="OPT", valueFrom=source)
        assert as_pairs(resolver.resolve("monitoring", [var], alert)) == [("OPT", "")]

    def test_lookup_failure_is_not_treated_as_missing(self, alert):
        lookup = MagicMock()
        lookup.get_value.side_effect = TimeoutError("read timed out")
        resolver = EnvironmentResolver(lookup)
        var = env(name="OPT", valueFrom={"secretKeyRef": {"name": "s", "key": "k", "optional": True}})

        with pytest.raises(EnvironmentResolutionError) as exc_info:
            resolver.resolve("monitoring", [var], alert)
        assert "read timed out" in str(exc_info.value)
        assert not isinstance(exc_info.value, ReferenceNotFoundError)

    def test_lookup_arguments(self, alert):
        lookup = MagicMock()
        lookup.get_value.return_value = "v"
        resolver = EnvironmentResolver(lookup)
        var = env(name="V", valueFrom={"configMapKeyRef": {"name": "cm", "key": "k"}})

        resolver.resolve("ops", [var], alert)

        lookup.get_value.assert_called_once_with("ops", StoreKind.CONFIG_MAP, "cm", "k")

    def test_first_failure_aborts(self, resolver, alert):
        env_vars = [
            env(name="MISSING", valueFrom={"secretKeyRef": {"name": "credentials", "key": "nope"}}),
            env(name="OK", value="fine"),
        ]
        with pytest.raises(ReferenceNotFoundError):
            resolver.resolve("monitoring", env_vars, alert)


class TestEnvVarValidation:
    def test_value_and_source_are_exclusive(self):
        with pytest.raises(ValueError):
            env(name="X", value="a", valueFrom={"alertRef": {"fieldPath": "status"}})

    def test_source_needs_exactly_one_kind(self):
        with pytest.raises(ValueError):
            env(name="X", valueFrom={
                "alertRef": {"fieldPath": "status"},
                "secretKeyRef": {"name": "s", "key": "k"},
            })
        with pytest.raises(ValueError):
            env(name="X", valueFrom={})
