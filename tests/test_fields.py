"""
Tests for dotted field-path resolution against alert payloads.
"""

import json

import pytest

from karo.alert import AlertPayload
from karo.engine.fields import require_field, resolve_field, stringify
from karo.errors import FieldNotFoundError


class TestResolveField:
    def test_label_path(self, payload):
        assert resolve_field(payload, "labels.instance") == ("node-1:9100", True)

    def test_annotation_path(self, payload):
        assert resolve_field(payload, "annotations.summary") == ("CPU above 90%", True)

    def test_top_level_field(self, payload):
        assert resolve_field(payload, "status") == ("firing", True)
        assert resolve_field(payload, "fingerprint") == ("abc123", True)

    def test_missing_leaf(self, payload):
        assert resolve_field(payload, "labels.missing") == ("", False)

    def test_missing_intermediate(self, payload):
        assert resolve_field(payload, "nothing.here") == ("", False)

    def test_scalar_intermediate_is_not_a_record(self, payload):
        assert resolve_field(payload, "status.value") == ("", False)

    def test_nested_record(self):
        payload = AlertPayload.from_dict({
            "labels": {"alertname": "X"},
            "details": {"node": {"zone": "eu-west-1a", "cores": 8}},
        })
        assert resolve_field(payload, "details.node.zone") == ("eu-west-1a", True)
        assert resolve_field(payload, "details.node.cores") == ("8", True)

    def test_flattened_key_takes_precedence(self):
        payload = AlertPayload.from_dict({
            "labels": {"instance": "nested"},
            "labels.instance": "flat",
        })
        assert resolve_field(payload, "labels.instance") == ("flat", True)

    def test_accepts_plain_mapping(self):
        assert resolve_field({"labels": {"team": "ops"}}, "labels.team") == ("ops", True)

    @pytest.mark.parametrize("path", ["", "."])
    def test_whole_payload_is_canonical_json(self, path):
        payload = AlertPayload.from_dict({
            "labels": {"b": "2", "a": "1"},
            "status": "firing",
        })
        value, found = resolve_field(payload, path)

        assert found is True
        assert value == json.dumps(json.loads(value), sort_keys=True, separators=(",", ":"))
        assert json.loads(value)["labels"] == {"a": "1", "b": "2"}

    def test_whole_payload_is_deterministic(self):
        first = AlertPayload.from_dict({"labels": {"x": "1", "y": "2"}, "status": "firing"})
        second = AlertPayload.from_dict({"status": "firing", "labels": {"y": "2", "x": "1"}})
        assert resolve_field(first, ".") == resolve_field(second, ".")


class TestRequireField:
    def test_returns_value(self, payload):
        assert require_field(payload, "labels.severity") == "critical"

    def test_raises_with_path(self, payload):
        with pytest.raises(FieldNotFoundError) as exc_info:
            require_field(payload, "labels.absent")
        assert exc_info.value.path == "labels.absent"


class TestStringify:
    @pytest.mark.parametrize("value,expected", [
        ("text", "text"),
        (None, ""),
        (True, "true"),
        (False, "false"),
        (3, "3"),
        (3.0, "3"),
        (2.5, "2.5"),
        ({"b": 1, "a": 2}, '{"a":2,"b":1}'),
        ([1, "x"], '[1,"x"]'),
    ])
    def test_values(self, value, expected):
        assert stringify(value) == expected
