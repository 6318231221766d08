"""
Tests for matcher evaluation and rule matching.
"""

import pytest
from hypothesis import given
from hypothesis import strategies as st

from karo.alert import AlertPayload
from karo.engine.matching import evaluate_matcher, resolve_matcher_value, rule_matches
from karo.models import Matcher, MatchOperator


def matcher(path, op, *values):
    return Matcher(name=path, operator=op, values=list(values))


@pytest.fixture
def alert():
    return AlertPayload.from_dict({
        "labels": {"alertname": "HighCPUUsage", "severity": "warning", "cpu": "92.5", "pod": "web-7d9f"},
        "annotations": {"summary": "CPU high"},
        "status": "firing",
    })


class TestOperators:
    def test_equal(self, alert):
        assert evaluate_matcher(matcher("labels.severity", MatchOperator.EQUAL, "warning"), alert)
        assert not evaluate_matcher(matcher("labels.severity", MatchOperator.EQUAL, "critical"), alert)

    def test_equal_uses_first_value(self, alert):
        assert not evaluate_matcher(
            matcher("labels.severity", MatchOperator.EQUAL, "critical", "warning"), alert
        )

    def test_equal_with_no_values(self, alert):
        assert not evaluate_matcher(matcher("labels.severity", MatchOperator.EQUAL), alert)

    def test_not_equal(self, alert):
        assert evaluate_matcher(matcher("labels.severity", MatchOperator.NOT_EQUAL, "critical"), alert)
        assert not evaluate_matcher(matcher("labels.severity", MatchOperator.NOT_EQUAL, "warning"), alert)

    def test_in(self, alert):
        assert evaluate_matcher(matcher("labels.severity", MatchOperator.IN, "critical", "warning"), alert)
        assert not evaluate_matcher(matcher("labels.severity", MatchOperator.IN, "critical", "page"), alert)

    def test_in_with_no_values(self, alert):
        assert not evaluate_matcher(matcher("labels.severity", MatchOperator.IN), alert)

    def test_not_in(self, alert):
        assert evaluate_matcher(matcher("labels.severity", MatchOperator.NOT_IN, "critical"), alert)
        assert not evaluate_matcher(matcher("labels.severity", MatchOperator.NOT_IN, "warning"), alert)

    def test_exists(self, alert):
        assert evaluate_matcher(matcher("labels.pod", MatchOperator.EXISTS), alert)
        assert not evaluate_matcher(matcher("labels.node", MatchOperator.EXISTS), alert)

    def test_does_not_exist(self, alert):
        assert evaluate_matcher(matcher("labels.node", MatchOperator.DOES_NOT_EXIST), alert)
        assert not evaluate_matcher(matcher("labels.pod", MatchOperator.DOES_NOT_EXIST), alert)

    def test_greater_than(self, alert):
        assert evaluate_matcher(matcher("labels.cpu", MatchOperator.GREATER_THAN, "90"), alert)
        assert not evaluate_matcher(matcher("labels.cpu", MatchOperator.GREATER_THAN, "92.5"), alert)

    def test_less_than(self, alert):
        assert evaluate_matcher(matcher("labels.cpu", MatchOperator.LESS_THAN, "100"), alert)
        assert not evaluate_matcher(matcher("labels.cpu", MatchOperator.LESS_THAN, "50"), alert)

    def test_numeric_comparison_is_not_lexical(self):
        alert = AlertPayload.from_dict({"labels": {"count": "10"}})
        assert evaluate_matcher(matcher("labels.count", MatchOperator.GREATER_THAN, "9"), alert)

    @pytest.mark.parametrize("actual,expected", [("high", "90"), ("92", "lots"), ("nan", "1"), ("1", "inf")])
    def test_numeric_operators_reject_non_numbers(self, actual, expected):
        alert = AlertPayload.from_dict({"labels": {"v": actual}})
        assert not evaluate_matcher(matcher("labels.v", MatchOperator.GREATER_THAN, expected), alert)
        assert not evaluate_matcher(matcher("labels.v", MatchOperator.LESS_THAN, expected), alert)

    def test_regex_is_unanchored(self, alert):
        assert evaluate_matcher(matcher("labels.pod", MatchOperator.REGEX, "7d9"), alert)
        assert evaluate_matcher(matcher("labels.pod", MatchOperator.REGEX, "^web-"), alert)
        assert not evaluate_matcher(matcher("labels.pod", MatchOperator.REGEX, "^api-"), alert)

    def test_not_regex(self, alert):
        assert evaluate_matcher(matcher("labels.pod", MatchOperator.NOT_REGEX, "^api-"), alert)
        assert not evaluate_matcher(matcher("labels.pod", MatchOperator.NOT_REGEX, "^web-"), alert)

    @pytest.mark.parametrize("op", [MatchOperator.REGEX, MatchOperator.NOT_REGEX])
    def test_invalid_regex_is_false(self, alert, op):
        assert not evaluate_matcher(matcher("labels.pod", op, "(unclosed"), alert)

    @pytest.mark.parametrize("op", [
        MatchOperator.EQUAL,
        MatchOperator.NOT_EQUAL,
        MatchOperator.IN,
        MatchOperator.NOT_IN,
        MatchOperator.GREATER_THAN,
        MatchOperator.LESS_THAN,
        MatchOperator.REGEX,
        MatchOperator.NOT_REGEX,
    ])
    def test_unresolved_attribute_is_false(self, alert, op):
        assert not evaluate_matcher(matcher("labels.absent", op, "x"), alert)

    def test_operator_parsed_from_resource_string(self):
        m = Matcher.model_validate({"name": "labels.cpu", "operator": "GreaterThan", "values": [80]})
        assert m.operator is MatchOperator.GREATER_THAN
        assert m.values == ["80"]


class TestLabelShorthand:
    def test_bare_name_falls_back_to_label(self, alert):
        assert resolve_matcher_value(matcher("severity", MatchOperator.EXISTS), alert) == ("warning", True)

    def test_top_level_field_wins(self, alert):
        assert resolve_matcher_value(matcher("status", MatchOperator.EXISTS), alert) == ("firing", True)

    def test_top_level_field_shadows_label_of_same_name(self):
        alert = AlertPayload.from_dict({"labels": {"status": "degraded"}, "status": "firing"})
        assert resolve_matcher_value(matcher("status", MatchOperator.EXISTS), alert) == ("firing", True)
        assert resolve_matcher_value(matcher("labels.status", MatchOperator.EXISTS), alert) == ("degraded", True)

    def test_dotted_path_has_no_fallback(self, alert):
        assert resolve_matcher_value(matcher("missing.severity", MatchOperator.EXISTS), alert) == ("", False)


class TestRuleMatches:
    def test_requires_exact_alert_name(self, rule_factory, alert):
        rule = rule_factory(alert_name="HighCPUUsage")
        assert rule_matches(rule, "HighCPUUsage", alert)
        assert not rule_matches(rule, "highcpuusage", alert)
        assert not rule_matches(rule, "HighCPUUsage2", alert)

    def test_no_matchers_matches_any_payload(self, rule_factory):
        rule = rule_factory(alert_name="TestAlert")
        assert rule_matches(rule, "TestAlert", AlertPayload())

    def test_all_matchers_must_hold(self, rule_factory, alert):
        rule = rule_factory(matchers=[
            {"name": "severity", "operator": "Equal", "values": ["warning"]},
            {"name": "labels.cpu", "operator": "GreaterThan", "values": ["95"]},
        ])
        assert not rule_matches(rule, "HighCPUUsage", alert)

    def test_severity_mismatch_does_not_match(self, rule_factory):
        rule = rule_factory(
            alert_name="TestAlert",
            matchers=[{"name": "severity", "operator": "Equal", "values": ["critical"]}],
        )
        payload = AlertPayload.from_dict({"labels": {"severity": "warning"}})
        assert not rule_matches(rule, "TestAlert", payload)


class TestMatcherProperties:
    label_values = st.text(alphabet=st.characters(blacklist_categories=("Cs",)), max_size=20)

    @given(actual=label_values, expected=label_values)
    def test_equal_and_not_equal_are_complements(self, actual, expected):
        alert = AlertPayload.from_dict({"labels": {"k": actual}})
        eq = evaluate_matcher(matcher("labels.k", MatchOperator.EQUAL, expected), alert)
        ne = evaluate_matcher(matcher("labels.k", MatchOperator.NOT_EQUAL, expected), alert)
        assert eq != ne

    @given(actual=label_values, values=st.lists(label_values, max_size=4))
    def test_in_and_not_in_are_complements(self, actual, values):
        alert = AlertPayload.from_dict({"labels": {"k": actual}})
        inside = evaluate_matcher(matcher("labels.k", MatchOperator.IN, *values), alert)
        outside = evaluate_matcher(matcher("labels.k", MatchOperator.NOT_IN, *values), alert)
        assert inside != outside

    @given(present=st.booleans())
    def test_exists_and_does_not_exist_are_complements(self, present):
        labels = {"k": "v"} if present else {}
        alert = AlertPayload.from_dict({"labels": labels})
        assert evaluate_matcher(matcher("labels.k", MatchOperator.EXISTS), alert) is present
        assert evaluate_matcher(matcher("labels.k", MatchOperator.DOES_NOT_EXIST), alert) is not present

    @given(a=st.integers(-10**6, 10**6), b=st.integers(-10**6, 10**6))
    def test_numeric_operators_follow_integers(self, a, b):
        alert = AlertPayload.from_dict({"labels": {"n": str(a)}})
        assert evaluate_matcher(matcher("labels.n", MatchOperator.GREATER_THAN, str(b)), alert) is (a > b)
        assert evaluate_matcher(matcher("labels.n", MatchOperator.LESS_THAN, str(b)), alert) is (a < b)
