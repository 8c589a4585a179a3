import re

import pytest

from xdr_engine.schemas.detection import RuleCondition
from xdr_engine.services.detection.condition_evaluator import (
    evaluate_condition,
    get_nested_value,
    score_conditions,
    to_text,
)


def cond(field, operator, value=None, weight=1.0):
    return RuleCondition(field=field, operator=operator, value=value, weight=weight)


RECORD = {
    "source_ip": "10.0.0.1",
    "port": 4444,
    "user": {"name": "admin01", "privileged": True},
    "hosts": [{"name": "web-1"}, {"name": "db-1"}],
    "bytes": "2048",
}


def test_get_nested_value_walks_dicts_and_lists():
    assert get_nested_value(RECORD, "user.name") == "admin01"
    assert get_nested_value(RECORD, "hosts.1.name") == "db-1"
    assert get_nested_value(RECORD, "hosts.5.name") is None
    assert get_nested_value(RECORD, "missing.deeper") is None


def test_equals_is_strict_about_booleans():
    assert evaluate_condition(cond("port", "equals", 4444), RECORD)
    assert not evaluate_condition(cond("port", "equals", "4444"), RECORD)
    assert not evaluate_condition(cond("user.privileged", "equals", 1), RECORD)
    assert evaluate_condition(cond("user.privileged", "equals", True), RECORD)


def test_contains_casts_to_text():
    assert evaluate_condition(cond("user.name", "contains", "admin"), RECORD)
    assert evaluate_condition(cond("port", "contains", 44), RECORD)
    assert not evaluate_condition(cond("nope", "contains", "admin"), RECORD)
    assert to_text([1, True, "x"]) == "1,true,x"


def test_regex_searches_and_propagates_bad_patterns():
    assert evaluate_condition(cond("user.name", "regex", r"^admin\d+$"), RECORD)
    assert not evaluate_condition(cond("user.name", "regex", r"^root"), RECORD)
    with pytest.raises(re.error):
        evaluate_condition(cond("user.name", "regex", "("), RECORD)


def test_numeric_comparisons():
    assert evaluate_condition(cond("bytes", "greater", 1024), RECORD)
    assert evaluate_condition(cond("port", "less", "5000"), RECORD)
    # non-numeric and missing values never compare true
    assert not evaluate_condition(cond("user.name", "greater", 0), RECORD)
    assert not evaluate_condition(cond("missing", "less", 10), RECORD)


def test_membership_operators():
    assert evaluate_condition(cond("source_ip", "in", ["10.0.0.1", "10.0.0.2"]), RECORD)
    assert not evaluate_condition(cond("source_ip", "not_in", ["10.0.0.1"]), RECORD)
    assert evaluate_condition(cond("source_ip", "not_in", ["8.8.8.8"]), RECORD)
    # an empty list never matches "in"
    assert not evaluate_condition(cond("source_ip", "in", []), RECORD)


def test_score_conditions_sums_true_weights():
    conditions = [
        cond("source_ip", "equals", "10.0.0.1", weight=5),
        cond("port", "greater", 1024, weight=3),
        cond("user.name", "equals", "root", weight=10),
    ]
    assert score_conditions(conditions, RECORD) == 8
