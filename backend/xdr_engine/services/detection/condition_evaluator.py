# backend/xdr_engine/services/detection/condition_evaluator.py
import logging
import math
import re
from typing import Any, Mapping

from xdr_engine.schemas.detection import RuleCondition

logger = logging.getLogger(__name__)


def get_nested_value(record: Any, path: str) -> Any:
    """
    Resolve a dotted path ("event.src.ip", "hosts.0.name") against nested
    dicts / lists. Any missing segment yields None.
    """
    current = record
    for key in path.split("."):
        if current is None:
            return None
        if isinstance(current, Mapping):
            current = current.get(key)
        elif isinstance(current, (list, tuple)):
            try:
                current = current[int(key)]
            except (ValueError, IndexError):
                return None
        else:
            current = getattr(current, key, None)
    return current


def strict_equals(left: Any, right: Any) -> bool:
    """Equality that does not let booleans stand in for numbers (True != 1)."""
    if isinstance(left, bool) != isinstance(right, bool):
        return False
    return left == right


def to_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (list, tuple)):
        return ",".join(to_text(v) for v in value)
    return str(value)


def to_number(value: Any) -> float:
    """Numeric cast; anything non-numeric becomes NaN (which compares false)."""
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0.0
        try:
            return float(text)
        except ValueError:
            return math.nan
    return math.nan


def evaluate_condition(condition: RuleCondition, record: Any) -> bool:
    """
    Apply one rule condition to a flat or nested record.

    A malformed `regex` pattern raises re.error; callers decide how to report it.
    """
    field_value = get_nested_value(record, condition.field)
    operator = condition.operator
    expected = condition.value

    if operator == "equals":
        return strict_equals(field_value, expected)
    if operator == "contains":
        return to_text(expected) in to_text(field_value)
    if operator == "regex":
        return re.search(to_text(expected), to_text(field_value)) is not None
    if operator == "greater":
        return to_number(field_value) > to_number(expected)
    if operator == "less":
        return to_number(field_value) < to_number(expected)
    if operator == "in":
        return isinstance(expected, list) and any(strict_equals(field_value, v) for v in expected)
    if operator == "not_in":
        return isinstance(expected, list) and not any(strict_equals(field_value, v) for v in expected)

    logger.debug("Unknown condition operator %r on field %s", operator, condition.field)
    return False


def score_conditions(conditions: list[RuleCondition], record: Any) -> float:
    """Sum of weights of the conditions that hold for `record`."""
    score = 0.0
    for condition in conditions:
        if evaluate_condition(condition, record):
            score += condition.weight
    return score
