# backend/xdr_engine/services/detection/correlation_matcher.py
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from xdr_engine.schemas.detection import (
    CorrelationCondition,
    CorrelationRule,
    ThreatIndicator,
)


SEVERITY_SCORES = {
    "low": 1,
    "medium": 2,
    "high": 3,
    "critical": 4,
}


def get_severity_score(severity: str) -> int:
    return SEVERITY_SCORES.get(str(getattr(severity, "value", severity)).lower(), 1)


def indicators_correlate(
    trigger: ThreatIndicator,
    candidate: ThreatIndicator,
    match_on: Iterable[str] = ("type", "geolocation"),
) -> bool:
    """
    Loose join between two indicators. Default keys reproduce the classic
    behaviour: same indicator type OR same (non-empty) geolocation.
    """
    for key in match_on:
        if key == "type" and trigger.type == candidate.type:
            return True
        if key == "geolocation":
            geo = trigger.context.geolocation
            if geo and geo == candidate.context.geolocation:
                return True
        if key == "value" and trigger.value == candidate.value:
            return True
        if key == "source" and trigger.source and trigger.source == candidate.source:
            return True
    return False


def find_matching_indicators(
    rule: CorrelationRule,
    trigger: ThreatIndicator,
    indicators: Iterable[ThreatIndicator],
    now: datetime,
) -> List[ThreatIndicator]:
    """
    Linear scan of the indicator store. Returns [trigger] followed by every
    indicator seen within the rule's window that passes a condition's type
    filter and correlates with the trigger.

    The trigger is already stored when this runs, so it is also picked up by
    the scan and counts twice toward the rule's occurrences.
    """
    matching: List[ThreatIndicator] = [trigger]
    cutoff = now - timedelta(minutes=rule.time_window)
    # a rule without conditions accepts every indicator type
    conditions = rule.conditions or [CorrelationCondition()]

    for indicator in indicators:
        if indicator.timestamp < cutoff:
            continue

        for condition in conditions:
            type_ok = not condition.indicators or indicator.type in condition.indicators
            if type_ok and indicators_correlate(trigger, indicator, rule.match_on):
                matching.append(indicator)
                break

    return matching


def required_occurrences(rule: CorrelationRule) -> int:
    if rule.conditions:
        return rule.conditions[0].min_occurrences
    return rule.threshold


def calculate_correlation_confidence(indicators: List[ThreatIndicator]) -> float:
    if not indicators:
        return 0.0
    avg_confidence = sum(i.confidence for i in indicators) / len(indicators)
    severity_bonus = max(get_severity_score(i.severity) for i in indicators) * 0.1
    return min(1.0, avg_confidence + severity_bonus)


def max_severity_score(indicators: List[ThreatIndicator]) -> Optional[int]:
    if not indicators:
        return None
    return max(get_severity_score(i.severity) for i in indicators)
