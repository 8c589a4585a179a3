from datetime import timedelta

import pytest

from xdr_engine.core.utils import utcnow
from xdr_engine.schemas.detection import (
    CorrelationCondition,
    CorrelationRule,
    IndicatorContext,
    ThreatIndicator,
)
from xdr_engine.services.detection.correlation_matcher import (
    calculate_correlation_confidence,
    find_matching_indicators,
    get_severity_score,
    indicators_correlate,
    max_severity_score,
    required_occurrences,
)


def indicator(id, type="ip", value="1.1.1.1", geo=None, severity="medium", confidence=0.5, age_minutes=0):
    return ThreatIndicator(
        id=id,
        type=type,
        value=value,
        severity=severity,
        confidence=confidence,
        timestamp=utcnow() - timedelta(minutes=age_minutes),
        context=IndicatorContext(geolocation=geo),
    )


def rule(**kwargs):
    kwargs.setdefault("name", "test")
    return CorrelationRule(id="corr_rule_1", **kwargs)


def test_severity_scores():
    assert get_severity_score("low") == 1
    assert get_severity_score("critical") == 4
    assert get_severity_score("weird") == 1


def test_indicators_correlate_on_type_or_geolocation():
    a = indicator("a", type="ip", geo="US")
    assert indicators_correlate(a, indicator("b", type="ip", geo="DE"))
    assert indicators_correlate(a, indicator("c", type="domain", geo="US"))
    assert not indicators_correlate(a, indicator("d", type="domain", geo="DE"))
    # empty geolocation never joins
    assert not indicators_correlate(indicator("e", type="ip"), indicator("f", type="hash"))


def test_indicators_correlate_respects_match_on():
    a = indicator("a", type="ip", value="1.2.3.4")
    b = indicator("b", type="ip", value="5.6.7.8")
    assert not indicators_correlate(a, b, match_on=["value"])
    assert indicators_correlate(a, indicator("c", type="domain", value="1.2.3.4"), match_on=["value"])


def test_find_matching_indicators_filters_type_and_window():
    trigger = indicator("t", type="ip", geo="US")
    store = [
        trigger,
        indicator("fresh", type="ip"),
        indicator("stale", type="ip", age_minutes=120),
        indicator("other-type", type="domain", geo="US"),
    ]
    r = rule(conditions=[CorrelationCondition(indicators=["ip"], min_occurrences=2)], time_window=60)

    matching = find_matching_indicators(r, trigger, store, utcnow())

    assert [i.id for i in matching] == ["t", "t", "fresh"]


def test_stored_trigger_alone_meets_two_occurrences():
    trigger = indicator("t", type="ip")
    r = rule(conditions=[CorrelationCondition(indicators=["ip"], min_occurrences=2)])

    matching = find_matching_indicators(r, trigger, [trigger], utcnow())

    assert [i.id for i in matching] == ["t", "t"]
    assert len(matching) >= required_occurrences(r)
    # not yet stored: only the leading trigger
    assert [i.id for i in find_matching_indicators(r, trigger, [], utcnow())] == ["t"]


def test_rule_without_conditions_accepts_any_type():
    trigger = indicator("t", type="ip", geo="US")
    store = [trigger, indicator("d", type="domain", geo="US")]
    r = rule(threshold=2)

    assert len(find_matching_indicators(r, trigger, store, utcnow())) == 3
    assert required_occurrences(r) == 2


def test_required_occurrences_prefers_first_condition():
    r = rule(conditions=[CorrelationCondition(min_occurrences=3)], threshold=5)
    assert required_occurrences(r) == 3


def test_confidence_and_severity():
    group = [
        indicator("a", severity="low", confidence=0.4),
        indicator("b", severity="high", confidence=0.6),
    ]
    assert calculate_correlation_confidence(group) == pytest.approx(0.8)
    assert max_severity_score(group) == 3
    assert calculate_correlation_confidence([indicator("c", severity="critical", confidence=0.9)]) == 1.0
    assert calculate_correlation_confidence([]) == 0.0
