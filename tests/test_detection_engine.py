"""
Tests for AdvancedDetectionEngine: indicators, rules, correlations,
behavior, risk, simulated ML, automated responses and feeds.
"""

from datetime import timedelta

import pytest

from xdr_engine.core.config import settings
from xdr_engine.core.errors import ConflictError, InvalidRequestError, NotFoundError
from xdr_engine.core.utils import utcnow
from xdr_engine.schemas.detection import (
    Activity,
    AutomatedResponseCreate,
    CorrelationRuleCreate,
    DetectionRuleCreate,
    DetectionRuleUpdate,
    MLModelCreate,
    ThreatIndicator,
    ThreatIndicatorCreate,
)
from xdr_engine.services.enrichment.geo_enrich_service import lookup_ip_context


def rule_payload(**kwargs):
    data = {
        "name": "Suspicious outbound",
        "priority": 7,
        "conditions": [
            {"field": "source_ip", "operator": "equals", "value": "1.2.3.4", "weight": 5},
            {"field": "port", "operator": "greater", "value": 1000, "weight": 3},
        ],
        "actions": [{"type": "alert", "target": "soc", "parameters": {"severity": "high"}}],
    }
    data.update(kwargs)
    return DetectionRuleCreate.model_validate(data)


class TestIndicators:
    @pytest.mark.asyncio
    async def test_ip_indicator_is_enriched_with_geo(self, engine):
        indicator_id = await engine.add_threat_indicator(
            ThreatIndicatorCreate(type="ip", value="8.8.8.8", confidence=0.4)
        )

        stored = engine.get_threat_indicator(indicator_id)
        assert indicator_id.startswith("ti_")
        assert stored.context.geolocation == "US"
        assert stored.context.asn == "AS15169"
        assert stored.confidence == 0.4

    @pytest.mark.asyncio
    async def test_unknown_lookup_keeps_feed_country(self, engine, monkeypatch):
        monkeypatch.setattr(settings, "IPINFO_TOKEN", None)
        engine._geo_lookup = lookup_ip_context

        feed_ip = await engine.add_threat_indicator(
            ThreatIndicatorCreate(type="ip", value="8.8.8.8", context={"geolocation": "CN", "asn": "AS4134"})
        )
        bare_ip = await engine.add_threat_indicator(ThreatIndicatorCreate(type="ip", value="8.8.4.4"))

        assert engine.get_threat_indicator(feed_ip).context.geolocation == "CN"
        assert engine.get_threat_indicator(feed_ip).context.asn == "AS4134"
        assert engine.get_threat_indicator(bare_ip).context.geolocation == "Unknown"

    @pytest.mark.asyncio
    async def test_feed_hit_raises_confidence_and_merges_tags(self, engine):
        engine.threat_feeds["feed_2"].indicators.append(
            ThreatIndicator(id="known", type="domain", value="evil.example", tags=["otx", "c2"])
        )

        indicator_id = await engine.add_threat_indicator(
            ThreatIndicatorCreate(type="domain", value="evil.example", confidence=0.3, tags=["manual"])
        )

        stored = engine.get_threat_indicator(indicator_id)
        assert stored.confidence == 0.9
        assert stored.tags == ["manual", "otx", "c2"]
        # non-IP indicators skip the geo lookup
        assert stored.context.geolocation is None

    @pytest.mark.asyncio
    async def test_list_filters(self, engine):
        await engine.add_threat_indicator(ThreatIndicatorCreate(type="ip", value="10.0.0.1", severity="high"))
        await engine.add_threat_indicator(ThreatIndicatorCreate(type="hash", value="abc", severity="low"))

        assert len(engine.list_threat_indicators()) == 2
        assert [i.value for i in engine.list_threat_indicators(type="hash")] == ["abc"]
        assert [i.value for i in engine.list_threat_indicators(severity="high")] == ["10.0.0.1"]
        assert len(engine.list_threat_indicators(limit=1)) == 1

    def test_unknown_indicator(self, engine):
        with pytest.raises(NotFoundError):
            engine.get_threat_indicator("ti_missing")


class TestDetectionRules:
    def test_default_rule_is_loaded(self, engine):
        names = [r.name for r in engine.list_detection_rules()]
        assert names == ["High Risk IP Detection"]

    def test_create_rule_defaults(self, engine):
        rule = engine.get_detection_rule(engine.create_detection_rule(rule_payload()))
        assert rule.enabled is True
        assert rule.metadata.author == "system"
        assert rule.metadata.created == rule.metadata.modified

    def test_invalid_regex_is_rejected(self, engine):
        payload = rule_payload(conditions=[{"field": "user", "operator": "regex", "value": "(", "weight": 1}])
        with pytest.raises(InvalidRequestError):
            engine.create_detection_rule(payload)

    @pytest.mark.asyncio
    async def test_weights_must_reach_priority(self, engine):
        rule_id = engine.create_detection_rule(rule_payload())

        matched = await engine.evaluate_detection_rules({"source_ip": "1.2.3.4", "port": 4444})
        assert [r.id for r in matched] == [rule_id]

        # 5 < 7
        assert await engine.evaluate_detection_rules({"source_ip": "1.2.3.4", "port": 80}) == []

    @pytest.mark.asyncio
    async def test_disabled_rules_are_skipped(self, engine):
        rule_id = engine.create_detection_rule(rule_payload(enabled=False))
        assert await engine.match_rules({"source_ip": "1.2.3.4", "port": 4444}) == []
        assert rule_id not in [r.id for r in engine.list_detection_rules(enabled_only=True)]

    @pytest.mark.asyncio
    async def test_execute_actions_lands_in_audit_log(self, engine):
        rule_id = engine.create_detection_rule(rule_payload())

        await engine.evaluate_detection_rules({"source_ip": "1.2.3.4", "port": 4444}, execute_actions=True)

        executions = engine.dispatcher.audit_service.list_executions(response_id=rule_id)
        assert len(executions) == 1
        assert executions[0]["actionType"] == "alert"
        assert executions[0]["context"]["matchedRules"] == ["Suspicious outbound"]

    def test_update_and_delete(self, engine):
        rule_id = engine.create_detection_rule(rule_payload())
        created = engine.get_detection_rule(rule_id).metadata.created

        updated = engine.update_detection_rule(
            rule_id, DetectionRuleUpdate(priority=3, tags=["tuned"])
        )
        assert updated.priority == 3
        assert updated.metadata.tags == ["tuned"]
        assert updated.metadata.modified >= created
        assert updated.name == "Suspicious outbound"

        engine.delete_detection_rule(rule_id)
        with pytest.raises(NotFoundError):
            engine.get_detection_rule(rule_id)
        with pytest.raises(NotFoundError):
            engine.delete_detection_rule(rule_id)


class TestCorrelations:
    @pytest.mark.asyncio
    async def test_single_ip_meets_two_occurrences(self, engine):
        rule_id = engine.create_correlation_rule(
            CorrelationRuleCreate(
                name="IP cluster",
                conditions=[{"indicators": ["ip"], "minOccurrences": 2}],
                timeWindow=60,
            )
        )

        await engine.add_threat_indicator(ThreatIndicatorCreate(type="ip", value="10.0.0.1"))

        [correlation] = engine.list_correlations(status="active")
        assert correlation.rule_id == rule_id
        # the stored trigger is counted by the scan as well
        assert [i.value for i in correlation.indicators] == ["10.0.0.1", "10.0.0.1"]
        assert correlation.confidence == pytest.approx(0.7)
        assert correlation.severity == 2

    @pytest.mark.asyncio
    async def test_second_ip_joins_the_group(self, engine):
        engine.create_correlation_rule(
            CorrelationRuleCreate(
                name="IP cluster",
                conditions=[{"indicators": ["ip"], "minOccurrences": 3}],
                timeWindow=60,
            )
        )

        await engine.add_threat_indicator(ThreatIndicatorCreate(type="ip", value="10.0.0.1"))
        assert engine.list_correlations() == []

        await engine.add_threat_indicator(ThreatIndicatorCreate(type="ip", value="10.0.0.2"))

        [correlation] = engine.list_correlations()
        assert [i.value for i in correlation.indicators] == ["10.0.0.2", "10.0.0.1", "10.0.0.2"]

    @pytest.mark.asyncio
    async def test_status_update_moves_to_history(self, engine):
        engine.create_correlation_rule(CorrelationRuleCreate(name="any", threshold=2))
        await engine.add_threat_indicator(ThreatIndicatorCreate(type="ip", value="10.0.0.1"))
        [correlation] = engine.list_correlations()

        engine.update_correlation_status(correlation.id, "resolved")
        assert engine.active_correlations == []
        assert engine.list_correlations(status="resolved")[0].id == correlation.id

        engine.update_correlation_status(correlation.id, "active")
        assert len(engine.active_correlations) == 1

        with pytest.raises(NotFoundError):
            engine.update_correlation_status("corr_missing", "resolved")


class TestBehaviorAndRisk:
    @pytest.mark.asyncio
    async def test_unusual_hour_until_pattern_is_learned(self, engine):
        at = utcnow()
        for _ in range(4):
            profile = await engine.update_behavioral_profile(
                "alice", "user", Activity(type="login", timestamp=at)
            )

        # first three are unusual; the third one teaches the hour
        assert len(profile.baseline.anomalies) == 3
        assert profile.baseline.risk_score == 9
        assert [p.data["hour"] for p in profile.baseline.normal_patterns] == [at.hour]

    @pytest.mark.asyncio
    async def test_high_frequency_anomaly(self, engine):
        at = utcnow()
        for _ in range(12):
            profile = await engine.update_behavioral_profile(
                "host-1", "device", Activity(type="dns", timestamp=at)
            )
        # >10 in the last hour keeps flagging once the hour is known
        assert profile.baseline.anomalies[-1].severity == 2

    @pytest.mark.asyncio
    async def test_assess_risk_combines_behavior_and_intel(self, engine):
        await engine.update_behavioral_profile("10.0.0.5", "network", Activity(type="conn"))
        await engine.add_threat_indicator(
            ThreatIndicatorCreate(type="ip", value="10.0.0.5", severity="high")
        )

        assessment = await engine.assess_risk("10.0.0.5", "network")

        assert assessment.overall_risk == 33
        assert [f.category for f in assessment.risk_factors] == ["behavioral", "threat_intelligence"]
        assert len(assessment.recommendations) == 2
        assert engine.get_risk_assessment("10.0.0.5") is assessment
        assert engine.get_overview().risk_summary.low == 1

    @pytest.mark.asyncio
    async def test_unknown_entity_has_zero_risk(self, engine):
        assessment = await engine.assess_risk("nobody", "user")
        assert assessment.overall_risk == 0
        assert assessment.recommendations == []

    def test_missing_profile(self, engine):
        with pytest.raises(NotFoundError):
            engine.get_behavioral_profile("ghost")


class TestMachineLearning:
    @pytest.mark.asyncio
    async def test_train_then_predict(self, engine):
        model_id = engine.register_ml_model(MLModelCreate(name="clf", features=["a", "b"]))

        model = await engine.train_ml_model(model_id, [{"a": 1}])
        assert model.status == "training"
        with pytest.raises(ConflictError):
            await engine.train_ml_model(model_id, [])

        model = await engine.wait_for_training(model_id)
        assert model.status == "active"
        assert 0.7 <= model.accuracy <= 1.0
        assert model.last_trained is not None

        prediction = await engine.predict_with_ml(model_id, {"a": 1})
        assert prediction.prediction in ("malicious", "benign")
        assert 0.6 <= prediction.confidence <= 1.0
        assert prediction.features == ["a", "b"]

    @pytest.mark.asyncio
    async def test_inactive_model_cannot_predict(self, engine):
        [default_model] = engine.list_ml_models()
        with pytest.raises(ConflictError):
            await engine.predict_with_ml(default_model.id, {})


class TestAutomatedResponses:
    def make_response(self, engine, cooldown=10):
        return engine.create_automated_response(
            AutomatedResponseCreate(
                name="block high",
                conditions=[{"field": "severity", "operator": "equals", "value": "high"}],
                actions=[{"type": "block", "target": "fw-1"}],
                cooldown=cooldown,
            )
        )

    @pytest.mark.asyncio
    async def test_cooldown_blocks_second_execution(self, engine):
        response_id = self.make_response(engine)

        first = await engine.execute_automated_response(response_id, {"severity": "high"})
        second = await engine.execute_automated_response(response_id, {"severity": "high"})

        assert first.executed is True
        assert first.actions_executed == 1
        assert second.executed is False
        assert second.reason == "cooldown"

    @pytest.mark.asyncio
    async def test_conditions_not_met(self, engine):
        response_id = self.make_response(engine)
        result = await engine.execute_automated_response(response_id, {"severity": "low"})
        assert result.executed is False
        assert result.reason == "conditions_not_met"

    @pytest.mark.asyncio
    async def test_missing_response(self, engine):
        result = await engine.execute_automated_response("response_missing", {})
        assert result.reason == "missing_or_disabled"

    def test_delete(self, engine):
        response_id = self.make_response(engine)
        engine.delete_automated_response(response_id)
        assert engine.list_automated_responses() == []
        with pytest.raises(NotFoundError):
            engine.delete_automated_response(response_id)


class TestFeedsAndOverview:
    @pytest.mark.asyncio
    async def test_stale_feeds_are_refreshed_once(self, engine):
        async def fetcher(feed):
            return [ThreatIndicatorCreate(type="ip", value="203.0.113.9", source=feed.name)]

        engine._feed_fetcher = fetcher

        assert await engine.update_threat_feeds() == {"feed_1": 1, "feed_2": 1}
        assert await engine.update_threat_feeds() == {}

        feed = engine.threat_feeds["feed_1"]
        assert [i.value for i in feed.indicators] == ["203.0.113.9"]
        assert utcnow() - feed.last_update < timedelta(minutes=1)
        assert len(engine.list_threat_indicators()) == 2

    def test_overview(self, engine):
        overview = engine.get_overview()
        assert overview.status == "operational"
        assert 5000 <= overview.metrics.total_events < 15000
        assert overview.metrics.active_rules == 1
        assert overview.metrics.threats_detected == 0
