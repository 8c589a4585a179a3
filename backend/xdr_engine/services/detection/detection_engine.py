# backend/xdr_engine/services/detection/detection_engine.py
import asyncio
import logging
import random
import re
from collections import Counter
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional

from xdr_engine.core.config import settings
from xdr_engine.core.errors import ConflictError, InvalidRequestError, NotFoundError
from xdr_engine.core.utils import generate_id, utcnow
from xdr_engine.schemas.detection import (
    Activity,
    Anomaly,
    AutomatedResponse,
    AutomatedResponseCreate,
    BehavioralProfile,
    Correlation,
    CorrelationRule,
    CorrelationRuleCreate,
    CorrelationStatus,
    DetectionMetrics,
    DetectionOverview,
    DetectionRule,
    DetectionRuleCreate,
    DetectionRuleUpdate,
    EntityType,
    FeedEnrichment,
    MLModel,
    MLModelCreate,
    MLModelStatus,
    Pattern,
    Prediction,
    ResponseExecutionResult,
    RiskAssessment,
    RiskFactor,
    RiskSummary,
    RuleAction,
    RuleCondition,
    RuleMetadata,
    ThreatIndicator,
    ThreatIndicatorCreate,
    ThreatIntelligenceFeed,
)
from xdr_engine.services.detection.condition_evaluator import evaluate_condition, score_conditions
from xdr_engine.services.detection.correlation_matcher import (
    calculate_correlation_confidence,
    find_matching_indicators,
    get_severity_score,
    max_severity_score,
    required_occurrences,
)
from xdr_engine.services.enrichment.geo_enrich_service import UNKNOWN, GeoContext, lookup_ip_context
from xdr_engine.services.enrichment.threat_feed_service import fetch_feed_indicators
from xdr_engine.services.response.action_dispatcher import ActionDispatcher
from xdr_engine.services.risk_scoring.risk_utils import clamp_risk

logger = logging.getLogger(__name__)

GeoLookup = Callable[[str], Awaitable[GeoContext]]
FeedFetcher = Callable[[ThreatIntelligenceFeed], Awaitable[List[ThreatIndicatorCreate]]]


class AdvancedDetectionEngine:
    """
    In-memory detection engine.

    Holds threat indicators, weighted detection rules, correlation rules,
    behavioral profiles, simulated ML models, automated responses and
    threat-intel feeds. Nothing here is persisted except executed actions,
    which go through the ActionDispatcher's audit log.

    One instance is built per application lifespan and injected into the
    API routes.
    """

    # Behavioral analytics
    FREQUENCY_WINDOW = timedelta(hours=1)
    FREQUENCY_MAX_ACTIVITIES = 10
    UNUSUAL_HOUR_SEVERITY = 3
    HIGH_FREQUENCY_SEVERITY = 2
    BASELINE_WINDOW = 100
    BASELINE_MIN_HOUR_COUNT = 3

    # Risk summary buckets (overall_risk)
    HIGH_RISK_SCORE = 70
    MEDIUM_RISK_SCORE = 40

    def __init__(
        self,
        dispatcher: Optional[ActionDispatcher] = None,
        *,
        geo_lookup: GeoLookup = lookup_ip_context,
        feed_fetcher: FeedFetcher = fetch_feed_indicators,
        rng: Optional[random.Random] = None,
        clock: Callable[[], datetime] = utcnow,
        training_delay: Optional[float] = None,
    ) -> None:
        self.dispatcher = dispatcher or ActionDispatcher()
        self._geo_lookup = geo_lookup
        self._feed_fetcher = feed_fetcher
        self._rng = rng or random.Random()
        self._clock = clock
        self._training_delay = (
            settings.ML_TRAINING_DELAY_SECONDS if training_delay is None else training_delay
        )

        self.threat_indicators: Dict[str, ThreatIndicator] = {}
        self.detection_rules: Dict[str, DetectionRule] = {}
        self.behavioral_profiles: Dict[str, BehavioralProfile] = {}
        self.correlation_rules: Dict[str, CorrelationRule] = {}
        self.active_correlations: List[Correlation] = []
        self.historical_correlations: List[Correlation] = []
        self.ml_models: Dict[str, MLModel] = {}
        self.automated_responses: Dict[str, AutomatedResponse] = {}
        self.risk_assessments: Dict[str, RiskAssessment] = {}
        self.threat_feeds: Dict[str, ThreatIntelligenceFeed] = {}

        self._training_tasks: Dict[str, asyncio.Task] = {}

        self._initialize_default_rules()
        self._initialize_threat_feeds()
        self._initialize_default_models()

    # -------------------------------------------------------------------------
    # Threat intelligence management
    # -------------------------------------------------------------------------
    async def add_threat_indicator(self, data: ThreatIndicatorCreate) -> str:
        indicator = ThreatIndicator(
            **data.model_dump(),
            id=generate_id("ti"),
            timestamp=self._clock(),
        )

        self.threat_indicators[indicator.id] = indicator
        await self.enrich_indicator(indicator)
        await self.check_correlations(indicator)

        logger.info(
            "Indicator %s stored (type=%s severity=%s source=%s)",
            indicator.id,
            indicator.type.value,
            indicator.severity.value,
            indicator.source,
        )
        return indicator.id

    async def enrich_indicator(self, indicator: ThreatIndicator) -> None:
        """Fill geolocation / ASN for IPs and merge threat-feed hits, in place."""
        if indicator.type == "ip":
            geo = await self._geo_lookup(indicator.value)
            # an "Unknown" lookup never replaces what the feed already supplied
            if geo.geolocation != UNKNOWN or not indicator.context.geolocation:
                indicator.context.geolocation = geo.geolocation
            if geo.asn != UNKNOWN or not indicator.context.asn:
                indicator.context.asn = geo.asn

        enrichment = self.query_threat_feeds(indicator)
        if enrichment:
            indicator.confidence = max(indicator.confidence, enrichment.confidence)
            indicator.tags = indicator.tags + [t for t in enrichment.tags if t not in indicator.tags]

    def query_threat_feeds(self, indicator: ThreatIndicator) -> Optional[FeedEnrichment]:
        best: Optional[FeedEnrichment] = None
        for feed in self.threat_feeds.values():
            for known in feed.indicators:
                if known.type != indicator.type or known.value != indicator.value:
                    continue
                if best is None:
                    best = FeedEnrichment(confidence=feed.reliability, tags=[], feed_id=feed.id)
                elif feed.reliability > best.confidence:
                    best.confidence = feed.reliability
                    best.feed_id = feed.id
                best.tags.extend(t for t in known.tags if t not in best.tags)
        return best

    def get_threat_indicator(self, indicator_id: str) -> ThreatIndicator:
        try:
            return self.threat_indicators[indicator_id]
        except KeyError:
            raise NotFoundError(f"Threat indicator {indicator_id} not found")

    def list_threat_indicators(
        self,
        type: Optional[str] = None,
        severity: Optional[str] = None,
        limit: int = 100,
    ) -> List[ThreatIndicator]:
        out = [
            i for i in self.threat_indicators.values()
            if (type is None or i.type == type) and (severity is None or i.severity == severity)
        ]
        out.sort(key=lambda i: i.timestamp, reverse=True)
        return out[:max(limit, 0)]

    # -------------------------------------------------------------------------
    # Detection rules management
    # -------------------------------------------------------------------------
    def create_detection_rule(self, data: DetectionRuleCreate) -> str:
        self._validate_conditions(data.conditions)

        now = self._clock()
        rule = DetectionRule(
            id=generate_id("rule"),
            name=data.name,
            description=data.description,
            enabled=data.enabled,
            priority=data.priority,
            conditions=data.conditions,
            actions=data.actions,
            metadata=RuleMetadata(
                author=data.author or "system",
                created=now,
                modified=now,
                tags=list(data.tags),
                mitre_tactics=list(data.mitre_tactics),
                mitre_techniques=list(data.mitre_techniques),
            ),
        )
        self.detection_rules[rule.id] = rule
        logger.info("Detection rule %s created (%s, priority=%s)", rule.id, rule.name, rule.priority)
        return rule.id

    def get_detection_rule(self, rule_id: str) -> DetectionRule:
        try:
            return self.detection_rules[rule_id]
        except KeyError:
            raise NotFoundError(f"Detection rule {rule_id} not found")

    def list_detection_rules(self, enabled_only: bool = False) -> List[DetectionRule]:
        return [r for r in self.detection_rules.values() if r.enabled or not enabled_only]

    def update_detection_rule(self, rule_id: str, changes: DetectionRuleUpdate) -> DetectionRule:
        rule = self.get_detection_rule(rule_id)
        updates = changes.model_dump(exclude_unset=True)

        if changes.conditions is not None:
            self._validate_conditions(changes.conditions)

        for key in ("name", "description", "enabled", "priority"):
            if key in updates:
                setattr(rule, key, updates[key])
        if changes.conditions is not None:
            rule.conditions = changes.conditions
        if changes.actions is not None:
            rule.actions = changes.actions
        for key in ("tags", "mitre_tactics", "mitre_techniques"):
            if key in updates:
                setattr(rule.metadata, key, updates[key])

        rule.metadata.modified = self._clock()
        return rule

    def delete_detection_rule(self, rule_id: str) -> None:
        if self.detection_rules.pop(rule_id, None) is None:
            raise NotFoundError(f"Detection rule {rule_id} not found")
        logger.info("Detection rule %s deleted", rule_id)

    async def evaluate_detection_rules(
        self, record: Dict[str, Any], execute_actions: bool = False
    ) -> List[DetectionRule]:
        """
        Rules whose summed true-condition weights reach their priority,
        in rule insertion order.
        """
        matched: List[DetectionRule] = []

        for rule in self.detection_rules.values():
            if not rule.enabled:
                continue
            try:
                score = score_conditions(rule.conditions, record)
            except re.error as e:
                raise InvalidRequestError(f"Rule {rule.id} has an invalid regex: {e}")
            if score >= rule.priority:
                matched.append(rule)

        if execute_actions and matched:
            context = {"record": record, "matchedRules": [r.name for r in matched]}
            for rule in matched:
                for action in rule.actions:
                    await self.dispatcher.execute_response_action(action, context, response_id=rule.id)

        return matched

    # alias kept for the rule-scorer naming
    match_rules = evaluate_detection_rules

    def _validate_conditions(self, conditions: List[RuleCondition]) -> None:
        for condition in conditions:
            if condition.operator == "regex":
                try:
                    re.compile(str(condition.value))
                except re.error as e:
                    raise InvalidRequestError(
                        f"Invalid regex for field {condition.field}: {e}",
                        details={"field": condition.field, "pattern": condition.value},
                    )

    # -------------------------------------------------------------------------
    # Behavioral analytics
    # -------------------------------------------------------------------------
    async def update_behavioral_profile(
        self, entity_id: str, entity_type: EntityType, activity: Activity
    ) -> BehavioralProfile:
        profile = self.behavioral_profiles.get(entity_id)
        if profile is None:
            profile = BehavioralProfile(entity_id=entity_id, entity_type=entity_type)
            self.behavioral_profiles[entity_id] = profile

        profile.current_activity.append(activity)
        profile.last_updated = self._clock()

        anomaly = self._detect_anomaly(profile, activity)
        if anomaly:
            profile.baseline.anomalies.append(anomaly)
            profile.baseline.risk_score = clamp_risk(profile.baseline.risk_score + anomaly.severity)

        self._update_baseline_patterns(profile)
        return profile

    def get_behavioral_profile(self, entity_id: str) -> BehavioralProfile:
        try:
            return self.behavioral_profiles[entity_id]
        except KeyError:
            raise NotFoundError(f"Behavioral profile {entity_id} not found")

    def _detect_anomaly(self, profile: BehavioralProfile, activity: Activity) -> Optional[Anomaly]:
        hour = activity.timestamp.hour
        is_unusual_hour = not any(
            p.type == "temporal" and p.data.get("hour") == hour
            for p in profile.baseline.normal_patterns
        )

        now = self._clock()
        recent = [a for a in profile.current_activity if now - a.timestamp < self.FREQUENCY_WINDOW]

        if is_unusual_hour or len(recent) > self.FREQUENCY_MAX_ACTIVITIES:
            return Anomaly(
                id=generate_id("anomaly"),
                type="behavioral_anomaly",
                severity=self.UNUSUAL_HOUR_SEVERITY if is_unusual_hour else self.HIGH_FREQUENCY_SEVERITY,
                description=f"Unusual {activity.type} activity detected",
                timestamp=now,
                indicators=[activity.type],
            )
        return None

    def _update_baseline_patterns(self, profile: BehavioralProfile) -> None:
        """Hours seen often enough in recent activity become temporal patterns."""
        recent = profile.current_activity[-self.BASELINE_WINDOW:]
        hours = Counter(a.timestamp.hour for a in recent)

        temporal = [
            Pattern(
                id=f"pattern_{profile.entity_id}_h{hour:02d}",
                type="temporal",
                description=f"Regular activity around {hour:02d}:00 UTC",
                confidence=round(count / len(recent), 3),
                data={"hour": hour, "count": count},
            )
            for hour, count in sorted(hours.items())
            if count >= self.BASELINE_MIN_HOUR_COUNT
        ]
        others = [p for p in profile.baseline.normal_patterns if p.type != "temporal"]
        profile.baseline.normal_patterns = others + temporal

    # -------------------------------------------------------------------------
    # Correlation engine
    # -------------------------------------------------------------------------
    def create_correlation_rule(self, data: CorrelationRuleCreate) -> str:
        rule = CorrelationRule(**data.model_dump(), id=generate_id("corr_rule"))
        self.correlation_rules[rule.id] = rule
        logger.info("Correlation rule %s created (%s)", rule.id, rule.name)
        return rule.id

    def list_correlation_rules(self) -> List[CorrelationRule]:
        return list(self.correlation_rules.values())

    async def check_correlations(self, indicator: ThreatIndicator) -> List[Correlation]:
        correlations: List[Correlation] = []
        now = self._clock()

        for rule in self.correlation_rules.values():
            matching = find_matching_indicators(
                rule, indicator, list(self.threat_indicators.values()), now
            )
            if len(matching) < required_occurrences(rule):
                continue

            correlation = Correlation(
                id=generate_id("corr"),
                rule_id=rule.id,
                indicators=matching,
                confidence=calculate_correlation_confidence(matching),
                severity=max_severity_score(matching),
                timestamp=now,
                status=CorrelationStatus.ACTIVE,
            )
            correlations.append(correlation)
            self.active_correlations.append(correlation)
            logger.info(
                "Correlation %s raised by rule %s (%d indicators, confidence=%.2f)",
                correlation.id,
                rule.id,
                len(matching),
                correlation.confidence,
            )

            for action in rule.actions:
                await self.dispatcher.execute_response_action(
                    action, {"correlation": correlation}, response_id=rule.id
                )

        return correlations

    def list_correlations(self, status: Optional[str] = None) -> List[Correlation]:
        everything = self.active_correlations + self.historical_correlations
        if status is None:
            return everything
        return [c for c in everything if c.status == status]

    def update_correlation_status(self, correlation_id: str, status: CorrelationStatus) -> Correlation:
        for correlation in self.active_correlations:
            if correlation.id == correlation_id:
                correlation.status = status
                if status != CorrelationStatus.ACTIVE:
                    self.active_correlations.remove(correlation)
                    self.historical_correlations.append(correlation)
                return correlation
        for correlation in self.historical_correlations:
            if correlation.id == correlation_id:
                correlation.status = status
                if status == CorrelationStatus.ACTIVE:
                    self.historical_correlations.remove(correlation)
                    self.active_correlations.append(correlation)
                return correlation
        raise NotFoundError(f"Correlation {correlation_id} not found")

    # -------------------------------------------------------------------------
    # Machine learning (simulated)
    # -------------------------------------------------------------------------
    def register_ml_model(self, data: MLModelCreate) -> str:
        model = MLModel(**data.model_dump(), id=generate_id("model"))
        self.ml_models[model.id] = model
        return model.id

    def get_ml_model(self, model_id: str) -> MLModel:
        try:
            return self.ml_models[model_id]
        except KeyError:
            raise NotFoundError(f"Model {model_id} not found")

    def list_ml_models(self) -> List[MLModel]:
        return list(self.ml_models.values())

    async def train_ml_model(self, model_id: str, training_data: List[Any]) -> MLModel:
        """
        Flip the model to `training` and finish in the background after the
        configured delay. Use `wait_for_training` to block on completion.
        """
        model = self.get_ml_model(model_id)
        if model.status == MLModelStatus.TRAINING:
            raise ConflictError(f"Model {model_id} is already training")

        model.status = MLModelStatus.TRAINING
        logger.info("Training model %s on %d samples", model_id, len(training_data))

        self._training_tasks[model_id] = asyncio.create_task(self._complete_training(model))
        return model

    async def _complete_training(self, model: MLModel) -> None:
        await asyncio.sleep(self._training_delay)
        model.status = MLModelStatus.ACTIVE
        model.last_trained = self._clock()
        model.accuracy = self._rng.random() * 0.3 + 0.7
        self._training_tasks.pop(model.id, None)
        logger.info("Model %s trained (accuracy=%.3f)", model.id, model.accuracy)

    async def wait_for_training(self, model_id: str) -> MLModel:
        task = self._training_tasks.get(model_id)
        if task is not None:
            await task
        return self.get_ml_model(model_id)

    async def predict_with_ml(self, model_id: str, input: Any) -> Prediction:
        model = self.get_ml_model(model_id)
        if model.status != MLModelStatus.ACTIVE:
            raise ConflictError(f"Model {model_id} not available (status={model.status.value})")

        return Prediction(
            prediction="malicious" if self._rng.random() > 0.5 else "benign",
            confidence=self._rng.random() * 0.4 + 0.6,
            features=list(model.features),
        )

    # -------------------------------------------------------------------------
    # Automated response
    # -------------------------------------------------------------------------
    def create_automated_response(self, data: AutomatedResponseCreate) -> str:
        self._validate_conditions(data.conditions)
        response = AutomatedResponse(**data.model_dump(), id=generate_id("response"))
        self.automated_responses[response.id] = response
        return response.id

    def list_automated_responses(self) -> List[AutomatedResponse]:
        return list(self.automated_responses.values())

    def delete_automated_response(self, response_id: str) -> None:
        if self.automated_responses.pop(response_id, None) is None:
            raise NotFoundError(f"Automated response {response_id} not found")

    async def execute_automated_response(
        self, response_id: str, context: Dict[str, Any]
    ) -> ResponseExecutionResult:
        response = self.automated_responses.get(response_id)
        if response is None or not response.enabled:
            return ResponseExecutionResult(
                response_id=response_id, executed=False, reason="missing_or_disabled"
            )

        last_execution = self.dispatcher.audit_service.last_execution(response_id)
        if last_execution and self._clock() - last_execution < timedelta(minutes=response.cooldown):
            return ResponseExecutionResult(response_id=response_id, executed=False, reason="cooldown")

        try:
            should_execute = all(evaluate_condition(c, context) for c in response.conditions)
        except re.error as e:
            raise InvalidRequestError(f"Response {response_id} has an invalid regex: {e}")

        if not should_execute:
            return ResponseExecutionResult(
                response_id=response_id, executed=False, reason="conditions_not_met"
            )

        for action in response.actions:
            await self.dispatcher.execute_response_action(action, context, response_id=response_id)

        return ResponseExecutionResult(
            response_id=response_id, executed=True, actions_executed=len(response.actions)
        )

    # -------------------------------------------------------------------------
    # Risk assessment
    # -------------------------------------------------------------------------
    async def assess_risk(self, entity_id: str, entity_type: str) -> RiskAssessment:
        profile = self.behavioral_profiles.get(entity_id)
        indicators = [ti for ti in self.threat_indicators.values() if ti.value == entity_id]

        risk_score = 0.0
        risk_factors: List[RiskFactor] = []

        if profile:
            risk_score += profile.baseline.risk_score
            risk_factors.append(
                RiskFactor(
                    category="behavioral",
                    score=profile.baseline.risk_score,
                    description=f"{len(profile.baseline.anomalies)} anomalies detected",
                    evidence=[a.description for a in profile.baseline.anomalies],
                )
            )

        if indicators:
            max_severity = max(get_severity_score(i.severity) for i in indicators)
            risk_score += max_severity * 10
            risk_factors.append(
                RiskFactor(
                    category="threat_intelligence",
                    score=max_severity * 10,
                    description=f"{len(indicators)} threat indicators found",
                    evidence=[f"{i.type.value}: {i.value}" for i in indicators],
                )
            )

        assessment = RiskAssessment(
            entity_id=entity_id,
            entity_type=entity_type,
            overall_risk=clamp_risk(risk_score),
            risk_factors=risk_factors,
            recommendations=self._generate_recommendations(risk_factors),
            last_assessment=self._clock(),
        )
        self.risk_assessments[entity_id] = assessment
        return assessment

    def get_risk_assessment(self, entity_id: str) -> RiskAssessment:
        try:
            return self.risk_assessments[entity_id]
        except KeyError:
            raise NotFoundError(f"No risk assessment for {entity_id}")

    @staticmethod
    def _generate_recommendations(risk_factors: List[RiskFactor]) -> List[str]:
        recommendations: List[str] = []
        for factor in risk_factors:
            if factor.category == "behavioral":
                recommendations.append(
                    "Review user behavior patterns and implement additional monitoring"
                )
            elif factor.category == "threat_intelligence":
                recommendations.append(
                    "Investigate associated threat indicators and update security controls"
                )
        return recommendations

    # -------------------------------------------------------------------------
    # Threat intelligence feeds
    # -------------------------------------------------------------------------
    async def update_threat_feeds(self) -> Dict[str, int]:
        """Refresh stale feeds; returns {feed_id: new indicators ingested}."""
        refreshed: Dict[str, int] = {}
        for feed in self.threat_feeds.values():
            if self._clock() - feed.last_update <= timedelta(minutes=feed.update_frequency):
                continue
            refreshed[feed.id] = await self._fetch_feed_data(feed)
            feed.last_update = self._clock()
        return refreshed

    async def _fetch_feed_data(self, feed: ThreatIntelligenceFeed) -> int:
        new_indicators = await self._feed_fetcher(feed)
        for payload in new_indicators:
            indicator_id = await self.add_threat_indicator(payload)
            feed.indicators.append(self.threat_indicators[indicator_id])
        return len(new_indicators)

    def list_threat_feeds(self) -> List[ThreatIntelligenceFeed]:
        return list(self.threat_feeds.values())

    # -------------------------------------------------------------------------
    # Dashboard overview
    # -------------------------------------------------------------------------
    def get_overview(self) -> DetectionOverview:
        summary = RiskSummary()
        for assessment in self.risk_assessments.values():
            if assessment.overall_risk >= self.HIGH_RISK_SCORE:
                summary.high += 1
            elif assessment.overall_risk >= self.MEDIUM_RISK_SCORE:
                summary.medium += 1
            else:
                summary.low += 1

        active_rules = self.list_detection_rules(enabled_only=True)

        return DetectionOverview(
            status="operational",
            metrics=DetectionMetrics(
                # simulated event volume for the dashboard
                total_events=self._rng.randrange(5000, 15000),
                threats_detected=len(self.threat_indicators),
                active_rules=len(active_rules),
                correlations_found=len(self.active_correlations) + len(self.historical_correlations),
                risk_assessments=len(self.risk_assessments),
                behavioral_profiles=len(self.behavioral_profiles),
            ),
            last_update=self._clock(),
            recent_threats=self.list_threat_indicators(limit=5),
            active_rules=active_rules,
            correlations=list(self.active_correlations),
            risk_summary=summary,
        )

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------
    async def aclose(self) -> None:
        for task in list(self._training_tasks.values()):
            task.cancel()
        self._training_tasks.clear()

    # -------------------------------------------------------------------------
    # Defaults
    # -------------------------------------------------------------------------
    def _initialize_default_rules(self) -> None:
        self.create_detection_rule(
            DetectionRuleCreate(
                name="High Risk IP Detection",
                description="Detect connections from high-risk IP addresses",
                enabled=True,
                priority=8,
                conditions=[
                    # populated from threat feeds
                    RuleCondition(field="source_ip", operator="in", value=[], weight=5),
                ],
                actions=[
                    RuleAction(
                        type="alert",
                        target="security_team",
                        parameters={
                            "severity": "high",
                            "message": "Connection from high-risk IP detected",
                        },
                    )
                ],
            )
        )

    def _initialize_threat_feeds(self) -> None:
        day_ago = self._clock() - timedelta(hours=24)
        feeds = [
            ThreatIntelligenceFeed(
                id="feed_1",
                name="AbuseIPDB",
                source="https://api.abuseipdb.com/api/v2/blacklist",
                type="open",
                format="json",
                update_frequency=60,
                last_update=day_ago,
                reliability=0.8,
            ),
            ThreatIntelligenceFeed(
                id="feed_2",
                name="AlienVault OTX",
                source="https://otx.alienvault.com/api/v1/indicators/export",
                type="open",
                format="stix",
                update_frequency=30,
                last_update=day_ago,
                reliability=0.9,
            ),
        ]
        for feed in feeds:
            self.threat_feeds[feed.id] = feed

    def _initialize_default_models(self) -> None:
        self.register_ml_model(
            MLModelCreate(
                name="Indicator Classifier",
                type="supervised",
                algorithm="random_forest",
                features=["type", "confidence", "severity", "source"],
            )
        )
