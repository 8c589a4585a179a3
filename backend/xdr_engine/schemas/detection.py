# backend/xdr_engine/schemas/detection.py
from typing import Any, Dict, List, Literal, Optional
from enum import Enum

from pydantic import Field

from xdr_engine.core.utils import utcnow
from xdr_engine.schemas.base import CamelModel, UTCDateTime


class IndicatorType(str, Enum):
    IP = "ip"
    DOMAIN = "domain"
    HASH = "hash"
    URL = "url"
    EMAIL = "email"
    FILE = "file"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ConditionOperator(str, Enum):
    EQUALS = "equals"
    CONTAINS = "contains"
    REGEX = "regex"
    GREATER = "greater"
    LESS = "less"
    IN = "in"
    NOT_IN = "not_in"


class ActionType(str, Enum):
    ALERT = "alert"
    BLOCK = "block"
    QUARANTINE = "quarantine"
    NOTIFY = "notify"
    ESCALATE = "escalate"
    ENRICH = "enrich"
    ISOLATE = "isolate"
    REMEDIATE = "remediate"


# ---------------------------------------------------------------------------
# Threat indicators
# ---------------------------------------------------------------------------
class IndicatorContext(CamelModel):
    geolocation: Optional[str] = None
    asn: Optional[str] = None
    category: Optional[str] = None
    first_seen: Optional[UTCDateTime] = None
    last_seen: Optional[UTCDateTime] = None


class ThreatIndicatorCreate(CamelModel):
    """Payload for ingesting an indicator (id and timestamp are assigned)."""
    type: IndicatorType
    value: str = Field(..., min_length=1)
    confidence: float = Field(0.5, ge=0.0, le=1.0)
    severity: Severity = Severity.MEDIUM
    source: str = "manual"
    tags: List[str] = Field(default_factory=list)
    context: IndicatorContext = Field(default_factory=IndicatorContext)


class ThreatIndicator(ThreatIndicatorCreate):
    id: str
    timestamp: UTCDateTime = Field(default_factory=utcnow)


# ---------------------------------------------------------------------------
# Detection rules
# ---------------------------------------------------------------------------
class RuleCondition(CamelModel):
    field: str = Field(..., min_length=1, description="Dotted path into the evaluated record")
    operator: ConditionOperator
    value: Any = None
    weight: float = 1.0


class RuleAction(CamelModel):
    type: ActionType
    target: str = ""
    parameters: Dict[str, Any] = Field(default_factory=dict)


# Automated responses share the action shape
ResponseAction = RuleAction


class RuleMetadata(CamelModel):
    author: str = "system"
    created: UTCDateTime = Field(default_factory=utcnow)
    modified: UTCDateTime = Field(default_factory=utcnow)
    tags: List[str] = Field(default_factory=list)
    mitre_tactics: List[str] = Field(default_factory=list)
    mitre_techniques: List[str] = Field(default_factory=list)


class DetectionRuleCreate(CamelModel):
    name: str = Field(..., min_length=1)
    description: str = ""
    enabled: bool = True
    priority: float = Field(..., description="Score threshold the summed condition weights must reach")
    conditions: List[RuleCondition] = Field(default_factory=list)
    actions: List[RuleAction] = Field(default_factory=list)

    # optional metadata hints
    author: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    mitre_tactics: List[str] = Field(default_factory=list)
    mitre_techniques: List[str] = Field(default_factory=list)


class DetectionRuleUpdate(CamelModel):
    name: Optional[str] = None
    description: Optional[str] = None
    enabled: Optional[bool] = None
    priority: Optional[float] = None
    conditions: Optional[List[RuleCondition]] = None
    actions: Optional[List[RuleAction]] = None
    tags: Optional[List[str]] = None
    mitre_tactics: Optional[List[str]] = None
    mitre_techniques: Optional[List[str]] = None


class DetectionRule(CamelModel):
    id: str
    name: str
    description: str = ""
    enabled: bool = True
    priority: float
    conditions: List[RuleCondition] = Field(default_factory=list)
    actions: List[RuleAction] = Field(default_factory=list)
    metadata: RuleMetadata = Field(default_factory=RuleMetadata)


# ---------------------------------------------------------------------------
# Correlation
# ---------------------------------------------------------------------------
CorrelationKey = Literal["type", "geolocation", "value", "source"]


class CorrelationCondition(CamelModel):
    indicators: List[IndicatorType] = Field(
        default_factory=list,
        description="Indicator types this condition accepts; empty accepts all",
    )
    operator: Literal["and", "or"] = "or"
    min_occurrences: int = Field(2, ge=1)


class CorrelationRuleCreate(CamelModel):
    name: str = Field(..., min_length=1)
    conditions: List[CorrelationCondition] = Field(default_factory=list)
    time_window: float = Field(60.0, gt=0, description="Minutes")
    threshold: int = Field(2, ge=1)
    actions: List[RuleAction] = Field(default_factory=list)
    match_on: List[CorrelationKey] = Field(default_factory=lambda: ["type", "geolocation"])


class CorrelationRule(CorrelationRuleCreate):
    id: str


class CorrelationStatus(str, Enum):
    ACTIVE = "active"
    RESOLVED = "resolved"
    FALSE_POSITIVE = "false_positive"


class Correlation(CamelModel):
    id: str
    rule_id: str
    indicators: List[ThreatIndicator]
    confidence: float
    severity: int  # 1 (low) .. 4 (critical)
    timestamp: UTCDateTime = Field(default_factory=utcnow)
    status: CorrelationStatus = CorrelationStatus.ACTIVE


class CorrelationStatusUpdate(CamelModel):
    status: CorrelationStatus


# ---------------------------------------------------------------------------
# Behavioral analytics
# ---------------------------------------------------------------------------
class EntityType(str, Enum):
    USER = "user"
    DEVICE = "device"
    PROCESS = "process"
    NETWORK = "network"


class Pattern(CamelModel):
    id: str
    type: Literal["temporal", "frequency", "sequence", "correlation"]
    description: str
    confidence: float
    data: Dict[str, Any] = Field(default_factory=dict)


class Anomaly(CamelModel):
    id: str
    type: str
    severity: int
    description: str
    timestamp: UTCDateTime = Field(default_factory=utcnow)
    indicators: List[str] = Field(default_factory=list)


class Activity(CamelModel):
    timestamp: UTCDateTime = Field(default_factory=utcnow)
    type: str
    details: Dict[str, Any] = Field(default_factory=dict)
    risk_score: float = 0.0


class ProfileBaseline(CamelModel):
    normal_patterns: List[Pattern] = Field(default_factory=list)
    anomalies: List[Anomaly] = Field(default_factory=list)
    risk_score: float = 0.0


class BehavioralProfile(CamelModel):
    entity_id: str
    entity_type: EntityType
    baseline: ProfileBaseline = Field(default_factory=ProfileBaseline)
    current_activity: List[Activity] = Field(default_factory=list)
    last_updated: UTCDateTime = Field(default_factory=utcnow)


class BehaviorUpdateRequest(CamelModel):
    entity_id: str = Field(..., min_length=1)
    entity_type: EntityType
    activity: Activity


# ---------------------------------------------------------------------------
# Risk assessment
# ---------------------------------------------------------------------------
class RiskFactor(CamelModel):
    category: str
    score: float
    description: str
    evidence: List[str] = Field(default_factory=list)


class RiskAssessment(CamelModel):
    entity_id: str
    entity_type: str
    overall_risk: float
    risk_factors: List[RiskFactor] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    last_assessment: UTCDateTime = Field(default_factory=utcnow)


class RiskAssessmentRequest(CamelModel):
    entity_id: str = Field(..., min_length=1)
    entity_type: str = "unknown"


# ---------------------------------------------------------------------------
# ML models (simulated)
# ---------------------------------------------------------------------------
class MLModelStatus(str, Enum):
    TRAINING = "training"
    ACTIVE = "active"
    INACTIVE = "inactive"


class MLModelCreate(CamelModel):
    name: str = Field(..., min_length=1)
    type: Literal["supervised", "unsupervised", "reinforcement"] = "supervised"
    algorithm: str = "random_forest"
    features: List[str] = Field(default_factory=list)


class MLModel(MLModelCreate):
    id: str
    accuracy: float = 0.0
    last_trained: Optional[UTCDateTime] = None
    status: MLModelStatus = MLModelStatus.INACTIVE


class TrainModelRequest(CamelModel):
    model_id: str
    training_data: List[Any] = Field(default_factory=list)


class PredictRequest(CamelModel):
    model_id: str
    input: Any = None


class Prediction(CamelModel):
    prediction: Literal["malicious", "benign"]
    confidence: float
    features: List[str]


# ---------------------------------------------------------------------------
# Automated responses
# ---------------------------------------------------------------------------
class AutomatedResponseCreate(CamelModel):
    name: str = Field(..., min_length=1)
    trigger: str = "manual"
    conditions: List[RuleCondition] = Field(default_factory=list)
    actions: List[ResponseAction] = Field(default_factory=list)
    cooldown: float = Field(0.0, ge=0, description="Minutes")
    enabled: bool = True


class AutomatedResponse(AutomatedResponseCreate):
    id: str


class ExecuteResponseRequest(CamelModel):
    response_id: str
    context: Dict[str, Any] = Field(default_factory=dict)


class ResponseExecutionResult(CamelModel):
    response_id: str
    executed: bool
    reason: Optional[str] = None
    actions_executed: int = 0


# ---------------------------------------------------------------------------
# Threat intelligence feeds
# ---------------------------------------------------------------------------
class ThreatIntelligenceFeed(CamelModel):
    id: str
    name: str
    source: str
    type: Literal["open", "commercial", "internal"]
    format: Literal["stix", "json", "csv"]
    update_frequency: float  # minutes
    last_update: UTCDateTime
    indicators: List[ThreatIndicator] = Field(default_factory=list)
    reliability: float = Field(0.5, ge=0.0, le=1.0)


class FeedEnrichment(CamelModel):
    confidence: float
    tags: List[str] = Field(default_factory=list)
    feed_id: Optional[str] = None


# ---------------------------------------------------------------------------
# Dashboard overview
# ---------------------------------------------------------------------------
class DetectionMetrics(CamelModel):
    total_events: int
    threats_detected: int
    active_rules: int
    correlations_found: int
    risk_assessments: int
    behavioral_profiles: int


class RiskSummary(CamelModel):
    high: int = 0
    medium: int = 0
    low: int = 0


class DetectionOverview(CamelModel):
    status: str = "operational"
    metrics: DetectionMetrics
    last_update: UTCDateTime = Field(default_factory=utcnow)
    recent_threats: List[ThreatIndicator] = Field(default_factory=list)
    active_rules: List[DetectionRule] = Field(default_factory=list)
    correlations: List[Correlation] = Field(default_factory=list)
    risk_summary: RiskSummary = Field(default_factory=RiskSummary)
