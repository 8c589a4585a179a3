# backend/xdr_engine/schemas/network.py
from typing import Any, Dict, List, Literal, Optional
from enum import Enum

from pydantic import Field

from xdr_engine.core.utils import utcnow
from xdr_engine.schemas.base import CamelModel, UTCDateTime
from xdr_engine.schemas.detection import Severity


class Protocol(str, Enum):
    TCP = "TCP"
    UDP = "UDP"
    ICMP = "ICMP"
    HTTP = "HTTP"
    HTTPS = "HTTPS"
    DNS = "DNS"
    SMB = "SMB"
    RDP = "RDP"
    SSH = "SSH"
    FTP = "FTP"


AnomalyType = Literal[
    "traffic_spike",
    "unusual_port",
    "http_trace_method",
    "lateral_movement",
    "data_exfiltration",
    "reconnaissance",
    "protocol_anomaly",
]


class NetworkAnomaly(CamelModel):
    id: str
    type: AnomalyType
    severity: Severity
    description: str
    confidence: float
    timestamp: UTCDateTime = Field(default_factory=utcnow)
    indicators: List[str] = Field(default_factory=list)
    mitre_tactics: List[str] = Field(default_factory=list)
    mitre_techniques: List[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Flows
# ---------------------------------------------------------------------------
class NetworkFlowCreate(CamelModel):
    source_ip: str = Field(..., alias="sourceIP", min_length=1)
    destination_ip: str = Field(..., alias="destinationIP", min_length=1)
    source_port: int = Field(0, ge=0, le=65535)
    destination_port: int = Field(..., ge=0, le=65535)
    protocol: Protocol
    bytes_sent: int = Field(0, ge=0)
    bytes_received: int = Field(0, ge=0)
    packets_sent: int = Field(0, ge=0)
    packets_received: int = Field(0, ge=0)
    start_time: UTCDateTime = Field(default_factory=utcnow)
    end_time: UTCDateTime = Field(default_factory=utcnow)
    duration: float = 0.0
    flags: List[str] = Field(default_factory=list)
    application: str = ""
    user: Optional[str] = None
    device: Optional[str] = None
    # protocol payload hints (e.g. {"method": "TRACE"}) used by protocol checks
    payload: Dict[str, Any] = Field(default_factory=dict)


class NetworkFlow(NetworkFlowCreate):
    id: str
    risk_score: float = 0.0
    anomalies: List[NetworkAnomaly] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Lateral movement
# ---------------------------------------------------------------------------
class LateralTechnique(str, Enum):
    PASS_THE_HASH = "pass_the_hash"
    PASS_THE_TICKET = "pass_the_ticket"
    REMOTE_EXECUTION = "remote_execution"
    LATERAL_TOOL_TRANSFER = "lateral_tool_transfer"
    REMOTE_SERVICE = "remote_service"
    WINDOWS_ADMIN_SHARES = "windows_admin_shares"


class MovementStatus(str, Enum):
    DETECTED = "detected"
    CONFIRMED = "confirmed"
    MITIGATED = "mitigated"


class LateralMovement(CamelModel):
    id: str
    source_host: str
    target_host: str
    technique: LateralTechnique
    confidence: float
    timestamp: UTCDateTime = Field(default_factory=utcnow)
    indicators: List[str] = Field(default_factory=list)
    risk_score: float
    status: MovementStatus = MovementStatus.DETECTED
    flow_id: Optional[str] = None


class MovementStatusUpdate(CamelModel):
    status: MovementStatus


# ---------------------------------------------------------------------------
# Topology
# ---------------------------------------------------------------------------
class Vulnerability(CamelModel):
    id: str
    cve: Optional[str] = None
    description: str
    severity: Severity
    cvss_score: float
    affected_service: str
    exploitability: Literal["low", "medium", "high"]
    remediation: Optional[str] = None


class NetworkService(CamelModel):
    port: int
    protocol: str
    service: str
    version: Optional[str] = None
    state: Literal["open", "closed", "filtered"] = "open"
    banner: Optional[str] = None
    risk_score: float


class NetworkNode(CamelModel):
    id: str
    ip: str
    hostname: Optional[str] = None
    mac_address: Optional[str] = None
    type: Literal["server", "workstation", "network_device", "iot", "unknown"] = "unknown"
    os: Optional[str] = None
    services: List[NetworkService] = Field(default_factory=list)
    vulnerabilities: List[Vulnerability] = Field(default_factory=list)
    risk_score: float = 0.0
    last_seen: UTCDateTime = Field(default_factory=utcnow)
    tags: List[str] = Field(default_factory=list)


class NetworkEdge(CamelModel):
    source: str
    target: str
    protocol: str
    port: int
    frequency: int = 0
    bandwidth: int = 0
    risk_score: float = 0.0
    last_seen: UTCDateTime = Field(default_factory=utcnow)


class AccessPolicy(CamelModel):
    source_segment: str
    destination_segment: str
    allowed_ports: List[int] = Field(default_factory=list)
    allowed_protocols: List[str] = Field(default_factory=list)
    requires_authentication: bool = True
    last_validated: UTCDateTime = Field(default_factory=utcnow)


class NetworkSegment(CamelModel):
    id: str
    name: str
    cidr: str
    nodes: List[str] = Field(default_factory=list)
    security_level: Literal["public", "dmz", "internal", "restricted"] = "internal"
    access_policies: List[AccessPolicy] = Field(default_factory=list)
    risk_score: float = 0.0


class TopologyRiskAssessment(CamelModel):
    overall_risk: float = 0.0
    vulnerable_nodes: int = 0
    exposed_services: int = 0
    segmentation_gaps: int = 0


class NetworkTopology(CamelModel):
    nodes: List[NetworkNode] = Field(default_factory=list)
    edges: List[NetworkEdge] = Field(default_factory=list)
    segments: List[NetworkSegment] = Field(default_factory=list)
    last_updated: UTCDateTime = Field(default_factory=utcnow)
    risk_assessment: TopologyRiskAssessment = Field(default_factory=TopologyRiskAssessment)


# ---------------------------------------------------------------------------
# Encrypted traffic
# ---------------------------------------------------------------------------
class CertificateInfo(CamelModel):
    issuer: str
    subject: str
    valid_from: UTCDateTime
    valid_to: UTCDateTime
    fingerprint: str = ""


class EncryptedTrafficCreate(CamelModel):
    source_ip: str = Field(..., alias="sourceIP", min_length=1)
    destination_ip: str = Field(..., alias="destinationIP", min_length=1)
    protocol: str = "TLS"
    tls_version: Optional[str] = None
    cipher_suite: Optional[str] = None
    certificate_info: Optional[CertificateInfo] = None
    ja3_fingerprint: Optional[str] = None
    ja3s_fingerprint: Optional[str] = None


class EncryptedTrafficAnalysis(EncryptedTrafficCreate):
    id: str
    anomalies: List[str] = Field(default_factory=list)
    risk_score: float = 0.0
    classification: Literal["legitimate", "suspicious", "malicious", "unknown"] = "unknown"
    timestamp: UTCDateTime = Field(default_factory=utcnow)


# ---------------------------------------------------------------------------
# Protocol analysis
# ---------------------------------------------------------------------------
class ProtocolAnomaly(CamelModel):
    id: str
    type: str
    description: str
    severity: Severity
    frequency: int = 1
    first_seen: UTCDateTime = Field(default_factory=utcnow)
    last_seen: UTCDateTime = Field(default_factory=utcnow)


class ProtocolSignature(CamelModel):
    id: str
    name: str
    pattern: str
    risk_score: float
    category: Literal["malware", "exploit", "recon", "data_exfil", "lateral_movement"]
    mitre_technique: Optional[str] = None


class ProtocolPerformance(CamelModel):
    throughput: float = 0.0
    latency: float = 0.0
    error_rate: float = 0.0


class ProtocolAnalysis(CamelModel):
    protocol: str
    version: Optional[str] = None
    packets_analyzed: int = 0
    anomalies: List[ProtocolAnomaly] = Field(default_factory=list)
    signatures: List[ProtocolSignature] = Field(default_factory=list)
    performance: ProtocolPerformance = Field(default_factory=ProtocolPerformance)


class PacketData(CamelModel):
    method: Optional[str] = None
    command: Optional[str] = None
    size: float = 0.0
    response_time: Optional[float] = None
    has_error: bool = False


class ProtocolPacketRequest(CamelModel):
    protocol: str = Field(..., min_length=1)
    packet: PacketData = Field(default_factory=PacketData)


# ---------------------------------------------------------------------------
# Performance
# ---------------------------------------------------------------------------
class BandwidthStats(CamelModel):
    total: float = 0.0
    used: float = 0.0
    utilization: float = 0.0


class LatencyStats(CamelModel):
    average: float = 0.0
    p95: float = 0.0
    p99: float = 0.0


class ConnectionStats(CamelModel):
    total: int = 0
    active: int = 0
    failed: int = 0


class NetworkPerformanceCreate(CamelModel):
    bandwidth: BandwidthStats = Field(default_factory=BandwidthStats)
    latency: LatencyStats = Field(default_factory=LatencyStats)
    packet_loss: float = 0.0
    errors: int = 0
    connections: ConnectionStats = Field(default_factory=ConnectionStats)


class NetworkPerformance(NetworkPerformanceCreate):
    timestamp: UTCDateTime = Field(default_factory=utcnow)
    issues: List[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Anomaly detectors
# ---------------------------------------------------------------------------
class AnomalyDetector(CamelModel):
    id: str
    type: Literal["statistical", "frequency", "pattern", "behavioral"]
    threshold: float
    window: float  # seconds
    baseline: List[float] = Field(default_factory=list)
    last_updated: UTCDateTime = Field(default_factory=utcnow)


# ---------------------------------------------------------------------------
# Hunting
# ---------------------------------------------------------------------------
class TimeRange(CamelModel):
    start: UTCDateTime
    end: UTCDateTime


class NetworkHuntQuery(CamelModel):
    source_ip: Optional[str] = Field(None, alias="sourceIP")
    destination_ip: Optional[str] = Field(None, alias="destinationIP")
    protocol: Optional[str] = None
    port: Optional[int] = None
    min_risk_score: Optional[float] = None
    anomaly_types: Optional[List[AnomalyType]] = None
    time_range: Optional[TimeRange] = None
    include_lateral_movement: bool = True
    include_encrypted_traffic: bool = True


class HuntMatch(CamelModel):
    type: Literal["flow", "lateral_movement", "encrypted_traffic"]
    data: Any
    risk_score: float
    indicators: List[str] = Field(default_factory=list)


class HuntStatistics(CamelModel):
    flows_analyzed: int = 0
    anomalies_found: int = 0
    high_risk_flows: int = 0
    execution_time: float = 0.0  # ms


class NetworkHuntResult(CamelModel):
    query: NetworkHuntQuery
    matches: List[HuntMatch] = Field(default_factory=list)
    statistics: HuntStatistics = Field(default_factory=HuntStatistics)
    timestamp: UTCDateTime = Field(default_factory=utcnow)


# ---------------------------------------------------------------------------
# Dashboard overview
# ---------------------------------------------------------------------------
class NetworkMetrics(CamelModel):
    total_flows: int = 0
    lateral_movements: int = 0
    anomalies: int = 0
    encrypted_traffic: int = 0
    high_risk_flows: int = 0
    topology_nodes: int = 0
    performance_issues: int = 0


class NetworkOverview(CamelModel):
    status: str = "operational"
    metrics: NetworkMetrics
    risk_assessment: TopologyRiskAssessment
    detectors: List[AnomalyDetector] = Field(default_factory=list)
    last_update: UTCDateTime = Field(default_factory=utcnow)
