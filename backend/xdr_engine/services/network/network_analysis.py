# backend/xdr_engine/services/network/network_analysis.py
import logging
import statistics
import time
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional

from xdr_engine.core.config import settings
from xdr_engine.core.errors import NotFoundError
from xdr_engine.core.utils import generate_id, utcnow
from xdr_engine.schemas.network import (
    AnomalyDetector,
    CertificateInfo,
    EncryptedTrafficAnalysis,
    EncryptedTrafficCreate,
    HuntMatch,
    LateralMovement,
    LateralTechnique,
    MovementStatus,
    NetworkAnomaly,
    NetworkFlow,
    NetworkFlowCreate,
    NetworkHuntQuery,
    NetworkHuntResult,
    NetworkMetrics,
    NetworkOverview,
    NetworkPerformance,
    NetworkPerformanceCreate,
    NetworkSegment,
    NetworkTopology,
    PacketData,
    ProtocolAnalysis,
    ProtocolAnomaly,
    ProtocolSignature,
)
from xdr_engine.services.network.topology import TopologyManager
from xdr_engine.services.risk_scoring.risk_utils import SEVERITY_WEIGHTS, clamp_risk

logger = logging.getLogger(__name__)


COMMON_PORTS = {80, 443, 22, 21, 25, 53, 110, 143, 993, 995, 3389, 445, 139, 137, 138}

PROTOCOL_RISK = {
    "SMB": 30, "RDP": 40, "SSH": 20, "FTP": 35, "TELNET": 50,
    "HTTP": 10, "HTTPS": 5, "DNS": 5, "TCP": 15, "UDP": 10, "ICMP": 5,
}

ADMIN_SHARES = ("ADMIN$", "C$", "D$")

DEFAULT_PROTOCOLS = ["HTTP", "HTTPS", "SMB", "RDP", "SSH", "DNS", "FTP", "SMTP"]


def is_unusual_port(port: int) -> bool:
    return port not in COMMON_PORTS and port > 1024


class AdvancedNetworkAnalysis:
    """
    In-memory network analytics: flow scoring, lateral movement, topology,
    encrypted traffic, protocol counters, performance history and hunting.
    """

    LARGE_TRANSFER_BYTES = 1_000_000
    HIGH_RISK_SCORE = 70
    BASELINE_MIN_SAMPLES = 30
    BASELINE_MAX_SAMPLES = 1000

    def __init__(
        self,
        *,
        clock: Callable[[], datetime] = utcnow,
        history_limit: Optional[int] = None,
        malicious_ja3: Optional[Iterable[str]] = None,
    ) -> None:
        self._clock = clock
        self._history_limit = history_limit or settings.PERFORMANCE_HISTORY_LIMIT
        self._malicious_ja3 = set(
            settings.MALICIOUS_JA3_FINGERPRINTS if malicious_ja3 is None else malicious_ja3
        )

        self.network_flows: Dict[str, NetworkFlow] = {}
        self.lateral_movements: Dict[str, LateralMovement] = {}
        self.encrypted_traffic: Dict[str, EncryptedTrafficAnalysis] = {}
        self.protocol_analyzers: Dict[str, ProtocolAnalysis] = {}
        self.performance_metrics: List[NetworkPerformance] = []
        self.anomaly_detectors: Dict[str, AnomalyDetector] = {}
        self.topology_manager = TopologyManager(clock=clock)

        self._initialize_default_detectors()
        self._initialize_protocol_analyzers()

    @property
    def topology(self) -> NetworkTopology:
        return self.topology_manager.topology

    # -------------------------------------------------------------------------
    # Flow analysis
    # -------------------------------------------------------------------------
    async def analyze_network_flow(self, data: NetworkFlowCreate) -> NetworkFlow:
        flow = NetworkFlow(**data.model_dump(), id=generate_id("flow"))

        flow.anomalies = self._detect_flow_anomalies(flow)
        flow.risk_score = self._calculate_flow_risk_score(flow)

        await self.detect_lateral_movement(flow)
        self.topology_manager.update_from_flow(flow)

        self.network_flows[flow.id] = flow
        if flow.risk_score > self.HIGH_RISK_SCORE:
            logger.warning(
                "High-risk flow %s %s:%d -> %s:%d (%s) score=%.1f",
                flow.id, flow.source_ip, flow.source_port,
                flow.destination_ip, flow.destination_port,
                flow.protocol.value, flow.risk_score,
            )
        return flow

    def get_flow(self, flow_id: str) -> NetworkFlow:
        try:
            return self.network_flows[flow_id]
        except KeyError:
            raise NotFoundError(f"Flow {flow_id} not found")

    def list_flows(self, limit: int = 100, min_risk_score: Optional[float] = None) -> List[NetworkFlow]:
        flows = [
            f for f in self.network_flows.values()
            if min_risk_score is None or f.risk_score >= min_risk_score
        ]
        flows.sort(key=lambda f: f.start_time, reverse=True)
        return flows[:max(limit, 0)]

    def delete_flow(self, flow_id: str) -> None:
        flow = self.network_flows.pop(flow_id, None)
        if flow is None:
            raise NotFoundError(f"Flow {flow_id} not found")

        # movements outlive the flow that revealed them
        for movement in self.lateral_movements.values():
            if movement.flow_id == flow_id:
                movement.flow_id = None
        self.topology_manager.forget_flow(flow)
        logger.info("Flow %s deleted", flow_id)

    def _detect_flow_anomalies(self, flow: NetworkFlow) -> List[NetworkAnomaly]:
        anomalies: List[NetworkAnomaly] = []
        now = self._clock()
        total_bytes = flow.bytes_sent + flow.bytes_received

        if flow.bytes_sent > self.LARGE_TRANSFER_BYTES or flow.bytes_received > self.LARGE_TRANSFER_BYTES:
            anomalies.append(
                NetworkAnomaly(
                    id=generate_id("anomaly"),
                    type="traffic_spike",
                    severity="medium",
                    description="Unusual high-volume data transfer detected",
                    confidence=0.8,
                    timestamp=now,
                    indicators=[f"{total_bytes} bytes transferred"],
                    mitre_tactics=["TA0010"],
                    mitre_techniques=["T1041"],
                )
            )

        if is_unusual_port(flow.destination_port):
            anomalies.append(
                NetworkAnomaly(
                    id=generate_id("anomaly"),
                    type="unusual_port",
                    severity="low",
                    description=f"Connection to unusual port {flow.destination_port}",
                    confidence=0.6,
                    timestamp=now,
                    indicators=[f"Port {flow.destination_port}", flow.protocol.value],
                    mitre_tactics=["TA0007"],
                    mitre_techniques=["T1046"],
                )
            )

        packet = PacketData.model_validate(flow.payload)
        for pa in self._analyze_protocol_anomalies(flow.protocol.value, packet):
            anomalies.append(
                NetworkAnomaly(
                    id=pa.id,
                    type=pa.type,
                    severity=pa.severity,
                    description=pa.description,
                    confidence=0.8,
                    timestamp=pa.last_seen,
                    indicators=[f"Protocol: {flow.protocol.value}", f"Frequency: {pa.frequency}"],
                )
            )

        anomalies.extend(self._run_detectors(flow, now))
        return anomalies

    def _run_detectors(self, flow: NetworkFlow, now: datetime) -> List[NetworkAnomaly]:
        anomalies: List[NetworkAnomaly] = []
        volume = float(flow.bytes_sent + flow.bytes_received)

        # statistical volume outlier against the learned baseline
        volume_detector = self.anomaly_detectors["traffic_volume"]
        baseline = volume_detector.baseline
        if len(baseline) >= self.BASELINE_MIN_SAMPLES:
            mean = statistics.fmean(baseline)
            stdev = statistics.pstdev(baseline)
            if stdev > 0 and (volume - mean) / stdev > volume_detector.threshold:
                anomalies.append(
                    NetworkAnomaly(
                        id=generate_id("anomaly"),
                        type="data_exfiltration",
                        severity="high",
                        description=(
                            f"Transfer volume {int(volume)} bytes is "
                            f"{(volume - mean) / stdev:.1f} standard deviations above baseline"
                        ),
                        confidence=0.7,
                        timestamp=now,
                        indicators=[f"{int(volume)} bytes", f"baseline mean {int(mean)}"],
                        mitre_tactics=["TA0010"],
                        mitre_techniques=["T1048"],
                    )
                )
        baseline.append(volume)
        del baseline[:-self.BASELINE_MAX_SAMPLES]
        volume_detector.last_updated = now

        # connection burst from one source inside the detector window
        freq_detector = self.anomaly_detectors["connection_frequency"]
        window_start = now - timedelta(seconds=freq_detector.window)
        connections = 1 + sum(
            1 for f in self.network_flows.values()
            if f.source_ip == flow.source_ip and f.start_time >= window_start
        )
        freq_detector.last_updated = now
        if connections > freq_detector.threshold:
            anomalies.append(
                NetworkAnomaly(
                    id=generate_id("anomaly"),
                    type="reconnaissance",
                    severity="medium",
                    description=(
                        f"{connections} connections from {flow.source_ip} within "
                        f"{int(freq_detector.window)}s"
                    ),
                    confidence=0.7,
                    timestamp=now,
                    indicators=[flow.source_ip, f"{connections} connections"],
                    mitre_tactics=["TA0007"],
                    mitre_techniques=["T1046"],
                )
            )

        return anomalies

    def _calculate_flow_risk_score(self, flow: NetworkFlow) -> float:
        score = sum(
            SEVERITY_WEIGHTS.get(a.severity.value, 0) * a.confidence for a in flow.anomalies
        )
        score += PROTOCOL_RISK.get(flow.protocol.value, 10)

        if is_unusual_port(flow.destination_port):
            score += 15
        if flow.bytes_sent + flow.bytes_received > self.LARGE_TRANSFER_BYTES:
            score += 20

        return clamp_risk(score)

    # -------------------------------------------------------------------------
    # Lateral movement detection
    # -------------------------------------------------------------------------
    async def detect_lateral_movement(self, flow: NetworkFlow) -> Optional[LateralMovement]:
        indicators = self._lateral_movement_indicators(flow)
        if not indicators:
            return None

        movement = LateralMovement(
            id=generate_id("lateral"),
            source_host=flow.source_ip,
            target_host=flow.destination_ip,
            technique=self._classify_technique(flow),
            confidence=min(1.0, len(indicators) * 0.2 + 0.3),
            timestamp=self._clock(),
            indicators=indicators,
            risk_score=self._lateral_movement_risk(flow),
            status=MovementStatus.DETECTED,
            flow_id=flow.id,
        )
        self.lateral_movements[movement.id] = movement
        logger.info(
            "Lateral movement %s: %s -> %s (%s)",
            movement.id, movement.source_host, movement.target_host, movement.technique.value,
        )
        return movement

    @staticmethod
    def _lateral_movement_indicators(flow: NetworkFlow) -> List[str]:
        indicators: List[str] = []
        protocol = flow.protocol.value

        if protocol == "SMB" and flow.destination_port == 445:
            indicators.append("SMB connection to remote host")
        if protocol == "RDP" and flow.destination_port == 3389:
            indicators.append("RDP connection to remote host")
        if protocol == "SSH" and flow.destination_port == 22:
            indicators.append("SSH connection to remote host")
        if protocol == "SMB" and any(share in flow.application for share in ADMIN_SHARES):
            indicators.append("Administrative share access")

        return indicators

    @staticmethod
    def _classify_technique(flow: NetworkFlow) -> LateralTechnique:
        protocol = flow.protocol.value
        if protocol == "SMB" and flow.destination_port == 445:
            return LateralTechnique.PASS_THE_HASH
        if protocol == "RDP":
            return LateralTechnique.REMOTE_EXECUTION
        if protocol == "SMB" and any(share in flow.application for share in ADMIN_SHARES[:2]):
            return LateralTechnique.WINDOWS_ADMIN_SHARES
        return LateralTechnique.REMOTE_SERVICE

    @staticmethod
    def _lateral_movement_risk(flow: NetworkFlow) -> float:
        risk = 50
        if flow.protocol == "SMB":
            risk += 20
        if flow.protocol == "RDP":
            risk += 25
        if flow.destination_port == 3389:
            risk += 15
        return clamp_risk(risk)

    def list_lateral_movements(self, status: Optional[str] = None) -> List[LateralMovement]:
        return [m for m in self.lateral_movements.values() if status is None or m.status == status]

    def update_lateral_movement_status(self, movement_id: str, status: MovementStatus) -> LateralMovement:
        movement = self.lateral_movements.get(movement_id)
        if movement is None:
            raise NotFoundError(f"Lateral movement {movement_id} not found")
        movement.status = status
        return movement

    # -------------------------------------------------------------------------
    # Topology
    # -------------------------------------------------------------------------
    def add_segment(self, segment: NetworkSegment) -> NetworkTopology:
        self.topology_manager.add_segment(segment)
        return self.topology

    # -------------------------------------------------------------------------
    # Encrypted traffic
    # -------------------------------------------------------------------------
    async def analyze_encrypted_traffic(self, data: EncryptedTrafficCreate) -> EncryptedTrafficAnalysis:
        analysis = EncryptedTrafficAnalysis(
            **data.model_dump(), id=generate_id("encrypted"), timestamp=self._clock()
        )

        analysis.anomalies = self._detect_tls_anomalies(analysis)

        if analysis.ja3_fingerprint and analysis.ja3_fingerprint in self._malicious_ja3:
            analysis.anomalies.append("Known malicious JA3 fingerprint detected")
            analysis.risk_score += 80

        if analysis.certificate_info:
            cert_anomalies, cert_risk = self._analyze_certificate(analysis.certificate_info)
            analysis.anomalies.extend(cert_anomalies)
            analysis.risk_score += cert_risk

        analysis.classification = self._classify_encrypted_traffic(analysis)
        analysis.risk_score = clamp_risk(analysis.risk_score)

        self.encrypted_traffic[analysis.id] = analysis
        return analysis

    @staticmethod
    def _detect_tls_anomalies(traffic: EncryptedTrafficAnalysis) -> List[str]:
        anomalies: List[str] = []

        version = (traffic.tls_version or "").upper().replace("TLSV", "").replace("TLS", "").strip()
        if version.startswith("1.0"):
            anomalies.append("Deprecated TLS 1.0 usage")

        if traffic.cipher_suite and "NULL" in traffic.cipher_suite.upper():
            anomalies.append("Weak cipher suite with NULL encryption")

        return anomalies

    def _analyze_certificate(self, cert: CertificateInfo) -> tuple[List[str], float]:
        anomalies: List[str] = []
        risk = 0.0

        if self._clock() > cert.valid_to:
            anomalies.append("Expired SSL certificate")
            risk += 30
        if cert.issuer == cert.subject:
            anomalies.append("Self-signed certificate")
            risk += 20

        return anomalies, risk

    @staticmethod
    def _classify_encrypted_traffic(traffic: EncryptedTrafficAnalysis) -> str:
        if traffic.risk_score > 70:
            return "malicious"
        if traffic.risk_score > 40:
            return "suspicious"
        if not traffic.anomalies:
            return "legitimate"
        return "unknown"

    # -------------------------------------------------------------------------
    # Protocol analysis
    # -------------------------------------------------------------------------
    async def analyze_protocol_traffic(self, protocol: str, packet: PacketData) -> ProtocolAnalysis:
        protocol = protocol.upper()
        analyzer = self.protocol_analyzers.get(protocol)
        if analyzer is None:
            analyzer = ProtocolAnalysis(protocol=protocol)
            self.protocol_analyzers[protocol] = analyzer

        analyzer.packets_analyzed += 1
        analyzer.anomalies.extend(self._analyze_protocol_anomalies(protocol, packet))
        analyzer.signatures.extend(self._check_protocol_signatures(protocol, packet))
        self._update_protocol_performance(analyzer, packet)

        return analyzer

    def list_protocol_analyzers(self) -> List[ProtocolAnalysis]:
        return list(self.protocol_analyzers.values())

    def _analyze_protocol_anomalies(self, protocol: str, packet: PacketData) -> List[ProtocolAnomaly]:
        anomalies: List[ProtocolAnomaly] = []
        if protocol == "HTTP" and (packet.method or "").upper() == "TRACE":
            now = self._clock()
            anomalies.append(
                ProtocolAnomaly(
                    id=generate_id("proto_anomaly"),
                    type="http_trace_method",
                    description="HTTP TRACE method usage (potential XST attack)",
                    severity="medium",
                    frequency=1,
                    first_seen=now,
                    last_seen=now,
                )
            )
        return anomalies

    @staticmethod
    def _check_protocol_signatures(protocol: str, packet: PacketData) -> List[ProtocolSignature]:
        signatures: List[ProtocolSignature] = []
        if protocol == "SMB" and packet.command == "tree_connect":
            signatures.append(
                ProtocolSignature(
                    id="smb_tree_connect",
                    name="SMB Tree Connect",
                    pattern="tree_connect",
                    risk_score=10,
                    category="recon",
                )
            )
        return signatures

    @staticmethod
    def _update_protocol_performance(analyzer: ProtocolAnalysis, packet: PacketData) -> None:
        perf = analyzer.performance
        perf.throughput = (perf.throughput + packet.size) / 2
        response_time = packet.response_time if packet.response_time is not None else 10
        perf.latency = (perf.latency + response_time) / 2
        perf.error_rate = perf.error_rate + 0.01 if packet.has_error else perf.error_rate * 0.99

    # -------------------------------------------------------------------------
    # Performance monitoring
    # -------------------------------------------------------------------------
    async def record_performance_metrics(self, data: NetworkPerformanceCreate) -> NetworkPerformance:
        record = NetworkPerformance(**data.model_dump(), timestamp=self._clock())
        record.issues = self._analyze_performance_anomalies(record)

        self.performance_metrics.append(record)
        del self.performance_metrics[:-self._history_limit]
        return record

    def list_performance_metrics(self, limit: int = 100) -> List[NetworkPerformance]:
        """Most recent `limit` samples, oldest first."""
        if limit <= 0:
            return []
        return self.performance_metrics[-limit:]

    @staticmethod
    def _analyze_performance_anomalies(metrics: NetworkPerformance) -> List[str]:
        issues: List[str] = []
        if metrics.bandwidth.utilization > 90:
            logger.warning("High bandwidth utilization detected: %s", metrics.bandwidth.utilization)
            issues.append("high_bandwidth_utilization")
        if metrics.latency.p99 > 1000:
            logger.warning("High latency detected: %s", metrics.latency.p99)
            issues.append("high_latency")
        if metrics.packet_loss > 5:
            logger.warning("High packet loss detected: %s", metrics.packet_loss)
            issues.append("high_packet_loss")
        return issues

    # -------------------------------------------------------------------------
    # Threat hunting
    # -------------------------------------------------------------------------
    async def hunt_for_network_threats(self, query: NetworkHuntQuery) -> NetworkHuntResult:
        result = NetworkHuntResult(query=query, timestamp=self._clock())
        started = time.perf_counter()

        for flow in self.network_flows.values():
            result.statistics.flows_analyzed += 1
            if self._flow_matches(flow, query):
                result.matches.append(
                    HuntMatch(
                        type="flow",
                        data=flow,
                        risk_score=flow.risk_score,
                        indicators=[a.description for a in flow.anomalies],
                    )
                )

        if query.include_lateral_movement:
            for movement in self.lateral_movements.values():
                if self._movement_matches(movement, query):
                    result.matches.append(
                        HuntMatch(
                            type="lateral_movement",
                            data=movement,
                            risk_score=movement.risk_score,
                            indicators=movement.indicators,
                        )
                    )

        if query.include_encrypted_traffic:
            for traffic in self.encrypted_traffic.values():
                if self._traffic_matches(traffic, query):
                    result.matches.append(
                        HuntMatch(
                            type="encrypted_traffic",
                            data=traffic,
                            risk_score=traffic.risk_score,
                            indicators=traffic.anomalies,
                        )
                    )

        result.statistics.execution_time = (time.perf_counter() - started) * 1000
        result.statistics.anomalies_found = len(result.matches)
        result.statistics.high_risk_flows = sum(
            1 for m in result.matches if m.risk_score > self.HIGH_RISK_SCORE
        )
        return result

    @staticmethod
    def _in_time_range(ts: datetime, query: NetworkHuntQuery) -> bool:
        if query.time_range is None:
            return True
        return query.time_range.start <= ts <= query.time_range.end

    def _flow_matches(self, flow: NetworkFlow, query: NetworkHuntQuery) -> bool:
        if query.source_ip and flow.source_ip != query.source_ip:
            return False
        if query.destination_ip and flow.destination_ip != query.destination_ip:
            return False
        if query.protocol and flow.protocol.value != query.protocol.upper():
            return False
        if query.port is not None and flow.destination_port != query.port:
            return False
        if query.min_risk_score is not None and flow.risk_score < query.min_risk_score:
            return False
        if query.anomaly_types and not any(a.type in query.anomaly_types for a in flow.anomalies):
            return False
        return self._in_time_range(flow.start_time, query)

    def _movement_matches(self, movement: LateralMovement, query: NetworkHuntQuery) -> bool:
        if query.source_ip and movement.source_host != query.source_ip:
            return False
        if query.destination_ip and movement.target_host != query.destination_ip:
            return False
        if query.min_risk_score is not None and movement.risk_score < query.min_risk_score:
            return False
        return self._in_time_range(movement.timestamp, query)

    def _traffic_matches(self, traffic: EncryptedTrafficAnalysis, query: NetworkHuntQuery) -> bool:
        if query.source_ip and traffic.source_ip != query.source_ip:
            return False
        if query.destination_ip and traffic.destination_ip != query.destination_ip:
            return False
        if query.protocol and traffic.protocol.upper() != query.protocol.upper():
            return False
        if query.min_risk_score is not None and traffic.risk_score < query.min_risk_score:
            return False
        return self._in_time_range(traffic.timestamp, query)

    # -------------------------------------------------------------------------
    # Overview
    # -------------------------------------------------------------------------
    def get_overview(self) -> NetworkOverview:
        flows = list(self.network_flows.values())
        return NetworkOverview(
            status="operational",
            metrics=NetworkMetrics(
                total_flows=len(flows),
                lateral_movements=len(self.lateral_movements),
                anomalies=sum(len(f.anomalies) for f in flows),
                encrypted_traffic=len(self.encrypted_traffic),
                high_risk_flows=sum(1 for f in flows if f.risk_score > self.HIGH_RISK_SCORE),
                topology_nodes=len(self.topology.nodes),
                performance_issues=sum(1 for p in self.performance_metrics if p.issues),
            ),
            risk_assessment=self.topology.risk_assessment,
            detectors=list(self.anomaly_detectors.values()),
            last_update=self._clock(),
        )

    # -------------------------------------------------------------------------
    # Defaults
    # -------------------------------------------------------------------------
    def _initialize_default_detectors(self) -> None:
        now = self._clock()
        self.anomaly_detectors["traffic_volume"] = AnomalyDetector(
            id="traffic_volume_detector",
            type="statistical",
            threshold=2.5,  # standard deviations
            window=3600,
            last_updated=now,
        )
        self.anomaly_detectors["connection_frequency"] = AnomalyDetector(
            id="connection_frequency_detector",
            type="frequency",
            threshold=100,  # connections per window
            window=60,
            last_updated=now,
        )

    def _initialize_protocol_analyzers(self) -> None:
        for protocol in DEFAULT_PROTOCOLS:
            self.protocol_analyzers[protocol] = ProtocolAnalysis(protocol=protocol)
