# backend/xdr_engine/services/network/topology.py
from datetime import datetime
from typing import Callable, Optional

from xdr_engine.core.utils import utcnow
from xdr_engine.schemas.network import (
    NetworkEdge,
    NetworkFlow,
    NetworkNode,
    NetworkSegment,
    NetworkService,
    NetworkTopology,
)


SERVICE_NAMES = {
    21: "FTP", 22: "SSH", 23: "Telnet", 25: "SMTP", 53: "DNS",
    80: "HTTP", 110: "POP3", 143: "IMAP", 443: "HTTPS", 993: "IMAPS",
    995: "POP3S", 3389: "RDP", 445: "SMB",
}

# Telnet, RDP, SMB, MSSQL, MySQL, PostgreSQL
HIGH_RISK_PORTS = {23, 3389, 445, 1433, 3306, 5432}
# FTP, SMTP, POP3, IMAP
MEDIUM_RISK_PORTS = {21, 25, 110, 143}

EXPOSED_SERVICE_RISK = 50


def get_service_name(port: int, protocol: str) -> str:
    return SERVICE_NAMES.get(port, f"{protocol} Service")


def calculate_service_risk(port: int) -> float:
    if port in HIGH_RISK_PORTS:
        return 70
    if port in MEDIUM_RISK_PORTS:
        return 40
    return 10


class TopologyManager:
    """Builds the node / edge graph incrementally from analysed flows."""

    def __init__(self, clock: Callable[[], datetime] = utcnow) -> None:
        self._clock = clock
        self.topology = NetworkTopology(last_updated=clock())

    def _upsert_node(self, ip: str) -> NetworkNode:
        node = self.find_node(ip)
        if node is None:
            node = NetworkNode(id=f"node_{ip}", ip=ip, last_seen=self._clock())
            self.topology.nodes.append(node)
        node.last_seen = self._clock()
        return node

    def find_node(self, ip: str) -> Optional[NetworkNode]:
        return next((n for n in self.topology.nodes if n.ip == ip), None)

    def find_edge(self, flow: NetworkFlow) -> Optional[NetworkEdge]:
        return next(
            (
                e for e in self.topology.edges
                if e.source == flow.source_ip
                and e.target == flow.destination_ip
                and e.protocol == flow.protocol.value
                and e.port == flow.destination_port
            ),
            None,
        )

    def update_from_flow(self, flow: NetworkFlow) -> None:
        now = self._clock()
        protocol = flow.protocol.value

        self._upsert_node(flow.source_ip)
        dest_node = self._upsert_node(flow.destination_ip)

        if not any(s.port == flow.destination_port for s in dest_node.services):
            dest_node.services.append(
                NetworkService(
                    port=flow.destination_port,
                    protocol=protocol,
                    service=get_service_name(flow.destination_port, protocol),
                    state="open",
                    risk_score=calculate_service_risk(flow.destination_port),
                )
            )

        edge = self.find_edge(flow)
        if edge is None:
            edge = NetworkEdge(
                source=flow.source_ip,
                target=flow.destination_ip,
                protocol=protocol,
                port=flow.destination_port,
                last_seen=now,
            )
            self.topology.edges.append(edge)

        edge.frequency += 1
        edge.bandwidth += flow.bytes_sent + flow.bytes_received
        edge.last_seen = now
        edge.risk_score = max(edge.risk_score, flow.risk_score)

        self.topology.last_updated = now
        self.update_risk_assessment()

    def forget_flow(self, flow: NetworkFlow) -> None:
        """
        Take a deleted flow's traffic off its edge. The edge goes away with
        its last flow; nodes and services are kept. The edge risk score is a
        high-water mark and is left as is.
        """
        edge = self.find_edge(flow)
        if edge is None:
            return

        edge.frequency -= 1
        edge.bandwidth = max(0, edge.bandwidth - (flow.bytes_sent + flow.bytes_received))
        if edge.frequency <= 0:
            self.topology.edges.remove(edge)

        self.topology.last_updated = self._clock()
        self.update_risk_assessment()

    def add_segment(self, segment: NetworkSegment) -> None:
        self.topology.segments.append(segment)
        self.update_risk_assessment()

    def update_risk_assessment(self) -> None:
        topology = self.topology
        assessment = topology.risk_assessment

        assessment.vulnerable_nodes = sum(
            1 for n in topology.nodes
            if any(v.severity in ("high", "critical") for v in n.vulnerabilities)
        )
        assessment.exposed_services = sum(
            1
            for n in topology.nodes
            for s in n.services
            if s.state == "open" and s.risk_score > EXPOSED_SERVICE_RISK
        )
        assessment.segmentation_gaps = sum(
            1 for s in topology.segments
            if any(not p.requires_authentication for p in s.access_policies)
        )
        assessment.overall_risk = min(
            100,
            assessment.vulnerable_nodes * 10
            + assessment.exposed_services * 5
            + assessment.segmentation_gaps * 15,
        )
