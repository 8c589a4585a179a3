from xdr_engine.schemas.network import NetworkFlow, NetworkSegment
from xdr_engine.services.network.topology import (
    TopologyManager,
    calculate_service_risk,
    get_service_name,
)


def make_flow(src, dst, port, protocol="TCP", risk=0.0, sent=100):
    return NetworkFlow(
        id=f"flow_{src}_{dst}_{port}",
        sourceIP=src,
        destinationIP=dst,
        destination_port=port,
        protocol=protocol,
        bytes_sent=sent,
        risk_score=risk,
    )


def test_service_helpers():
    assert get_service_name(3389, "RDP") == "RDP"
    assert get_service_name(8443, "TCP") == "TCP Service"
    assert calculate_service_risk(445) == 70
    assert calculate_service_risk(25) == 40
    assert calculate_service_risk(8080) == 10


def test_repeated_flows_share_nodes_and_edges():
    manager = TopologyManager()
    manager.update_from_flow(make_flow("10.0.0.1", "10.0.0.2", 22, "SSH", risk=20, sent=100))
    manager.update_from_flow(make_flow("10.0.0.1", "10.0.0.2", 22, "SSH", risk=10, sent=50))

    topology = manager.topology
    assert len(topology.nodes) == 2
    [edge] = topology.edges
    assert edge.frequency == 2
    assert edge.bandwidth == 150
    assert edge.risk_score == 20

    dest = manager.find_node("10.0.0.2")
    assert [(s.port, s.service) for s in dest.services] == [(22, "SSH")]
    assert manager.find_node("10.9.9.9") is None


def test_risk_assessment_counts_exposure_and_gaps():
    manager = TopologyManager()
    manager.update_from_flow(make_flow("10.0.0.1", "10.0.0.2", 3389, "RDP"))
    manager.update_from_flow(make_flow("10.0.0.1", "10.0.0.3", 1433))
    manager.add_segment(
        NetworkSegment.model_validate(
            {
                "id": "seg-1",
                "name": "servers",
                "cidr": "10.0.0.0/24",
                "accessPolicies": [
                    {"sourceSegment": "users", "destinationSegment": "servers", "requiresAuthentication": False}
                ],
            }
        )
    )

    assessment = manager.topology.risk_assessment
    assert assessment.exposed_services == 2
    assert assessment.segmentation_gaps == 1
    assert assessment.overall_risk == 2 * 5 + 15


def test_forget_flow_unwinds_edge_traffic():
    manager = TopologyManager()
    kept = make_flow("10.0.0.1", "10.0.0.2", 445, "SMB", risk=30, sent=400)
    gone = make_flow("10.0.0.1", "10.0.0.2", 445, "SMB", risk=60, sent=100)
    manager.update_from_flow(kept)
    manager.update_from_flow(gone)

    manager.forget_flow(gone)
    [edge] = manager.topology.edges
    assert (edge.frequency, edge.bandwidth) == (1, 400)
    assert edge.risk_score == 60

    manager.forget_flow(kept)
    assert manager.topology.edges == []
    # services stay open on the node
    assert manager.topology.risk_assessment.exposed_services == 1

    # unknown flows are ignored
    manager.forget_flow(make_flow("10.9.9.9", "10.0.0.2", 22))
    assert manager.topology.edges == []
