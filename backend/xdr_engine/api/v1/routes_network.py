# backend/xdr_engine/api/v1/routes_network.py

from typing import Any, Awaitable, Callable, Dict, Optional

from fastapi import APIRouter, Depends, Query, Request

from xdr_engine.api.v1.deps import get_network_analysis
from xdr_engine.api.v1.envelope import (
    float_param,
    int_param,
    ok,
    read_json_body,
    require_param,
    unknown_action,
)
from xdr_engine.schemas.network import (
    EncryptedTrafficCreate,
    MovementStatusUpdate,
    NetworkFlowCreate,
    NetworkHuntQuery,
    NetworkPerformanceCreate,
    NetworkSegment,
    ProtocolPacketRequest,
)
from xdr_engine.services.network.network_analysis import AdvancedNetworkAnalysis

router = APIRouter(
    prefix="/xdr/network",
    tags=["xdr", "network"],
)

Handler = Callable[[Request, AdvancedNetworkAnalysis], Awaitable[Any]]


# ---------------------------------------------------------------------------
# GET
# ---------------------------------------------------------------------------
async def _overview(request: Request, analysis: AdvancedNetworkAnalysis) -> Any:
    return analysis.get_overview()


async def _list_flows(request: Request, analysis: AdvancedNetworkAnalysis) -> Any:
    return analysis.list_flows(
        limit=int_param(request, "limit", 100),
        min_risk_score=float_param(request, "minRiskScore"),
    )


async def _get_flow(request: Request, analysis: AdvancedNetworkAnalysis) -> Any:
    return analysis.get_flow(require_param(request, "id"))


async def _list_lateral_movements(request: Request, analysis: AdvancedNetworkAnalysis) -> Any:
    return analysis.list_lateral_movements(status=request.query_params.get("status"))


async def _topology(request: Request, analysis: AdvancedNetworkAnalysis) -> Any:
    return analysis.topology


async def _list_encrypted(request: Request, analysis: AdvancedNetworkAnalysis) -> Any:
    return list(analysis.encrypted_traffic.values())


async def _list_protocols(request: Request, analysis: AdvancedNetworkAnalysis) -> Any:
    return analysis.list_protocol_analyzers()


async def _list_performance(request: Request, analysis: AdvancedNetworkAnalysis) -> Any:
    return analysis.list_performance_metrics(limit=int_param(request, "limit", 100))


GET_ACTIONS: Dict[Optional[str], Handler] = {
    None: _overview,
    "flows": _list_flows,
    "flow": _get_flow,
    "lateral-movements": _list_lateral_movements,
    "topology": _topology,
    "encrypted": _list_encrypted,
    "protocols": _list_protocols,
    "performance": _list_performance,
}


# ---------------------------------------------------------------------------
# POST
# ---------------------------------------------------------------------------
async def _analyze_flow(request: Request, analysis: AdvancedNetworkAnalysis) -> Any:
    payload = NetworkFlowCreate.model_validate(await read_json_body(request))
    return await analysis.analyze_network_flow(payload)


async def _analyze_encrypted(request: Request, analysis: AdvancedNetworkAnalysis) -> Any:
    payload = EncryptedTrafficCreate.model_validate(await read_json_body(request))
    return await analysis.analyze_encrypted_traffic(payload)


async def _analyze_protocol(request: Request, analysis: AdvancedNetworkAnalysis) -> Any:
    payload = ProtocolPacketRequest.model_validate(await read_json_body(request))
    return await analysis.analyze_protocol_traffic(payload.protocol, payload.packet)


async def _record_performance(request: Request, analysis: AdvancedNetworkAnalysis) -> Any:
    payload = NetworkPerformanceCreate.model_validate(await read_json_body(request))
    return await analysis.record_performance_metrics(payload)


async def _hunt(request: Request, analysis: AdvancedNetworkAnalysis) -> Any:
    query = NetworkHuntQuery.model_validate(await read_json_body(request))
    return await analysis.hunt_for_network_threats(query)


async def _add_segment(request: Request, analysis: AdvancedNetworkAnalysis) -> Any:
    segment = NetworkSegment.model_validate(await read_json_body(request))
    return analysis.add_segment(segment)


POST_ACTIONS: Dict[Optional[str], Handler] = {
    "flow": _analyze_flow,
    "encrypted": _analyze_encrypted,
    "protocol": _analyze_protocol,
    "performance": _record_performance,
    "hunt": _hunt,
    "segment": _add_segment,
}


# ---------------------------------------------------------------------------
# PUT / DELETE
# ---------------------------------------------------------------------------
async def _update_lateral_movement(request: Request, analysis: AdvancedNetworkAnalysis) -> Any:
    movement_id = require_param(request, "id")
    payload = MovementStatusUpdate.model_validate(await read_json_body(request))
    return analysis.update_lateral_movement_status(movement_id, payload.status)


PUT_ACTIONS: Dict[Optional[str], Handler] = {
    "lateral-movement": _update_lateral_movement,
}


async def _delete_flow(request: Request, analysis: AdvancedNetworkAnalysis) -> Any:
    flow_id = require_param(request, "id")
    analysis.delete_flow(flow_id)
    return {"id": flow_id, "deleted": True}


DELETE_ACTIONS: Dict[Optional[str], Handler] = {
    "flow": _delete_flow,
}


async def _dispatch(
    actions: Dict[Optional[str], Handler],
    action: Optional[str],
    request: Request,
    analysis: AdvancedNetworkAnalysis,
) -> dict:
    handler = actions.get(action or None)
    if handler is None:
        raise unknown_action(action, actions)
    return ok(action, await handler(request, analysis))


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------
@router.get("", summary="Query network analysis")
async def network_get(
    request: Request,
    action: Optional[str] = Query(None),
    analysis: AdvancedNetworkAnalysis = Depends(get_network_analysis),
) -> dict:
    return await _dispatch(GET_ACTIONS, action, request, analysis)


@router.post("", summary="Submit traffic for analysis")
async def network_post(
    request: Request,
    action: Optional[str] = Query(None),
    analysis: AdvancedNetworkAnalysis = Depends(get_network_analysis),
) -> dict:
    return await _dispatch(POST_ACTIONS, action, request, analysis)


@router.put("", summary="Update network analysis objects")
async def network_put(
    request: Request,
    action: Optional[str] = Query(None),
    analysis: AdvancedNetworkAnalysis = Depends(get_network_analysis),
) -> dict:
    return await _dispatch(PUT_ACTIONS, action, request, analysis)


@router.delete("", summary="Delete network analysis objects")
async def network_delete(
    request: Request,
    action: Optional[str] = Query(None),
    analysis: AdvancedNetworkAnalysis = Depends(get_network_analysis),
) -> dict:
    return await _dispatch(DELETE_ACTIONS, action, request, analysis)
