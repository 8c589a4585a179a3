# backend/xdr_engine/api/v1/routes_detection_engine.py

from typing import Any, Awaitable, Callable, Dict, Optional

from fastapi import APIRouter, Depends, Query, Request

from xdr_engine.api.v1.deps import get_detection_engine
from xdr_engine.api.v1.envelope import (
    bool_param,
    int_param,
    ok,
    read_json_body,
    require_param,
    unknown_action,
)
from xdr_engine.schemas.detection import (
    AutomatedResponseCreate,
    BehaviorUpdateRequest,
    CorrelationRuleCreate,
    CorrelationStatusUpdate,
    DetectionRuleCreate,
    DetectionRuleUpdate,
    ExecuteResponseRequest,
    MLModelCreate,
    PredictRequest,
    RiskAssessmentRequest,
    ThreatIndicatorCreate,
    TrainModelRequest,
)
from xdr_engine.services.detection.detection_engine import AdvancedDetectionEngine

router = APIRouter(
    prefix="/xdr/detection-engine",
    tags=["xdr", "detection"],
)

Handler = Callable[[Request, AdvancedDetectionEngine], Awaitable[Any]]


# ---------------------------------------------------------------------------
# GET
# ---------------------------------------------------------------------------
async def _overview(request: Request, engine: AdvancedDetectionEngine) -> Any:
    return engine.get_overview()


async def _list_indicators(request: Request, engine: AdvancedDetectionEngine) -> Any:
    return engine.list_threat_indicators(
        type=request.query_params.get("type"),
        severity=request.query_params.get("severity"),
        limit=int_param(request, "limit", 100),
    )


async def _get_indicator(request: Request, engine: AdvancedDetectionEngine) -> Any:
    return engine.get_threat_indicator(require_param(request, "id"))


async def _list_rules(request: Request, engine: AdvancedDetectionEngine) -> Any:
    return engine.list_detection_rules(enabled_only=bool_param(request, "enabledOnly"))


async def _get_rule(request: Request, engine: AdvancedDetectionEngine) -> Any:
    return engine.get_detection_rule(require_param(request, "id"))


async def _list_correlations(request: Request, engine: AdvancedDetectionEngine) -> Any:
    return engine.list_correlations(status=request.query_params.get("status"))


async def _list_correlation_rules(request: Request, engine: AdvancedDetectionEngine) -> Any:
    return engine.list_correlation_rules()


async def _get_profile(request: Request, engine: AdvancedDetectionEngine) -> Any:
    return engine.get_behavioral_profile(require_param(request, "entityId"))


async def _get_risk(request: Request, engine: AdvancedDetectionEngine) -> Any:
    return engine.get_risk_assessment(require_param(request, "entityId"))


async def _list_models(request: Request, engine: AdvancedDetectionEngine) -> Any:
    return engine.list_ml_models()


async def _list_feeds(request: Request, engine: AdvancedDetectionEngine) -> Any:
    return engine.list_threat_feeds()


async def _list_responses(request: Request, engine: AdvancedDetectionEngine) -> Any:
    return engine.list_automated_responses()


async def _list_executions(request: Request, engine: AdvancedDetectionEngine) -> Any:
    return engine.dispatcher.audit_service.list_executions(
        limit=int_param(request, "limit", 50),
        response_id=request.query_params.get("responseId"),
    )


GET_ACTIONS: Dict[Optional[str], Handler] = {
    None: _overview,
    "indicators": _list_indicators,
    "indicator": _get_indicator,
    "rules": _list_rules,
    "rule": _get_rule,
    "correlations": _list_correlations,
    "correlation-rules": _list_correlation_rules,
    "profile": _get_profile,
    "risk": _get_risk,
    "models": _list_models,
    "feeds": _list_feeds,
    "responses": _list_responses,
    "executions": _list_executions,
}


# ---------------------------------------------------------------------------
# POST
# ---------------------------------------------------------------------------
async def _add_indicator(request: Request, engine: AdvancedDetectionEngine) -> Any:
    payload = ThreatIndicatorCreate.model_validate(await read_json_body(request))
    return {"id": await engine.add_threat_indicator(payload)}


async def _create_rule(request: Request, engine: AdvancedDetectionEngine) -> Any:
    payload = DetectionRuleCreate.model_validate(await read_json_body(request))
    return {"id": engine.create_detection_rule(payload)}


async def _evaluate(request: Request, engine: AdvancedDetectionEngine) -> Any:
    body = await read_json_body(request)
    # either {"record": {...}, "executeActions": bool} or the bare record
    record = body.get("record", body)
    matched = await engine.evaluate_detection_rules(
        record, execute_actions=bool(body.get("executeActions", False))
    )
    return {"matched": len(matched), "rules": matched}


async def _create_correlation_rule(request: Request, engine: AdvancedDetectionEngine) -> Any:
    payload = CorrelationRuleCreate.model_validate(await read_json_body(request))
    return {"id": engine.create_correlation_rule(payload)}


async def _update_behavior(request: Request, engine: AdvancedDetectionEngine) -> Any:
    payload = BehaviorUpdateRequest.model_validate(await read_json_body(request))
    return await engine.update_behavioral_profile(
        payload.entity_id, payload.entity_type, payload.activity
    )


async def _assess_risk(request: Request, engine: AdvancedDetectionEngine) -> Any:
    payload = RiskAssessmentRequest.model_validate(await read_json_body(request))
    return await engine.assess_risk(payload.entity_id, payload.entity_type)


async def _register_model(request: Request, engine: AdvancedDetectionEngine) -> Any:
    payload = MLModelCreate.model_validate(await read_json_body(request))
    return {"id": engine.register_ml_model(payload)}


async def _train_model(request: Request, engine: AdvancedDetectionEngine) -> Any:
    payload = TrainModelRequest.model_validate(await read_json_body(request))
    return await engine.train_ml_model(payload.model_id, payload.training_data)


async def _predict(request: Request, engine: AdvancedDetectionEngine) -> Any:
    payload = PredictRequest.model_validate(await read_json_body(request))
    return await engine.predict_with_ml(payload.model_id, payload.input)


async def _create_response(request: Request, engine: AdvancedDetectionEngine) -> Any:
    payload = AutomatedResponseCreate.model_validate(await read_json_body(request))
    return {"id": engine.create_automated_response(payload)}


async def _execute_response(request: Request, engine: AdvancedDetectionEngine) -> Any:
    payload = ExecuteResponseRequest.model_validate(await read_json_body(request))
    return await engine.execute_automated_response(payload.response_id, payload.context)


async def _update_feeds(request: Request, engine: AdvancedDetectionEngine) -> Any:
    return {"updated": await engine.update_threat_feeds()}


POST_ACTIONS: Dict[Optional[str], Handler] = {
    "indicator": _add_indicator,
    "rule": _create_rule,
    "evaluate": _evaluate,
    "correlation-rule": _create_correlation_rule,
    "behavior": _update_behavior,
    "risk": _assess_risk,
    "model": _register_model,
    "train": _train_model,
    "predict": _predict,
    "response": _create_response,
    "execute-response": _execute_response,
    "update-feeds": _update_feeds,
}


# ---------------------------------------------------------------------------
# PUT / DELETE
# ---------------------------------------------------------------------------
async def _update_rule(request: Request, engine: AdvancedDetectionEngine) -> Any:
    rule_id = require_param(request, "id")
    changes = DetectionRuleUpdate.model_validate(await read_json_body(request))
    return engine.update_detection_rule(rule_id, changes)


async def _update_correlation(request: Request, engine: AdvancedDetectionEngine) -> Any:
    correlation_id = require_param(request, "id")
    payload = CorrelationStatusUpdate.model_validate(await read_json_body(request))
    return engine.update_correlation_status(correlation_id, payload.status)


PUT_ACTIONS: Dict[Optional[str], Handler] = {
    "rule": _update_rule,
    "correlation": _update_correlation,
}


async def _delete_rule(request: Request, engine: AdvancedDetectionEngine) -> Any:
    rule_id = require_param(request, "id")
    engine.delete_detection_rule(rule_id)
    return {"id": rule_id, "deleted": True}


async def _delete_response(request: Request, engine: AdvancedDetectionEngine) -> Any:
    response_id = require_param(request, "id")
    engine.delete_automated_response(response_id)
    return {"id": response_id, "deleted": True}


DELETE_ACTIONS: Dict[Optional[str], Handler] = {
    "rule": _delete_rule,
    "response": _delete_response,
}


async def _dispatch(
    actions: Dict[Optional[str], Handler],
    action: Optional[str],
    request: Request,
    engine: AdvancedDetectionEngine,
) -> dict:
    handler = actions.get(action or None)
    if handler is None:
        raise unknown_action(action, actions)
    return ok(action, await handler(request, engine))


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------
@router.get("", summary="Query the detection engine")
async def detection_get(
    request: Request,
    action: Optional[str] = Query(None),
    engine: AdvancedDetectionEngine = Depends(get_detection_engine),
) -> dict:
    return await _dispatch(GET_ACTIONS, action, request, engine)


@router.post("", summary="Create / evaluate in the detection engine")
async def detection_post(
    request: Request,
    action: Optional[str] = Query(None),
    engine: AdvancedDetectionEngine = Depends(get_detection_engine),
) -> dict:
    return await _dispatch(POST_ACTIONS, action, request, engine)


@router.put("", summary="Update detection engine objects")
async def detection_put(
    request: Request,
    action: Optional[str] = Query(None),
    engine: AdvancedDetectionEngine = Depends(get_detection_engine),
) -> dict:
    return await _dispatch(PUT_ACTIONS, action, request, engine)


@router.delete("", summary="Delete detection engine objects")
async def detection_delete(
    request: Request,
    action: Optional[str] = Query(None),
    engine: AdvancedDetectionEngine = Depends(get_detection_engine),
) -> dict:
    return await _dispatch(DELETE_ACTIONS, action, request, engine)
