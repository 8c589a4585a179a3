# backend/xdr_engine/api/v1/envelope.py
"""
Helpers shared by the action-dispatched XDR routes:
body parsing, required query params and the success envelope.
"""
import json
from typing import Any, Dict, Iterable, Optional

from fastapi import Request
from fastapi.encoders import jsonable_encoder

from xdr_engine.core.errors import InvalidRequestError
from xdr_engine.schemas.base import ApiResponse, build_metadata


async def read_json_body(request: Request) -> Dict[str, Any]:
    raw = await request.body()
    if not raw:
        return {}
    try:
        body = json.loads(raw)
    except ValueError as e:
        raise InvalidRequestError("Request body is not valid JSON", details=str(e))
    if not isinstance(body, dict):
        raise InvalidRequestError("Request body must be a JSON object")
    return body


def require_param(request: Request, name: str) -> str:
    value = request.query_params.get(name)
    if not value:
        raise InvalidRequestError(f"Missing required parameter: {name}")
    return value


def int_param(request: Request, name: str, default: int) -> int:
    value = request.query_params.get(name)
    if value is None:
        return default
    try:
        parsed = int(value)
    except ValueError:
        raise InvalidRequestError(f"Parameter {name} must be an integer")
    if parsed < 0:
        raise InvalidRequestError(f"Parameter {name} must not be negative")
    return parsed


def float_param(request: Request, name: str) -> Optional[float]:
    value = request.query_params.get(name)
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        raise InvalidRequestError(f"Parameter {name} must be a number")


def bool_param(request: Request, name: str) -> bool:
    return request.query_params.get(name, "").lower() in ("1", "true", "yes")


def unknown_action(action: Optional[str], allowed: Iterable[Optional[str]]) -> InvalidRequestError:
    return InvalidRequestError(
        f"Unknown action: {action}",
        details={"allowed": sorted(a for a in allowed if a)},
    )


def ok(action: Optional[str], data: Any, **meta: Any) -> Dict[str, Any]:
    resp = ApiResponse(data=jsonable_encoder(data), metadata=build_metadata(action, **meta))
    return jsonable_encoder(resp)
