import logging
import re
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from xdr_engine.api.v1.routes_health import router as health_router
from xdr_engine.api.v1.routes_detection_engine import router as detection_router
from xdr_engine.api.v1.routes_network import router as network_router

from xdr_engine.core.config import settings
from xdr_engine.core.errors import XDRError
from xdr_engine.db.init_db import init_db
from xdr_engine.schemas.base import ApiError
from xdr_engine.services.detection.detection_engine import AdvancedDetectionEngine
from xdr_engine.services.network.network_analysis import AdvancedNetworkAnalysis
from xdr_engine.services.response.action_dispatcher import ActionDispatcher


logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Create DB tables if they don't exist (dev only)
    init_db()

    app.state.detection_engine = AdvancedDetectionEngine(ActionDispatcher())
    app.state.network_analysis = AdvancedNetworkAnalysis()
    logger.info("%s started (%s)", settings.APP_NAME, settings.ENVIRONMENT)

    yield

    await app.state.detection_engine.aclose()


app = FastAPI(
    title="XDR Detection Engine",
    version="0.1.0",
    description="Backend API for threat detection, correlation, behavioral analytics and network analysis.",
    lifespan=lifespan,
)


def _error(status_code: int, error: str, details=None) -> JSONResponse:
    body = ApiError(error=error, details=details).model_dump(exclude_none=True)
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body))


@app.exception_handler(XDRError)
async def xdr_error_handler(request: Request, exc: XDRError) -> JSONResponse:
    return _error(exc.status_code, exc.message, exc.details)


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    return _error(400, "Invalid request body", exc.errors(include_url=False, include_context=False))


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return _error(400, "Invalid request", exc.errors())


@app.exception_handler(re.error)
async def regex_error_handler(request: Request, exc: re.error) -> JSONResponse:
    return _error(400, f"Invalid regular expression: {exc}")


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return _error(exc.status_code, str(exc.detail))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _error(500, "Internal server error")


@app.get("/", tags=["root"])
async def root() -> dict:
    return {
        "status": "ok",
        "service": settings.APP_NAME,
        "environment": settings.ENVIRONMENT,
    }


# API v1
app.include_router(health_router, prefix="/api/v1")
app.include_router(detection_router, prefix="/api/v1")
app.include_router(network_router, prefix="/api/v1")
