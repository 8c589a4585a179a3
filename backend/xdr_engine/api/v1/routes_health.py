from fastapi import APIRouter, Depends

from xdr_engine.api.v1.deps import get_detection_engine, get_network_analysis
from xdr_engine.core.config import settings
from xdr_engine.services.detection.detection_engine import AdvancedDetectionEngine
from xdr_engine.services.network.network_analysis import AdvancedNetworkAnalysis

router = APIRouter()


@router.get("/health", tags=["health"])
async def health_check(
    engine: AdvancedDetectionEngine = Depends(get_detection_engine),
    analysis: AdvancedNetworkAnalysis = Depends(get_network_analysis),
) -> dict:
    """
    Liveness check plus a cheap count of what each engine holds.
    """
    return {
        "status": "ok",
        "service": settings.APP_NAME,
        "environment": settings.ENVIRONMENT,
        "engines": {
            "detection": {
                "indicators": len(engine.threat_indicators),
                "rules": len(engine.detection_rules),
            },
            "network": {
                "flows": len(analysis.network_flows),
                "topologyNodes": len(analysis.topology.nodes),
            },
        },
    }
