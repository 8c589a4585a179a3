# backend/xdr_engine/api/v1/deps.py

from fastapi import Request

from xdr_engine.services.detection.detection_engine import AdvancedDetectionEngine
from xdr_engine.services.network.network_analysis import AdvancedNetworkAnalysis


def get_detection_engine(request: Request) -> AdvancedDetectionEngine:
    return request.app.state.detection_engine


def get_network_analysis(request: Request) -> AdvancedNetworkAnalysis:
    return request.app.state.network_analysis
