# backend/xdr_engine/services/risk_scoring/risk_utils.py

# points a single anomaly of each severity adds to a flow risk score
SEVERITY_WEIGHTS = {"low": 10, "medium": 25, "high": 50, "critical": 100}


def clamp_risk(score: float, upper: float = 100.0) -> float:
    """All risk scores live on 0..100."""
    return max(0.0, min(upper, float(score)))


def severity_from_score(score: float) -> str:
    """Map a 0..100 confidence / abuse score onto a severity label."""
    if score >= 75:
        return "critical"
    if score >= 50:
        return "high"
    if score >= 25:
        return "medium"
    return "low"
