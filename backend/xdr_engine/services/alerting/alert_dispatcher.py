# backend/xdr_engine/services/alerting/alert_dispatcher.py
import logging
from typing import Any, Dict, List

from fastapi.encoders import jsonable_encoder

from xdr_engine.services.alerting.slack_alert_service import send_slack_alert
from xdr_engine.services.alerting.webhook_alert_service import send_generic_webhook_alert

logger = logging.getLogger(__name__)


def build_alert(target: str, parameters: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """Flatten an `alert` action + its trigger context into one JSON-safe dict."""
    ctx = jsonable_encoder(context) if context is not None else {}
    if not isinstance(ctx, dict):
        ctx = {"value": ctx}

    alert: Dict[str, Any] = {
        "target": target,
        "severity": parameters.get("severity", "medium"),
        "message": parameters.get("message"),
        "parameters": jsonable_encoder(parameters),
    }
    if ctx.get("correlation"):
        alert["correlation"] = ctx["correlation"]
    if ctx.get("matchedRules"):
        alert["matchedRules"] = ctx["matchedRules"]
    return alert


def dispatch_alerts(target: str, parameters: Dict[str, Any], context: Any) -> List[str]:
    """
    Central place to fan an alert out to the configured channels.
    Returns the names of channels that accepted it.
    """
    alert = build_alert(target, parameters, context)
    logger.info(
        "Dispatching alert to %s (severity=%s): %s",
        target or "default",
        alert["severity"],
        alert["message"],
    )

    delivered: List[str] = []

    # Fan-out to individual channels; failures shouldn't break the pipeline.
    try:
        if send_slack_alert(alert):
            delivered.append("slack")
    except Exception:
        logger.exception("Slack alert failed.")

    try:
        if send_generic_webhook_alert(alert):
            delivered.append("webhook")
    except Exception:
        logger.exception("Generic webhook alert failed.")

    return delivered
