# backend/xdr_engine/services/alerting/slack_alert_service.py
import logging
from typing import Any, Dict

import requests
from fastapi.encoders import jsonable_encoder

from xdr_engine.core.config import settings

logger = logging.getLogger(__name__)


def send_slack_alert(alert: Dict[str, Any]) -> bool:
    """
    Simple Slack alert sender using Incoming Webhook URL.
    Returns True when Slack accepted the message.

    Configure env:
      SLACK_ALERT_WEBHOOK_URL=https://hooks.slack.com/services/...
    """
    webhook_url = settings.SLACK_ALERT_WEBHOOK_URL
    if not webhook_url:
        logger.info("Slack webhook URL not configured; skipping Slack alert.")
        return False

    severity = alert.get("severity") or "medium"
    text_lines = [
        f":rotating_light: *XDR alert* (`{severity}`)",
        f"*Message*: {alert.get('message') or 'Detection engine alert'}",
    ]

    target = alert.get("target")
    if target:
        text_lines.append(f"*Target*: `{target}`")

    correlation = alert.get("correlation")
    if correlation:
        text_lines.append(
            f"*Correlation*: `{correlation.get('id')}` rule `{correlation.get('ruleId')}` "
            f"({len(correlation.get('indicators') or [])} indicators, "
            f"confidence {correlation.get('confidence')})"
        )

    rules = alert.get("matchedRules") or []
    if rules:
        text_lines.append("")
        text_lines.append("*Matched rules:*")
        for name in rules[:5]:
            text_lines.append(f"• {name}")

    payload = {"text": "\n".join(text_lines)}

    # Make it JSON-safe (datetimes → isoformat, enums → values, etc.)
    json_payload = jsonable_encoder(payload)

    try:
        resp = requests.post(webhook_url, json=json_payload, timeout=5)
        resp.raise_for_status()
        return True
    except requests.RequestException as exc:
        logger.exception("Failed to send Slack alert: %s", exc)
        return False
