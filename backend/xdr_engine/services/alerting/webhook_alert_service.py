# backend/xdr_engine/services/alerting/webhook_alert_service.py
import logging
from typing import Any, Dict

import requests
from fastapi.encoders import jsonable_encoder

from xdr_engine.core.config import settings

logger = logging.getLogger(__name__)


def send_generic_webhook_alert(alert: Dict[str, Any]) -> bool:
    """
    Generic JSON webhook for n8n, custom dashboards, SOAR, etc.

    Configure env:
      GENERIC_ALERT_WEBHOOK_URL=https://your-endpoint/ingest
    """
    webhook_url = settings.GENERIC_ALERT_WEBHOOK_URL
    if not webhook_url:
        logger.info("Generic webhook URL not configured; skipping generic alert.")
        return False

    payload = {
        "source": settings.APP_NAME,
        "environment": settings.ENVIRONMENT,
        "alert": alert,
    }

    # Make it JSON-safe (datetimes → isoformat, enums → values, etc.)
    json_payload = jsonable_encoder(payload)

    try:
        resp = requests.post(webhook_url, json=json_payload, timeout=5)
        resp.raise_for_status()
        return True
    except requests.RequestException as exc:
        logger.exception("Failed to send generic webhook alert: %s", exc)
        return False
