from unittest.mock import MagicMock

import pytest
import requests

from xdr_engine.core.config import settings
from xdr_engine.schemas.detection import RuleAction
from xdr_engine.services.alerting.alert_dispatcher import build_alert, dispatch_alerts
from xdr_engine.services.response.action_dispatcher import ActionDispatcher


class FakeAudit:
    def __init__(self):
        self.records = []

    def record_execution(self, action, context, response_id=None):
        self.records.append((action.type.value, response_id))
        return len(self.records)


def test_build_alert_flattens_context():
    alert = build_alert(
        "soc",
        {"severity": "critical", "message": "boom"},
        {"matchedRules": ["r1"], "correlation": {"id": "corr_1"}},
    )
    assert alert["severity"] == "critical"
    assert alert["message"] == "boom"
    assert alert["matchedRules"] == ["r1"]
    assert alert["correlation"] == {"id": "corr_1"}


def test_no_channels_configured(monkeypatch):
    monkeypatch.setattr(settings, "SLACK_ALERT_WEBHOOK_URL", None)
    monkeypatch.setattr(settings, "GENERIC_ALERT_WEBHOOK_URL", None)
    assert dispatch_alerts("soc", {}, None) == []


def test_channels_receive_alert(monkeypatch):
    post = MagicMock()
    monkeypatch.setattr(requests, "post", post)
    monkeypatch.setattr(settings, "SLACK_ALERT_WEBHOOK_URL", "https://hooks.example/slack")
    monkeypatch.setattr(settings, "GENERIC_ALERT_WEBHOOK_URL", "https://hooks.example/generic")

    delivered = dispatch_alerts("soc", {"severity": "high", "message": "hi"}, {"matchedRules": ["r1"]})

    assert delivered == ["slack", "webhook"]
    urls = [c.args[0] for c in post.call_args_list]
    assert urls == ["https://hooks.example/slack", "https://hooks.example/generic"]


def test_failed_channel_is_skipped(monkeypatch):
    def boom(*args, **kwargs):
        raise requests.ConnectionError("down")

    monkeypatch.setattr(requests, "post", boom)
    monkeypatch.setattr(settings, "SLACK_ALERT_WEBHOOK_URL", "https://hooks.example/slack")
    monkeypatch.setattr(settings, "GENERIC_ALERT_WEBHOOK_URL", None)

    assert dispatch_alerts("soc", {}, None) == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "action_type",
    ["alert", "block", "quarantine", "notify", "escalate", "enrich", "isolate", "remediate"],
)
async def test_every_action_type_is_recorded(action_type):
    audit = FakeAudit()
    dispatcher = ActionDispatcher(audit_service=audit)

    await dispatcher.execute_response_action(
        RuleAction(type=action_type, target="host-1"), {"k": "v"}, response_id="response_1"
    )

    assert audit.records == [(action_type, "response_1")]
