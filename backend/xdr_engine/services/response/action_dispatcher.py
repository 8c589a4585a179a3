# backend/xdr_engine/services/response/action_dispatcher.py
import logging
from typing import Any, Optional

from xdr_engine.schemas.detection import ActionType, RuleAction
from xdr_engine.services.alerting.alert_dispatcher import dispatch_alerts
from xdr_engine.services.response.action_audit_service import ActionAuditService

logger = logging.getLogger(__name__)


class ActionDispatcher:
    """
    Executes rule / correlation / automated-response actions.

    None of the containment actions touch a real system: each branch logs
    what it would do. `alert` is forwarded to the configured alert channels.
    Every execution lands in the action audit log.
    """

    def __init__(self, audit_service: Optional[ActionAuditService] = None) -> None:
        self.audit_service = audit_service or ActionAuditService()

    async def execute_response_action(
        self,
        action: RuleAction,
        context: Any,
        response_id: Optional[str] = None,
    ) -> None:
        handler = {
            ActionType.ISOLATE: self._isolate_entity,
            ActionType.BLOCK: self._block_indicator,
            ActionType.ALERT: self._create_alert,
            ActionType.REMEDIATE: self._remediate_threat,
            ActionType.ESCALATE: self._escalate_incident,
            ActionType.QUARANTINE: self._quarantine_target,
            ActionType.NOTIFY: self._notify,
            ActionType.ENRICH: self._enrich,
        }.get(action.type)

        if handler is None:
            logger.warning("No handler for action type %s", action.type)
            return

        await handler(action, context)
        self.audit_service.record_execution(action, context, response_id=response_id)

    # -------------------------------------------------------------------------
    # Handlers
    # -------------------------------------------------------------------------
    async def _isolate_entity(self, action: RuleAction, context: Any) -> None:
        logger.info("Isolating entity: %s", action.target)

    async def _block_indicator(self, action: RuleAction, context: Any) -> None:
        logger.info("Blocking indicator: %s", action.target)

    async def _create_alert(self, action: RuleAction, context: Any) -> None:
        logger.info("Creating alert: %s", action.parameters)
        dispatch_alerts(action.target, action.parameters, context)

    async def _remediate_threat(self, action: RuleAction, context: Any) -> None:
        logger.info("Remediating threat: %s", action.target)

    async def _escalate_incident(self, action: RuleAction, context: Any) -> None:
        logger.info("Escalating incident: %s", action.parameters)

    async def _quarantine_target(self, action: RuleAction, context: Any) -> None:
        logger.info("Quarantining: %s", action.target)

    async def _notify(self, action: RuleAction, context: Any) -> None:
        logger.info("Notifying %s: %s", action.target, action.parameters.get("message"))

    async def _enrich(self, action: RuleAction, context: Any) -> None:
        logger.info("Enrichment requested for: %s", action.target)
