# backend/xdr_engine/services/response/action_audit_service.py

from typing import Any, Dict, List, Optional
from datetime import datetime, timezone

from fastapi.encoders import jsonable_encoder
from sqlalchemy.orm import Session

from xdr_engine.core.utils import utcnow
from xdr_engine.db.session import SessionLocal
from xdr_engine.models.action_execution_record import ActionExecutionRecord
from xdr_engine.schemas.detection import RuleAction


class ActionAuditService:
    """
    DB-backed log of executed response actions (Postgres via SQLAlchemy).

    Automated-response cooldowns are computed from it, so it is the only
    piece of engine state that survives a restart.
    """

    def __init__(self, session_factory=SessionLocal) -> None:
        self._session_factory = session_factory

    def _get_db(self) -> Session:
        return self._session_factory()

    # --------------------------------------------------------
    # Create / store
    # --------------------------------------------------------
    def record_execution(
        self,
        action: RuleAction,
        context: Any,
        response_id: Optional[str] = None,
    ) -> int:
        """
        Persist one executed action and return the record id.
        """
        db = self._get_db()
        try:
            record = ActionExecutionRecord(
                response_id=response_id,
                action_type=action.type.value,
                target=action.target,
                parameters=jsonable_encoder(action.parameters),
                context=jsonable_encoder(context),
                executed_at=utcnow().replace(tzinfo=None),
            )
            db.add(record)
            db.commit()
            return record.id
        finally:
            db.close()

    # --------------------------------------------------------
    # Read
    # --------------------------------------------------------
    def last_execution(self, response_id: str) -> Optional[datetime]:
        """
        Timestamp (UTC, aware) of the latest action executed for `response_id`.
        """
        db = self._get_db()
        try:
            record = (
                db.query(ActionExecutionRecord)
                .filter(ActionExecutionRecord.response_id == response_id)
                .order_by(ActionExecutionRecord.executed_at.desc())
                .first()
            )
            if record is None:
                return None
            return record.executed_at.replace(tzinfo=timezone.utc)
        finally:
            db.close()

    def list_executions(
        self, limit: int = 50, response_id: Optional[str] = None
    ) -> List[Dict]:
        """
        Return latest `limit` executions ordered by executed_at desc.
        """
        db = self._get_db()
        try:
            q = db.query(ActionExecutionRecord)
            if response_id:
                q = q.filter(ActionExecutionRecord.response_id == response_id)
            q = q.order_by(ActionExecutionRecord.executed_at.desc()).limit(limit)

            out: List[Dict] = []
            for r in q:
                out.append(
                    {
                        "id": r.id,
                        "responseId": r.response_id,
                        "actionType": r.action_type,
                        "target": r.target,
                        "parameters": r.parameters,
                        "context": r.context,
                        "executedAt": r.executed_at.replace(tzinfo=timezone.utc),
                    }
                )
            return out
        finally:
            db.close()
