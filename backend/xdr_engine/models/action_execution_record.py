# backend/xdr_engine/models/action_execution_record.py
from datetime import datetime

from sqlalchemy import JSON, Column, DateTime, Integer, String
from sqlalchemy.dialects.postgresql import JSONB

from xdr_engine.db.base_class import Base

JSONType = JSON().with_variant(JSONB, "postgresql")


class ActionExecutionRecord(Base):
    __tablename__ = "action_executions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    # automated response id, correlation rule id or detection rule id
    response_id = Column(String, index=True, nullable=True)
    action_type = Column(String, index=True)
    target = Column(String, nullable=True)

    parameters = Column(JSONType)   # action.parameters
    context = Column(JSONType)      # json-safe snapshot of the trigger context

    executed_at = Column(DateTime, default=datetime.utcnow, index=True)
