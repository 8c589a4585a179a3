# backend/xdr_engine/schemas/base.py
from datetime import datetime
from typing import Annotated, Any, Dict, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from xdr_engine.core.utils import as_utc, utcnow


UTCDateTime = Annotated[datetime, AfterValidator(as_utc)]


class CamelModel(BaseModel):
    """
    Base for every API-facing model.
    Python side is snake_case, JSON side is camelCase (both accepted on input).
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        protected_namespaces=(),
    )


class ApiResponse(BaseModel):
    success: bool = True
    data: Any = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ApiError(BaseModel):
    error: str
    details: Optional[Any] = None


def build_metadata(action: Optional[str], **extra: Any) -> Dict[str, Any]:
    meta: Dict[str, Any] = {"timestamp": utcnow(), "action": action}
    meta.update(extra)
    return meta
