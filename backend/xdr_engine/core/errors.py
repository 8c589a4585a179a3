# backend/xdr_engine/core/errors.py
from typing import Any, Optional


class XDRError(Exception):
    """
    Base error for the detection / network services.
    `status_code` is what the API layer answers with.
    """
    status_code: int = 500

    def __init__(self, message: str, details: Optional[Any] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class InvalidRequestError(XDRError):
    status_code = 400


class NotFoundError(XDRError):
    status_code = 404


class ConflictError(XDRError):
    status_code = 409
