# FILE: clinic_billing/core/errors.py
from __future__ import annotations

from typing import Any, Optional

from fastapi import HTTPException


class LedgerError(HTTPException):
    """
    Base for every failure the billing ledger reports to its callers.

    Subclasses fix the HTTP status so services can raise them directly
    (the same way route helpers raise HTTPException) and the API layer
    renders them with the standard error envelope.
    """

    status_code: int = 400
    code: str = "ledger_error"

    def __init__(self, detail: str, *, details: Optional[Any] = None):
        super().__init__(status_code=self.status_code, detail=detail)
        self.details = details


class NotFound(LedgerError):
    status_code = 404
    code = "not_found"


class InvalidArgument(LedgerError):
    status_code = 400
    code = "invalid_argument"


class InvalidState(LedgerError):
    status_code = 409
    code = "invalid_state"
