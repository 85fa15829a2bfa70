# FILE: clinic_billing/api/response.py
from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel


def _json(status_code: int, payload: Dict[str, Any]) -> JSONResponse:
    return JSONResponse(status_code=status_code,
                        content=jsonable_encoder(payload))


def ok(
    data: Any = None,
    *,
    meta: Optional[Any] = None,
    status_code: int = 200,
) -> JSONResponse:
    """
    Ledger success body. `data` is an Out schema (or a list of them), so
    amounts leave as numbers. `meta` is only present on paginated lists:

        {"ok": true, "data": [...], "meta": {"total": 42, "page": 1, ...}}
    """
    payload: Dict[str, Any] = {"ok": True, "data": data}
    if meta is not None:
        payload["meta"] = (meta.model_dump()
                           if isinstance(meta, BaseModel) else meta)
    return _json(status_code, payload)


def err(
    msg: str = "Request failed",
    *,
    status_code: int = 400,
    code: Optional[str] = None,
    details: Any = None,
) -> JSONResponse:
    """
    Ledger error body, e.g. an overpayment:

        {"ok": false,
         "error": {"msg": "Payment exceeds ...", "code": "invalid_argument",
                   "details": {"total_amount": "170.00", ...}}}
    """
    return _json(
        status_code, {
            "ok": False,
            "error": {
                "msg": msg,
                "code": code,
                "details": details
            },
        })
