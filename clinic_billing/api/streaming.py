# FILE: clinic_billing/api/streaming.py
from __future__ import annotations

from typing import Iterable, Iterator

from fastapi.responses import StreamingResponse

from clinic_billing.utils.timezone import utcnow

UTF8_BOM = "\ufeff"


def _with_bom(lines: Iterable[str]) -> Iterator[str]:
    # UTF-8 BOM for Excel
    yield UTF8_BOM
    yield from lines


def csv_response(lines: Iterable[str], name: str) -> StreamingResponse:
    filename = f"{name}_{utcnow():%Y-%m-%d}.csv"
    return StreamingResponse(
        _with_bom(lines),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
