# FILE: clinic_billing/schemas/common.py
from __future__ import annotations

from decimal import Decimal
from typing import Annotated

from pydantic import BaseModel, PlainSerializer

# Decimal in Python, number in JSON
Money = Annotated[Decimal,
                  PlainSerializer(float, return_type=float, when_used="json")]


class PageMeta(BaseModel):
    total: int
    page: int
    limit: int
    total_pages: int
    has_next_page: bool
    has_previous_page: bool
