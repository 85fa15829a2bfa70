# FILE: clinic_billing/schemas/receivables.py
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict

from clinic_billing.schemas.common import Money


class ReceivablePriority(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class ReceivableInvoiceOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    code: str
    date: datetime
    total_debt: Money


class ReceivableOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    patient_id: int
    patient_name: str
    phone_number: Optional[str] = None
    email: Optional[str] = None
    invoices: List[ReceivableInvoiceOut] = []
    total_debt: Money
    days_overdue: int
    priority: ReceivablePriority


class AgingAnalysisOut(BaseModel):
    days_0_to_15: Money
    days_16_to_30: Money
    days_31_to_60: Money
    days_over_60: Money


class ReceivableStatisticsOut(BaseModel):
    total_to_collect: Money
    total_accounts: int
    overdue_accounts: int
    high_priority_accounts: int
    average_debt_per_client: Money
    aging_analysis: AgingAnalysisOut
