# FILE: clinic_billing/schemas/billing.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from clinic_billing.models.billing import (
    Invoice,
    InvoiceStatus,
    Payment,
    PaymentMethod,
    PaymentStatus,
)
from clinic_billing.schemas.common import Money
from clinic_billing.services.billing_math import money2
from clinic_billing.utils.timezone import naive_utc


class InvoiceItemIn(BaseModel):
    name: str = Field(min_length=1, max_length=300)
    price: Decimal = Field(ge=0, max_digits=12, decimal_places=2)
    quantity: int = Field(default=1, ge=1)
    discount: Decimal = Field(default=Decimal("0"),
                              ge=0,
                              max_digits=12,
                              decimal_places=2)
    inventory_id: Optional[int] = None

    @field_validator("name")
    @classmethod
    def _name(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("item name required")
        return v


class InvoiceCreate(BaseModel):
    patient_id: int
    items: List[InvoiceItemIn] = Field(min_length=1)
    discount: Decimal = Field(default=Decimal("0"),
                              ge=0,
                              max_digits=12,
                              decimal_places=2)
    treatment_id: Optional[int] = None
    treatment_step_id: Optional[int] = None
    doctor_id: Optional[int] = None
    branch_id: Optional[int] = None
    expires_at: Optional[datetime] = None
    currency: Optional[str] = Field(default=None, min_length=3, max_length=8)

    @field_validator("expires_at")
    @classmethod
    def _expires(cls, v):
        return naive_utc(v)


class InvoiceUpdate(BaseModel):
    patient_id: Optional[int] = None
    items: Optional[List[InvoiceItemIn]] = Field(default=None, min_length=1)
    discount: Optional[Decimal] = Field(default=None,
                                        ge=0,
                                        max_digits=12,
                                        decimal_places=2)
    treatment_id: Optional[int] = None
    treatment_step_id: Optional[int] = None
    doctor_id: Optional[int] = None
    branch_id: Optional[int] = None
    expires_at: Optional[datetime] = None
    currency: Optional[str] = Field(default=None, min_length=3, max_length=8)

    @field_validator("expires_at")
    @classmethod
    def _expires(cls, v):
        return naive_utc(v)


class InvoiceStatusIn(BaseModel):
    status: InvoiceStatus


class InvoiceItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    price: Money
    quantity: int
    discount: Money
    inventory_id: Optional[int] = None


class InvoiceOut(BaseModel):
    id: int
    code: str
    patient_id: int
    patient_name: Optional[str] = None
    doctor_id: Optional[int] = None
    doctor_name: Optional[str] = None
    branch_id: Optional[int] = None
    branch_name: Optional[str] = None
    treatment_id: Optional[int] = None
    treatment_step_id: Optional[int] = None
    total_amount: Money
    discount: Money
    paid_amount: Money
    balance: Money
    is_paid: bool
    status: InvoiceStatus
    currency: str
    payment_method: Optional[PaymentMethod] = None
    created_at: datetime
    expires_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    items: List[InvoiceItemOut] = []

    @classmethod
    def from_invoice(cls, inv: Invoice) -> "InvoiceOut":
        return cls(
            id=inv.id,
            code=inv.code,
            patient_id=inv.patient_id,
            patient_name=getattr(inv.patient, "full_name", None),
            doctor_id=inv.doctor_id,
            doctor_name=getattr(inv.doctor, "full_name", None),
            branch_id=inv.branch_id,
            branch_name=getattr(inv.branch, "name", None),
            treatment_id=inv.treatment_id,
            treatment_step_id=inv.treatment_step_id,
            total_amount=money2(inv.total_amount),
            discount=money2(inv.discount),
            paid_amount=money2(inv.paid_amount),
            balance=money2(inv.balance),
            is_paid=bool(inv.is_paid),
            status=inv.status,
            currency=inv.currency,
            payment_method=inv.payment_method,
            created_at=inv.created_at,
            expires_at=inv.expires_at,
            paid_at=inv.paid_at,
            items=[
                InvoiceItemOut.model_validate(it) for it in inv.active_items
            ],
        )


class PaymentCreate(BaseModel):
    invoice_id: int
    amount: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    payment_method: PaymentMethod
    payment_date: Optional[datetime] = None
    reference: Optional[str] = Field(default=None, max_length=100)
    notes: Optional[str] = None

    @field_validator("payment_date")
    @classmethod
    def _payment_date(cls, v):
        return naive_utc(v)


class PaymentOut(BaseModel):
    id: int
    code: str
    invoice_id: int
    invoice_code: Optional[str] = None
    patient_id: Optional[int] = None
    patient_name: Optional[str] = None
    amount: Money
    payment_method: PaymentMethod
    payment_date: datetime
    reference: Optional[str] = None
    notes: Optional[str] = None
    status: PaymentStatus
    created_at: datetime
    updated_at: Optional[datetime] = None

    @classmethod
    def from_payment(cls, pay: Payment) -> "PaymentOut":
        inv = pay.invoice
        return cls(
            id=pay.id,
            code=pay.code,
            invoice_id=pay.invoice_id,
            invoice_code=getattr(inv, "code", None),
            patient_id=getattr(inv, "patient_id", None),
            patient_name=getattr(getattr(inv, "patient", None), "full_name",
                                 None),
            amount=money2(pay.amount),
            payment_method=pay.payment_method,
            payment_date=pay.payment_date,
            reference=pay.reference,
            notes=pay.notes,
            status=pay.status,
            created_at=pay.created_at,
            updated_at=pay.updated_at,
        )


class InvoiceStatisticsOut(BaseModel):
    total_invoiced: Money
    total_invoices: int
    total_collected: Money
    collected_percentage: Money
    total_to_collect: Money
    pending_invoices: int
    overdue_invoices: int


class PaymentStatisticsOut(BaseModel):
    total_payments: Money
    payments_today: Money
    cash_payments: Money
    total_transactions: int
