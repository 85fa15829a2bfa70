# FILE: clinic_billing/models/billing.py
from __future__ import annotations

from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from clinic_billing.db.base import Base
from clinic_billing.utils.timezone import utcnow


class InvoiceStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    CANCELED = "CANCELED"
    EXPIRED = "EXPIRED"
    DELETED = "DELETED"


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    CANCELED = "CANCELED"


class PaymentMethod(str, Enum):
    CASH = "CASH"
    CREDIT_CARD = "CREDIT_CARD"
    DEBIT_CARD = "DEBIT_CARD"
    TRANSFER = "TRANSFER"
    OTHER = "OTHER"


# Invoices that can still receive money / count as receivable
CLOSED_INVOICE_STATUSES = (
    InvoiceStatus.PAID,
    InvoiceStatus.CANCELED,
    InvoiceStatus.DELETED,
)


class Invoice(Base):
    """
    Billable document for one patient.

    total_amount = sum(price * quantity - item discount) - discount
    paid_amount accumulates applied payments; 0 <= paid_amount <= total_amount.
    balance is never stored (see `balance`).
    """

    __tablename__ = "invoices"
    __table_args__ = (
        Index("ix_invoices_patient_status", "patient_id", "status"),
        Index("ix_invoices_status_created", "status", "created_at"),
    )

    id = Column(Integer, primary_key=True, index=True)

    # FAC-2025-00001 (printed code)
    code = Column(String(32), unique=True, index=True, nullable=False)

    patient_id = Column(Integer,
                        ForeignKey("patients.id"),
                        nullable=False,
                        index=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=True)
    branch_id = Column(Integer,
                       ForeignKey("branches.id"),
                       nullable=True,
                       index=True)
    treatment_id = Column(Integer, ForeignKey("treatments.id"), nullable=True)
    treatment_step_id = Column(Integer,
                               ForeignKey("treatment_steps.id"),
                               nullable=True)

    # Header level discount (absolute amount)
    discount = Column(Numeric(12, 2), nullable=False, default=0)
    currency = Column(String(8), nullable=False, default="USD")

    total_amount = Column(Numeric(12, 2), nullable=False, default=0)
    paid_amount = Column(Numeric(12, 2), nullable=False, default=0)

    # kept in sync with paid_amount inside the payment transaction
    is_paid = Column(Boolean, nullable=False, default=False)
    status = Column(SAEnum(InvoiceStatus),
                    nullable=False,
                    default=InvoiceStatus.PENDING)

    # method of the payment that completed the invoice
    payment_method = Column(SAEnum(PaymentMethod), nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(
        DateTime,
        default=utcnow,
        onupdate=utcnow,
    )
    expires_at = Column(DateTime, nullable=True)
    paid_at = Column(DateTime, nullable=True)

    patient = relationship("Patient")
    doctor = relationship("Doctor")
    branch = relationship("Branch")

    items = relationship(
        "InvoiceItem",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceItem.id",
    )
    payments = relationship(
        "Payment",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="Payment.id",
    )

    @property
    def active_items(self):
        return [it for it in (self.items or []) if not it.is_deleted]

    @property
    def balance(self) -> Decimal:
        return Decimal(str(self.total_amount or 0)) - Decimal(
            str(self.paid_amount or 0))


class InvoiceItem(Base):
    __tablename__ = "invoice_items"
    __table_args__ = (Index("ix_invoice_items_invoice_active", "invoice_id",
                            "is_deleted"), )

    id = Column(Integer, primary_key=True, index=True)
    invoice_id = Column(
        Integer,
        ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False,
    )

    name = Column(String(300), nullable=False)
    price = Column(Numeric(12, 2), nullable=False, default=0)
    quantity = Column(Integer, nullable=False, default=1)
    discount = Column(Numeric(12, 2), nullable=False, default=0)

    # optional link to the stock item the line was sold from
    inventory_id = Column(Integer, nullable=True)

    # replaced lines are kept for history
    is_deleted = Column(Boolean, nullable=False, default=False)
    deleted_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow)

    invoice = relationship("Invoice", back_populates="items")


class Payment(Base):
    """
    Money applied to one invoice. Always created PAID together with the
    matching paid_amount increment on the invoice.
    """

    __tablename__ = "payments"
    __table_args__ = (
        Index("ix_payments_invoice", "invoice_id"),
        Index("ix_payments_date", "payment_date"),
    )

    id = Column(Integer, primary_key=True, index=True)
    invoice_id = Column(
        Integer,
        ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False,
    )

    amount = Column(Numeric(12, 2), nullable=False)
    payment_method = Column(SAEnum(PaymentMethod), nullable=False)
    payment_date = Column(DateTime, default=utcnow, nullable=False)
    reference = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)
    status = Column(SAEnum(PaymentStatus),
                    nullable=False,
                    default=PaymentStatus.PAID)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(
        DateTime,
        default=utcnow,
        onupdate=utcnow,
    )

    invoice = relationship("Invoice", back_populates="payments")

    @property
    def code(self) -> str:
        return f"PAY-{int(self.id or 0):06d}"
