# clinic_billing/models/__init__.py
from .directory import Branch, Doctor, Patient, Treatment, TreatmentStep
from .billing import (
    Invoice,
    InvoiceItem,
    InvoiceStatus,
    Payment,
    PaymentMethod,
    PaymentStatus,
)
from .payment_plan import PaymentInstallment, PaymentPlan

__all__ = [
    "Branch",
    "Doctor",
    "Patient",
    "Treatment",
    "TreatmentStep",
    "Invoice",
    "InvoiceItem",
    "InvoiceStatus",
    "Payment",
    "PaymentMethod",
    "PaymentStatus",
    "PaymentInstallment",
    "PaymentPlan",
]
