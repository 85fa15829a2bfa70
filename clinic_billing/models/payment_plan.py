# FILE: clinic_billing/models/payment_plan.py
from __future__ import annotations

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Integer,
    Numeric,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from clinic_billing.db.base import Base
from clinic_billing.utils.timezone import utcnow
from clinic_billing.models.billing import PaymentMethod


class PaymentPlan(Base):
    """
    Installment schedule for a treatment's price (at most one per treatment).
    initial_payment + installment_amount * number_of_installments must match
    the treatment price within PLAN_AMOUNT_TOLERANCE.
    """

    __tablename__ = "payment_plans"
    __table_args__ = (UniqueConstraint("treatment_id",
                                       name="uq_payment_plans_treatment"), )

    id = Column(Integer, primary_key=True, index=True)
    treatment_id = Column(Integer,
                          ForeignKey("treatments.id"),
                          nullable=False)

    number_of_installments = Column(Integer, nullable=False)
    installment_amount = Column(Numeric(12, 2), nullable=False)
    initial_payment = Column(Numeric(12, 2), nullable=False, default=0)
    start_date = Column(DateTime, nullable=False, default=utcnow)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(
        DateTime,
        default=utcnow,
        onupdate=utcnow,
    )

    treatment = relationship("Treatment")
    installments = relationship(
        "PaymentInstallment",
        back_populates="plan",
        cascade="all, delete-orphan",
        order_by="PaymentInstallment.installment_number",
    )


class PaymentInstallment(Base):
    __tablename__ = "payment_installments"
    __table_args__ = (UniqueConstraint(
        "payment_plan_id",
        "installment_number",
        name="uq_payment_installments_plan_number",
    ), )

    id = Column(Integer, primary_key=True, index=True)
    payment_plan_id = Column(
        Integer,
        ForeignKey("payment_plans.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    installment_number = Column(Integer, nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    due_date = Column(DateTime, nullable=False)

    # one-way: False -> True
    is_paid = Column(Boolean, nullable=False, default=False)
    paid_date = Column(DateTime, nullable=True)
    payment_method = Column(SAEnum(PaymentMethod), nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(
        DateTime,
        default=utcnow,
        onupdate=utcnow,
    )

    plan = relationship("PaymentPlan", back_populates="installments")
