# FILE: clinic_billing/models/directory.py
"""
Read-only mirrors of the clinic directory (patients, doctors, branches,
treatments). The ledger only looks these rows up to validate references
and to denormalize display names; it never writes them.
"""
from __future__ import annotations

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
)
from sqlalchemy.orm import relationship

from clinic_billing.db.base import Base
from clinic_billing.utils.timezone import utcnow


class Patient(Base):
    __tablename__ = "patients"

    id = Column(Integer, primary_key=True, index=True)
    full_name = Column(String(200), nullable=False, index=True)
    phone_number = Column(String(50), nullable=True)
    email = Column(String(255), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow)


class Doctor(Base):
    __tablename__ = "doctors"

    id = Column(Integer, primary_key=True, index=True)
    full_name = Column(String(200), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)


class Branch(Base):
    __tablename__ = "branches"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(150), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)


class Treatment(Base):
    __tablename__ = "treatments"

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=True)
    name = Column(String(200), nullable=False)
    price = Column(Numeric(12, 2), nullable=False, default=0)

    # ACTIVE | COMPLETED | DELETED ...
    status = Column(String(20), nullable=False, default="ACTIVE")

    steps = relationship("TreatmentStep", back_populates="treatment")


class TreatmentStep(Base):
    __tablename__ = "treatment_steps"

    id = Column(Integer, primary_key=True, index=True)
    treatment_id = Column(Integer,
                          ForeignKey("treatments.id"),
                          nullable=False,
                          index=True)
    name = Column(String(200), nullable=False)
    is_deleted = Column(Boolean, default=False, nullable=False)

    treatment = relationship("Treatment", back_populates="steps")
