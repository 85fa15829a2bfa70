# FILE: clinic_billing/services/directory.py
"""
Lookups into the clinic directory (identity + treatment source).

Each getter returns the row or raises NotFound; rows that are inactive,
soft-deleted or DELETED count as absent.
"""
from __future__ import annotations

from typing import Optional

from sqlalchemy.orm import Session

from clinic_billing.core.errors import NotFound
from clinic_billing.models.directory import (
    Branch,
    Doctor,
    Patient,
    Treatment,
    TreatmentStep,
)


def get_patient(db: Session, patient_id: int) -> Patient:
    row = db.get(Patient, int(patient_id))
    if not row or not row.is_active:
        raise NotFound("Patient not found")
    return row


def get_doctor(db: Session, doctor_id: int) -> Doctor:
    row = db.get(Doctor, int(doctor_id))
    if not row or not row.is_active:
        raise NotFound("Doctor not found")
    return row


def get_branch(db: Session, branch_id: int) -> Branch:
    row = db.get(Branch, int(branch_id))
    if not row or not row.is_active:
        raise NotFound("Branch not found")
    return row


def get_treatment(db: Session, treatment_id: int) -> Treatment:
    row = db.get(Treatment, int(treatment_id))
    if not row or (row.status or "").upper() == "DELETED":
        raise NotFound("Treatment not found")
    return row


def get_treatment_step(db: Session, step_id: int) -> TreatmentStep:
    row = db.get(TreatmentStep, int(step_id))
    if not row or row.is_deleted:
        raise NotFound("Treatment step not found")
    return row


def validate_references(
    db: Session,
    *,
    patient_id: Optional[int] = None,
    doctor_id: Optional[int] = None,
    branch_id: Optional[int] = None,
    treatment_id: Optional[int] = None,
    treatment_step_id: Optional[int] = None,
) -> None:
    """Raise NotFound for the first referenced id that does not resolve."""
    if patient_id is not None:
        get_patient(db, patient_id)
    if treatment_id is not None:
        get_treatment(db, treatment_id)
    if treatment_step_id is not None:
        get_treatment_step(db, treatment_step_id)
    if doctor_id is not None:
        get_doctor(db, doctor_id)
    if branch_id is not None:
        get_branch(db, branch_id)
