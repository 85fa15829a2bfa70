import os

# settings are read at import time; point them at SQLite before anything loads
os.environ["DATABASE_URL"] = "sqlite://"

from decimal import Decimal  # noqa: E402
from types import SimpleNamespace  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from clinic_billing.api.deps import get_db  # noqa: E402
from clinic_billing.db import init_db  # noqa: E402
from clinic_billing.main import app  # noqa: E402
from clinic_billing.models import (  # noqa: E402
    Branch,
    Doctor,
    Patient,
    Treatment,
    TreatmentStep,
)
from clinic_billing.schemas.billing import (  # noqa: E402
    InvoiceCreate,
    PaymentCreate,
)
from clinic_billing.services.invoice_service import create_invoice  # noqa: E402
from clinic_billing.services.payment_service import apply_payment  # noqa: E402


@pytest.fixture()
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    init_db.run(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture()
def db(engine):
    Session = sessionmaker(bind=engine,
                           autocommit=False,
                           autoflush=False,
                           future=True)
    session = Session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def directory(db):
    ana = Patient(full_name="Ana Torres",
                  phone_number="555-0101",
                  email="ana@example.com")
    bruno = Patient(full_name="Bruno Diaz", email="bruno@example.com")
    carla = Patient(full_name="Carla Ruiz")
    inactive = Patient(full_name="Old Record", is_active=False)
    doctor = Doctor(full_name="Dr. Elena Vidal")
    branch = Branch(name="Centro")
    db.add_all([ana, bruno, carla, inactive, doctor, branch])
    db.flush()

    ortho = Treatment(patient_id=ana.id,
                      name="Orthodontics",
                      price=Decimal("300.00"))
    implant = Treatment(patient_id=bruno.id,
                        name="Implant",
                        price=Decimal("305.00"))
    removed = Treatment(patient_id=ana.id,
                        name="Whitening",
                        price=Decimal("100.00"),
                        status="DELETED")
    db.add_all([ortho, implant, removed])
    db.flush()

    step = TreatmentStep(treatment_id=ortho.id, name="Brackets")
    db.add(step)
    db.commit()

    return SimpleNamespace(
        ana=ana,
        bruno=bruno,
        carla=carla,
        inactive=inactive,
        doctor=doctor,
        branch=branch,
        ortho=ortho,
        implant=implant,
        removed=removed,
        step=step,
    )


@pytest.fixture()
def make_invoice(db, directory):
    """Create an invoice through the service; default items total 170.00."""

    def _make(patient=None, items=None, discount="20", **extra):
        payload = InvoiceCreate(
            patient_id=(patient or directory.ana).id,
            items=items or [
                {
                    "name": "Consultation",
                    "price": "100",
                    "quantity": 1,
                    "discount": "0"
                },
                {
                    "name": "X-ray",
                    "price": "50",
                    "quantity": 2,
                    "discount": "10"
                },
            ],
            discount=discount,
            **extra,
        )
        return create_invoice(db, payload)

    return _make


@pytest.fixture()
def pay(db):

    def _pay(invoice, amount, method="CASH", **extra):
        return apply_payment(
            db,
            PaymentCreate(invoice_id=invoice.id,
                          amount=amount,
                          payment_method=method,
                          **extra))

    return _pay


@pytest.fixture()
def client(db):

    def _get_db():
        yield db

    app.dependency_overrides[get_db] = _get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
