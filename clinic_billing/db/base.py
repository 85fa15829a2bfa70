# clinic_billing/db/base.py
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """All ledger tables (and the read-only directory mirrors) inherit from this."""
    pass


# Import all models so metadata is complete for create_all()
from clinic_billing.models import (  # noqa: F401,E402
    directory,
    billing,
    payment_plan,
)
