# clinic_billing/core/config.py
import os
from decimal import Decimal
from typing import List
from urllib.parse import quote_plus

from dotenv import load_dotenv
from pydantic import BaseModel

load_dotenv()


def _split_csv(value: str) -> List[str]:
    return [v.strip() for v in (value or "").split(",") if v.strip()]


def _mysql_uri() -> str:
    driver = os.getenv("DB_DRIVER", "pymysql")
    user = os.getenv("MYSQL_USER", "clinic_user")
    password = os.getenv("MYSQL_PASSWORD", "")
    host = os.getenv("MYSQL_HOST", "localhost")
    port = os.getenv("MYSQL_PORT", "3306")
    db_name = os.getenv("MYSQL_DB", "clinic_billing")
    return (f"mysql+{driver}://{quote_plus(user)}:{quote_plus(password)}"
            f"@{host}:{port}/{db_name}?charset=utf8mb4")


class Settings(BaseModel):
    PROJECT_NAME: str = os.getenv("PROJECT_NAME", "Clinic Billing Ledger")
    API_V1_STR: str = os.getenv("API_V1_STR", "/api")

    # CORS (env takes priority)
    BACKEND_CORS_ORIGINS: List[str] = _split_csv(
        os.getenv(
            "CORS_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173",
        ))

    # ---------- Database ----------
    # DATABASE_URL wins; otherwise MySQL built from MYSQL_* vars
    SQLALCHEMY_DATABASE_URI: str = os.getenv("DATABASE_URL") or _mysql_uri()
    SQL_ECHO: bool = os.getenv("SQL_ECHO",
                               "false").lower() in {"1", "true", "yes"}

    # ---------- Ledger ----------
    DEFAULT_CURRENCY: str = os.getenv("DEFAULT_CURRENCY", "USD")
    INVOICE_CODE_PREFIX: str = os.getenv("INVOICE_CODE_PREFIX", "FAC")
    PLAN_AMOUNT_TOLERANCE: Decimal = Decimal(
        os.getenv("PLAN_AMOUNT_TOLERANCE", "0.01"))
    EXPORT_BATCH_SIZE: int = int(os.getenv("EXPORT_BATCH_SIZE", "20"))

    # Receivable priority thresholds (days overdue, strictly greater than)
    RECEIVABLE_HIGH_DAYS: int = int(os.getenv("RECEIVABLE_HIGH_DAYS", "30"))
    RECEIVABLE_MEDIUM_DAYS: int = int(
        os.getenv("RECEIVABLE_MEDIUM_DAYS", "15"))

    # ---------- Logging ----------
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()


settings = Settings()
