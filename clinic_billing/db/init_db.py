# clinic_billing/db/init_db.py
from __future__ import annotations

import argparse
import logging

from sqlalchemy import inspect
from sqlalchemy.engine import Engine

from clinic_billing.db.base import Base
from clinic_billing.db.session import engine as default_engine

logger = logging.getLogger(__name__)


def run(fresh: bool = False, *, bind: Engine | None = None) -> None:
    eng = bind or default_engine
    if fresh:
        logger.warning("Dropping ALL ledger tables (dev only)")
        Base.metadata.drop_all(bind=eng)

    Base.metadata.create_all(bind=eng)
    logger.info("Tables present: %s", sorted(inspect(eng).get_table_names()))


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    parser = argparse.ArgumentParser(description="Create ledger tables.")
    parser.add_argument(
        "--fresh",
        action="store_true",
        help="Drop & recreate all tables (DEV ONLY).",
    )
    args = parser.parse_args()
    run(fresh=args.fresh)
