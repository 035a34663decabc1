#!/usr/bin/env python3
"""
Seed the database with the default company and a first truck.

Creates the tables if needed, then registers truck TN09AB1234 under the
default company.  Running it again changes nothing.

Usage:
    python3 scripts/seed_data.py [--config settings.yaml]
"""

import argparse
import sys
from pathlib import Path

# ---------------------------------------------------------------------------
# Project root on sys.path
# ---------------------------------------------------------------------------
ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from fleet_config import load_config  # noqa: E402
from fleet_kernel.db.engine import create_tables, init_engine_from_url, session_scope  # noqa: E402
from fleet_kernel.logging_config import configure_logging, get_logger  # noqa: E402
from fleet_kernel.selectors import TruckSelector  # noqa: E402
from fleet_kernel.services import TruckService  # noqa: E402

SEED_NUMBER_PLATE = "TN09AB1234"

logger = get_logger("scripts.seed")


def seed(company_name: str, number_plate: str = SEED_NUMBER_PLATE) -> bool:
    """
    Ensure the default company and the seed truck exist.

    Returns:
        True if the truck was created, False if it already existed.
    """
    with session_scope() as session:
        service = TruckService(session, company_name=company_name)
        service.get_or_create_company()

        if TruckSelector(session).get_by_plate(number_plate) is not None:
            logger.info("seed_truck_exists", extra={"number_plate": number_plate})
            return False

        service.register_truck(number_plate)
        return True


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("--config", help="YAML settings file")
    args = parser.parse_args(argv)

    config = load_config(args.config)
    configure_logging(level=config.log_level_number)
    init_engine_from_url(config.database_url, echo=config.echo_sql)
    create_tables()

    created = seed(config.default_company_name)
    print(f"seed truck {SEED_NUMBER_PLATE}: {'created' if created else 'already present'}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
