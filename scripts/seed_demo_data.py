"""
Seed a local SQLite store with demo data.

Generates deterministic countries, travelers and rating records and
writes them to the database the app reads when TRAVELBIO_BACKEND=sqlite.

Usage:
    python scripts/seed_demo_data.py [--db data/travelbio.db] [--seed 42] [--reset]
"""

import argparse
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from travelbio.config import DEFAULT_DB_PATH
from travelbio.database import SqliteGateway
from travelbio.demo import DEFAULT_SEED, generate_demo_data
from travelbio.errors import DataStoreError
from travelbio.logging_config import get_structlog_logger, setup_structlog


def seed(db_path: Path, seed_value: int, reset: bool = False) -> dict:
    """
    Write demo data to ``db_path``.

    Args:
        db_path: SQLite file to create or extend
        seed_value: Random seed for the generator
        reset: Delete the existing file first

    Returns:
        Counts of written countries, profiles and records
    """
    if reset and db_path.exists():
        db_path.unlink()

    gateway = SqliteGateway(db_path)
    gateway.init_database()

    countries, profiles, records = generate_demo_data(seed_value)
    return {
        "countries": gateway.insert_countries(countries),
        "profiles": gateway.insert_profiles(profiles),
        "records": gateway.add_records(records),
    }


def main():
    parser = argparse.ArgumentParser(description="Seed the SQLite store with demo data")
    parser.add_argument("--db", type=Path, default=DEFAULT_DB_PATH,
                        help=f"Database file (default: {DEFAULT_DB_PATH})")
    parser.add_argument("--seed", type=int, default=DEFAULT_SEED,
                        help=f"Random seed (default: {DEFAULT_SEED})")
    parser.add_argument("--reset", action="store_true",
                        help="Delete the database before seeding")
    parser.add_argument("--json-logs", action="store_true",
                        help="Emit JSON log lines instead of console output")
    args = parser.parse_args()

    setup_structlog(json_output=args.json_logs)
    log = get_structlog_logger("seed")

    log.info("seeding_started", db=str(args.db), seed=args.seed, reset=args.reset)
    try:
        counts = seed(args.db, args.seed, reset=args.reset)
    except DataStoreError as e:
        log.error("seeding_failed", error=str(e))
        return 1

    log.info("seeding_completed", **counts)
    return 0


if __name__ == "__main__":
    sys.exit(main())
