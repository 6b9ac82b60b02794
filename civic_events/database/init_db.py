"""
Apply schema.sql to the configured database.

Used as the pre-start step of the API container: the database may still be
starting, so the connection is retried a bounded number of times before
giving up with a non-zero exit code.
"""

import logging
import os
import sys
import time
from pathlib import Path

import psycopg2

from civic_events.database.db_connection import get_db

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).with_name("schema.sql")

MAX_ATTEMPTS = int(os.getenv("INIT_DB_MAX_ATTEMPTS", 30))
RETRY_SECONDS = float(os.getenv("INIT_DB_RETRY_SECONDS", 2))


def apply_schema() -> None:
    """Run every statement of schema.sql in one transaction."""
    sql = SCHEMA_PATH.read_text(encoding="utf-8")
    with get_db() as conn:
        with conn.cursor() as cur:
            cur.execute(sql)


def init_db(max_attempts: int = MAX_ATTEMPTS, retry_seconds: float = RETRY_SECONDS) -> bool:
    """
    Apply the schema, retrying while the database is unreachable.

    Returns:
        bool: True once the schema is applied, False if every attempt failed.
    """
    for attempt in range(1, max_attempts + 1):
        try:
            apply_schema()
            logger.info("Schema applied (attempt %s/%s)", attempt, max_attempts)
            return True
        except psycopg2.Error as e:
            logger.warning("Applying schema failed (attempt %s/%s): %s", attempt, max_attempts, e)
            if attempt < max_attempts:
                time.sleep(retry_seconds)
    return False


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(asctime)s - %(message)s")
    sys.exit(0 if init_db() else 1)


if __name__ == "__main__":
    main()
