"""
PostgreSQL connection helper.
Provides get_db() for use by services.
"""

import logging
import os
from contextlib import contextmanager
from typing import Iterator

import psycopg2
from psycopg2.extras import DictCursor
from dotenv import load_dotenv

# Load .env variables from the project root
load_dotenv()

logger = logging.getLogger(__name__)

# Get the database URL from environment variable
DATABASE_URL = os.getenv("DATABASE_URL")
if not DATABASE_URL:
    raise RuntimeError("DATABASE_URL is not set. Please set the environment variable.")


def connect() -> "psycopg2.extensions.connection":
    """
    Open a new psycopg2 connection with dictionary-based row access.

    Raises:
        psycopg2.Error: If connection fails.
    """
    try:
        return psycopg2.connect(DATABASE_URL, cursor_factory=DictCursor)
    except psycopg2.Error as e:
        logger.error("Error connecting to database: %s", e)
        raise


@contextmanager
def get_db() -> Iterator["psycopg2.extensions.connection"]:
    """
    Yield a connection wrapped in a single transaction.

    The transaction is committed when the block exits normally, rolled
    back when it raises, and the connection is always closed.

    Usage:
        with get_db() as conn:
            with conn.cursor() as cur:
                cur.execute(...)
    """
    conn = connect()
    try:
        with conn:
            yield conn
    finally:
        conn.close()
