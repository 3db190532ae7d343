"""
PostgreSQL connection helper.
Provides get_db() for the record store.
"""

import logging

import psycopg2
from psycopg2.extras import RealDictCursor


def get_db(database_url: str):
    """
    Returns a new psycopg2 connection with dictionary-based row access.

    The caller owns the connection and must close it.

    Usage:
        conn = get_db(url)
        try:
            with conn:
                with conn.cursor() as cur:
                    cur.execute(...)
        finally:
            conn.close()

    Args:
        database_url (str): libpq connection string of the Supabase database.

    Returns:
        psycopg2.extensions.connection: A connection object with RealDictCursor factory.

    Raises:
        psycopg2.Error: If connection fails.
    """
    try:
        conn = psycopg2.connect(database_url)

        # Rows come back as plain dicts (e.g., {"user_id": 1, "role": "..."})
        conn.cursor_factory = RealDictCursor
        return conn
    except Exception as e:
        logging.error(f"Error connecting to database: {e}")
        # Re-raise the exception so the caller knows the connection failed
        raise
