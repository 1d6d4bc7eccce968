from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from typing import Any, Dict, List, Optional

import mysql.connector
from mysql.connector import errorcode

from ..core.exceptions import StorageError
from .connection import DatabaseConnection

logger = logging.getLogger(__name__)


@contextmanager
def db_cursor(conn_factory: DatabaseConnection, *, dictionary: bool = True):
    """One connection, one transaction: commit on success, roll back on any error.

    mysql-connector failures surface as StorageError so callers can retry the
    whole operation knowing nothing was written.
    """
    try:
        conn = conn_factory.connect()
    except mysql.connector.Error as e:
        raise StorageError("Database unavailable") from e

    try:
        cur = conn.cursor(dictionary=dictionary)
        try:
            yield conn, cur
            conn.commit()
        finally:
            cur.close()
    except mysql.connector.Error as e:
        conn.rollback()
        logger.error("Transaction rolled back: %s", e)
        raise StorageError("Database operation failed") from e
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def is_duplicate_key(exc: mysql.connector.Error) -> bool:
    return getattr(exc, "errno", None) == errorcode.ER_DUP_ENTRY


def fetchone(cur) -> Optional[Dict[str, Any]]:
    row = cur.fetchone()
    return row if row else None


def fetchall(cur) -> List[Dict[str, Any]]:
    rows = cur.fetchall()
    return list(rows or [])


def to_json(value: Any) -> Optional[str]:
    if value is None:
        return None
    return json.dumps(value, ensure_ascii=False, default=str)


def from_json(value: Any, default: Any = None) -> Any:
    """Decode a JSON column; mysql-connector may hand back str, bytes or already-parsed data."""
    if value is None or value == "":
        return default
    if isinstance(value, (bytes, bytearray)):
        value = value.decode("utf-8")
    if isinstance(value, str):
        return json.loads(value)
    return value
