# backend/device_api/db/postgres_db.py
import logging
import threading
from contextlib import contextmanager
from typing import Any, Dict, List, Optional
from uuid import UUID

import psycopg2
from psycopg2 import errors as pg_errors

from backend.device_api.core.config import Settings
from backend.device_api.core.errors import (
    ConflictingActiveAssignment, DeviceNotFound, DuplicateSerial, NoActiveAssignment
)
from backend.device_api.schemas.devices import Assignment, Device
from .connection import get_pg_pool
from .tables.assignments_table import create_assignments_table
from .tables.devices_table import create_devices_table

logger = logging.getLogger(__name__)

ASSIGNMENT_COLUMNS = "id, device_id, user_id, assigned_at, unassigned_at"


class PostgresDB:
    """
    All SQL lives here. Every public method runs in its own transaction on a
    connection borrowed from the pool, so instances are safe to share across
    request threads.

    ThreadedConnectionPool.getconn() fails instead of waiting when every
    connection is checked out, so callers first take one of max_connections
    slots and block until a connection is free.
    """

    def __init__(self, pool, max_connections: Optional[int] = None):
        self.pool = pool
        self._slots = threading.BoundedSemaphore(max_connections or pool.maxconn)

    @classmethod
    def from_settings(cls, settings: Settings) -> "PostgresDB":
        return cls(get_pg_pool(settings))

    def close(self):
        try:
            self.pool.closeall()
        except psycopg2.Error as e:
            logger.warning(f"Failed to close connection pool: {e}")

    @contextmanager
    def _transaction(self):
        with self._slots:
            conn = self.pool.getconn()
            try:
                with conn.cursor() as cursor:
                    yield cursor
                conn.commit()
            except Exception:
                if not conn.closed:
                    conn.rollback()
                raise
            finally:
                self.pool.putconn(conn, close=bool(conn.closed))

    def create_all_tables(self):
        """
        Orchestrator to create all tables.
        """
        with self._transaction() as cursor:
            create_devices_table(cursor)
            create_assignments_table(cursor)

    # ----------------------------
    # Devices helpers
    # ----------------------------

    def insert_device(self, device: Device) -> Dict[str, Any]:
        query = """
        INSERT INTO devices (id, serial_number, issuer_common_name, created_at)
        VALUES (%s, %s, %s, %s)
        RETURNING id, serial_number, issuer_common_name, created_at;
        """
        try:
            with self._transaction() as cursor:
                cursor.execute(query, (device.id, device.serial_number,
                                       device.issuer_common_name, device.created_at))
                return cursor.fetchone()
        except pg_errors.UniqueViolation as e:
            raise DuplicateSerial(device.serial_number) from e

    def get_device_by_id(self, device_id: UUID) -> Optional[Dict[str, Any]]:
        query = "SELECT id, serial_number, issuer_common_name, created_at FROM devices WHERE id = %s;"
        with self._transaction() as cursor:
            cursor.execute(query, (device_id,))
            return cursor.fetchone()

    def get_device_by_serial(self, serial_number: str) -> Optional[Dict[str, Any]]:
        query = """
        SELECT id, serial_number, issuer_common_name, created_at
        FROM devices
        WHERE serial_number = %s;
        """
        with self._transaction() as cursor:
            cursor.execute(query, (serial_number,))
            return cursor.fetchone()

    def device_exists_by_serial(self, serial_number: str) -> bool:
        query = "SELECT EXISTS(SELECT 1 FROM devices WHERE serial_number = %s) AS present;"
        with self._transaction() as cursor:
            cursor.execute(query, (serial_number,))
            row = cursor.fetchone()
            return bool(row and row["present"])

    def get_device_with_assignment(self, device_id: UUID) -> Optional[Dict[str, Any]]:
        query = """
        SELECT d.id, d.serial_number, d.issuer_common_name, d.created_at,
               a.id AS assignment_id, a.user_id, a.assigned_at,
               (a.id IS NOT NULL) AS is_assigned
        FROM devices d
        LEFT JOIN assignments a ON a.device_id = d.id AND a.unassigned_at IS NULL
        WHERE d.id = %s;
        """
        with self._transaction() as cursor:
            cursor.execute(query, (device_id,))
            return cursor.fetchone()

    def get_devices_by_user(self, user_id: str) -> List[Dict[str, Any]]:
        query = """
        SELECT d.id, d.serial_number, d.issuer_common_name, d.created_at,
               a.id AS assignment_id, a.user_id, a.assigned_at, TRUE AS is_assigned
        FROM devices d
        INNER JOIN assignments a ON a.device_id = d.id
        WHERE a.user_id = %s AND a.unassigned_at IS NULL
        ORDER BY a.assigned_at DESC;
        """
        with self._transaction() as cursor:
            cursor.execute(query, (user_id,))
            return cursor.fetchall()

    # ----------------------------
    # Assignment helpers
    # ----------------------------

    def insert_assignment(self, assignment: Assignment) -> Dict[str, Any]:
        """
        Plain insert; the partial unique index on (device_id) WHERE
        unassigned_at IS NULL rejects a second active row for the device.
        """
        query = f"""
        INSERT INTO assignments (id, device_id, user_id, assigned_at, unassigned_at)
        VALUES (%s, %s, %s, %s, NULL)
        RETURNING {ASSIGNMENT_COLUMNS};
        """
        try:
            with self._transaction() as cursor:
                cursor.execute(query, (assignment.id, assignment.device_id,
                                       assignment.user_id, assignment.assigned_at))
                return cursor.fetchone()
        except pg_errors.UniqueViolation as e:
            raise ConflictingActiveAssignment(str(assignment.device_id)) from e
        except pg_errors.ForeignKeyViolation as e:
            raise DeviceNotFound(str(assignment.device_id)) from e

    def get_active_assignment_by_device(self, device_id: UUID) -> Optional[Dict[str, Any]]:
        query = f"""
        SELECT {ASSIGNMENT_COLUMNS}
        FROM assignments
        WHERE device_id = %s AND unassigned_at IS NULL;
        """
        with self._transaction() as cursor:
            cursor.execute(query, (device_id,))
            return cursor.fetchone()

    def get_active_assignments_by_user(self, user_id: str) -> List[Dict[str, Any]]:
        query = f"""
        SELECT {ASSIGNMENT_COLUMNS}
        FROM assignments
        WHERE user_id = %s AND unassigned_at IS NULL
        ORDER BY assigned_at DESC;
        """
        with self._transaction() as cursor:
            cursor.execute(query, (user_id,))
            return cursor.fetchall()

    def deactivate_assignment(self, device_id: UUID, user_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Close the open interval in one conditional UPDATE. A concurrent
        unassign blocks on the row lock and then matches nothing.
        With user_id, only that user's interval is closed.
        """
        query = f"""
        UPDATE assignments
        SET unassigned_at = GREATEST(now(), assigned_at)
        WHERE device_id = %s AND unassigned_at IS NULL
          AND (%s::varchar IS NULL OR user_id = %s)
        RETURNING {ASSIGNMENT_COLUMNS};
        """
        with self._transaction() as cursor:
            cursor.execute(query, (device_id, user_id, user_id))
            row = cursor.fetchone()
        if not row:
            raise NoActiveAssignment(str(device_id))
        return row

    def is_device_assigned(self, device_id: UUID) -> bool:
        query = """
        SELECT EXISTS(
            SELECT 1 FROM assignments WHERE device_id = %s AND unassigned_at IS NULL
        ) AS present;
        """
        with self._transaction() as cursor:
            cursor.execute(query, (device_id,))
            row = cursor.fetchone()
            return bool(row and row["present"])

    def is_device_assigned_to_user(self, device_id: UUID, user_id: str) -> bool:
        query = """
        SELECT EXISTS(
            SELECT 1 FROM assignments
            WHERE device_id = %s AND user_id = %s AND unassigned_at IS NULL
        ) AS present;
        """
        with self._transaction() as cursor:
            cursor.execute(query, (device_id, user_id))
            row = cursor.fetchone()
            return bool(row and row["present"])

    def get_assignments_for_device(self, device_id: UUID) -> List[Dict[str, Any]]:
        query = f"""
        SELECT {ASSIGNMENT_COLUMNS}
        FROM assignments
        WHERE device_id = %s
        ORDER BY assigned_at DESC;
        """
        with self._transaction() as cursor:
            cursor.execute(query, (device_id,))
            return cursor.fetchall()
