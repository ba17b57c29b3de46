# backend/device_api/db/memory_db.py
import threading
from typing import Any, Dict, List, Optional
from uuid import UUID

from backend.device_api.core.errors import (
    ConflictingActiveAssignment, DeviceNotFound, DuplicateSerial, NoActiveAssignment
)
from backend.device_api.schemas.devices import Assignment, Device
from backend.device_api.utils.utils import current_datetime_utc


class MemoryDB:
    """
    In-process store with the same method surface as PostgresDB, used for
    STORAGE_BACKEND=memory (development and tests).

    The lock belongs to the store, not to the callers: each method is one
    atomic step, which gives the same guarantees as the unique constraints
    in the Postgres schema. Only usable within a single process.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._devices: Dict[UUID, Dict[str, Any]] = {}
        self._serials: Dict[str, UUID] = {}
        self._assignments: Dict[UUID, Dict[str, Any]] = {}
        self._active_by_device: Dict[UUID, UUID] = {}

    def close(self):
        pass

    def create_all_tables(self):
        pass

    # ----------------------------
    # Devices helpers
    # ----------------------------

    def insert_device(self, device: Device) -> Dict[str, Any]:
        row = device.model_dump()
        with self._lock:
            if device.serial_number in self._serials:
                raise DuplicateSerial(device.serial_number)
            self._devices[device.id] = row
            self._serials[device.serial_number] = device.id
            return dict(row)

    def get_device_by_id(self, device_id: UUID) -> Optional[Dict[str, Any]]:
        with self._lock:
            row = self._devices.get(device_id)
            return dict(row) if row else None

    def get_device_by_serial(self, serial_number: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            device_id = self._serials.get(serial_number)
            return dict(self._devices[device_id]) if device_id else None

    def device_exists_by_serial(self, serial_number: str) -> bool:
        with self._lock:
            return serial_number in self._serials

    def _with_assignment(self, device_row: Dict[str, Any]) -> Dict[str, Any]:
        row = dict(device_row)
        assignment_id = self._active_by_device.get(device_row["id"])
        active = self._assignments.get(assignment_id) if assignment_id else None
        row.update(
            assignment_id=active["id"] if active else None,
            user_id=active["user_id"] if active else None,
            assigned_at=active["assigned_at"] if active else None,
            is_assigned=active is not None,
        )
        return row

    def get_device_with_assignment(self, device_id: UUID) -> Optional[Dict[str, Any]]:
        with self._lock:
            device_row = self._devices.get(device_id)
            return self._with_assignment(device_row) if device_row else None

    def get_devices_by_user(self, user_id: str) -> List[Dict[str, Any]]:
        with self._lock:
            rows = [
                self._with_assignment(self._devices[a["device_id"]])
                for a in self._active_assignments()
                if a["user_id"] == user_id
            ]
        return sorted(rows, key=lambda r: r["assigned_at"], reverse=True)

    # ----------------------------
    # Assignment helpers
    # ----------------------------

    def _active_assignments(self) -> List[Dict[str, Any]]:
        return [self._assignments[a_id] for a_id in self._active_by_device.values()]

    def insert_assignment(self, assignment: Assignment) -> Dict[str, Any]:
        row = assignment.model_dump()
        row["unassigned_at"] = None
        with self._lock:
            if assignment.device_id not in self._devices:
                raise DeviceNotFound(str(assignment.device_id))
            if assignment.device_id in self._active_by_device:
                raise ConflictingActiveAssignment(str(assignment.device_id))
            self._assignments[assignment.id] = row
            self._active_by_device[assignment.device_id] = assignment.id
            return dict(row)

    def get_active_assignment_by_device(self, device_id: UUID) -> Optional[Dict[str, Any]]:
        with self._lock:
            assignment_id = self._active_by_device.get(device_id)
            return dict(self._assignments[assignment_id]) if assignment_id else None

    def get_active_assignments_by_user(self, user_id: str) -> List[Dict[str, Any]]:
        with self._lock:
            rows = [dict(a) for a in self._active_assignments() if a["user_id"] == user_id]
        return sorted(rows, key=lambda r: r["assigned_at"], reverse=True)

    def deactivate_assignment(self, device_id: UUID, user_id: Optional[str] = None) -> Dict[str, Any]:
        with self._lock:
            assignment_id = self._active_by_device.get(device_id)
            if assignment_id is None:
                raise NoActiveAssignment(str(device_id))
            row = self._assignments[assignment_id]
            if user_id is not None and row["user_id"] != user_id:
                raise NoActiveAssignment(str(device_id))
            del self._active_by_device[device_id]
            row["unassigned_at"] = max(current_datetime_utc(), row["assigned_at"])
            return dict(row)

    def is_device_assigned(self, device_id: UUID) -> bool:
        with self._lock:
            return device_id in self._active_by_device

    def is_device_assigned_to_user(self, device_id: UUID, user_id: str) -> bool:
        with self._lock:
            assignment_id = self._active_by_device.get(device_id)
            return bool(assignment_id) and self._assignments[assignment_id]["user_id"] == user_id

    def get_assignments_for_device(self, device_id: UUID) -> List[Dict[str, Any]]:
        with self._lock:
            rows = [dict(a) for a in self._assignments.values() if a["device_id"] == device_id]
        return sorted(rows, key=lambda r: r["assigned_at"], reverse=True)
