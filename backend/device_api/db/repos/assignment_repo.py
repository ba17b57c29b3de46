# backend/device_api/db/repos/assignment_repo.py
import logging
from typing import List, Optional
from uuid import UUID

from backend.device_api.core.errors import (
    ConflictingActiveAssignment, DeviceNotFound, NoActiveAssignment
)
from backend.device_api.schemas.devices import Assignment

logger = logging.getLogger(__name__)


class AssignmentRepository:
    def __init__(self, db):
        self._db = db

    def create(self, assignment: Assignment) -> Assignment:
        """
        Insert a new active assignment.
        Raises ConflictingActiveAssignment when the device already has one.
        """
        try:
            row = self._db.insert_assignment(assignment)
        except (ConflictingActiveAssignment, DeviceNotFound):
            raise
        except Exception as e:
            logger.exception(f"Create assignment failed: {e}")
            raise
        return Assignment(**row)

    def get_active_by_device(self, device_id: UUID) -> Optional[Assignment]:
        row = self._db.get_active_assignment_by_device(device_id)
        return Assignment(**row) if row else None

    def get_active_by_user(self, user_id: str) -> List[Assignment]:
        rows = self._db.get_active_assignments_by_user(user_id) or []
        return [Assignment(**r) for r in rows]

    def deactivate(self, device_id: UUID, user_id: Optional[str] = None) -> Assignment:
        """
        Raises NoActiveAssignment if the device has no open interval (held by
        user_id, when given).
        """
        try:
            row = self._db.deactivate_assignment(device_id, user_id)
        except NoActiveAssignment:
            raise
        except Exception as e:
            logger.exception(f"Deactivate assignment failed: {e}")
            raise
        return Assignment(**row)

    def is_active(self, device_id: UUID) -> bool:
        try:
            return self._db.is_device_assigned(device_id)
        except Exception as e:
            logger.exception(f"Check assignment failed: {e}")
            raise

    def is_active_for_user(self, device_id: UUID, user_id: str) -> bool:
        try:
            return self._db.is_device_assigned_to_user(device_id, user_id)
        except Exception as e:
            logger.exception(f"Check assignment failed: {e}")
            raise

    def list_for_device(self, device_id: UUID) -> List[Assignment]:
        rows = self._db.get_assignments_for_device(device_id) or []
        return [Assignment(**r) for r in rows]
