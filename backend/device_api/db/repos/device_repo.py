# backend/device_api/db/repos/device_repo.py
import logging
from typing import List, Optional
from uuid import UUID

from backend.device_api.core.errors import DuplicateSerial
from backend.device_api.schemas.devices import Device, DeviceWithAssignment

logger = logging.getLogger(__name__)


class DeviceRepository:
    """
    Thin repository over the store (PostgresDB or MemoryDB) for device rows.
    Converts rows into Device models; SQL stays centralized in the store.
    """

    def __init__(self, db):
        self._db = db

    def create(self, device: Device) -> Device:
        """Raises DuplicateSerial if the serial number is already registered."""
        try:
            row = self._db.insert_device(device)
        except DuplicateSerial:
            raise
        except Exception as e:
            logger.exception(f"Failed to create device {device.serial_number}: {e}")
            raise
        return Device(**row)

    def get_by_id(self, device_id: UUID) -> Optional[Device]:
        row = self._db.get_device_by_id(device_id)
        return Device(**row) if row else None

    def get_by_serial(self, serial_number: str) -> Optional[Device]:
        row = self._db.get_device_by_serial(serial_number)
        return Device(**row) if row else None

    def exists_by_serial(self, serial_number: str) -> bool:
        return self._db.device_exists_by_serial(serial_number)

    def get_with_assignment(self, device_id: UUID) -> Optional[DeviceWithAssignment]:
        row = self._db.get_device_with_assignment(device_id)
        return DeviceWithAssignment(**row) if row else None

    def list_by_user(self, user_id: str) -> List[DeviceWithAssignment]:
        try:
            rows = self._db.get_devices_by_user(user_id) or []
        except Exception as e:
            logger.exception(f"Failed to load devices for user {user_id}: {e}")
            raise
        return [DeviceWithAssignment(**r) for r in rows]
