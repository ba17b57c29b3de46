# backend/device_api/services/device_registry.py
import logging
from uuid import UUID

from backend.device_api.core.certificates import DeviceIdentity
from backend.device_api.core.errors import DeviceNotFound, DuplicateSerial
from backend.device_api.db.repos.device_repo import DeviceRepository
from backend.device_api.schemas.devices import Device, DeviceWithAssignment

logger = logging.getLogger(__name__)


class DeviceRegistry:
    """
    Sole writer of device rows. Registration is idempotent per serial
    number: the first successful authentication creates the record and
    every later one (including a concurrent loser) gets that same record.
    """

    def __init__(self, device_repo: DeviceRepository):
        self.device_repo = device_repo

    def register_or_get(self, identity: DeviceIdentity) -> Device:
        existing = self.device_repo.get_by_serial(identity.serial_number)
        if existing:
            self._check_issuer(existing, identity)
            logger.debug(f"Device already registered: {existing.id}")
            return existing

        logger.info(f"Registering new device serial={identity.serial_number} "
                    f"issuer_cn={identity.issuer_common_name}")
        try:
            device = self.device_repo.create(
                Device.new(identity.serial_number, identity.issuer_common_name)
            )
        except DuplicateSerial:
            # Lost the race to a concurrent first contact; the winner's row is authoritative.
            device = self.device_repo.get_by_serial(identity.serial_number)
            if device is None:
                raise
            logger.info(f"Concurrent registration resolved to existing device {device.id}")
            self._check_issuer(device, identity)
            return device

        logger.info(f"Device registered successfully: {device.id}")
        return device

    def get_by_id(self, device_id: UUID) -> Device:
        device = self.device_repo.get_by_id(device_id)
        if not device:
            raise DeviceNotFound(str(device_id))
        return device

    def get_with_assignment(self, device_id: UUID) -> DeviceWithAssignment:
        device = self.device_repo.get_with_assignment(device_id)
        if not device:
            raise DeviceNotFound(str(device_id))
        return device

    def _check_issuer(self, device: Device, identity: DeviceIdentity) -> None:
        # The stored issuer is fixed at first registration and never overwritten.
        if device.issuer_common_name != identity.issuer_common_name:
            logger.warning(
                f"Issuer CN mismatch for device {device.id}: stored="
                f"{device.issuer_common_name!r} presented={identity.issuer_common_name!r}"
            )
