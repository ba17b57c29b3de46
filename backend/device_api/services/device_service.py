# backend/device_api/services/device_service.py
import logging
from typing import List, Optional
from uuid import UUID

from cryptography import x509

from backend.device_api.core.certificates import (
    extract_identity, subject_common_name, validate_certificate
)
from backend.device_api.core.errors import DeviceNotFound, Forbidden
from backend.device_api.db.repos.assignment_repo import AssignmentRepository
from backend.device_api.db.repos.device_repo import DeviceRepository
from backend.device_api.schemas.devices import Assignment, Device, DeviceWithAssignment
from backend.device_api.services.assignment_ledger import AssignmentLedger
from backend.device_api.services.authorization import AuthorizationGate
from backend.device_api.services.device_registry import DeviceRegistry

logger = logging.getLogger(__name__)


class DeviceService:
    """
    Composes registry, ledger and gate into the operations the API exposes.
    Callers pass identities that are already authenticated (a verified
    certificate or the user_id from a verified token). No API exposure here.
    """

    def __init__(self, db):
        device_repo = DeviceRepository(db)
        assignment_repo = AssignmentRepository(db)
        self.registry = DeviceRegistry(device_repo)
        self.ledger = AssignmentLedger(assignment_repo, device_repo)
        self.gate = AuthorizationGate(self.ledger)

    # ---------- device principal ----------

    def authenticate_device(self, certificate: Optional[x509.Certificate]) -> Device:
        """
        First contact registers the device; there is no separate
        provisioning step. Raises InvalidCertificate.
        """
        validate_certificate(certificate)
        identity = extract_identity(certificate)
        logger.debug(f"Authenticating device serial={identity.serial_number} "
                     f"issuer_cn={identity.issuer_common_name} "
                     f"subject_cn={subject_common_name(certificate)}")
        return self.registry.register_or_get(identity)

    # ---------- user principal ----------

    def get_device(self, device_id: UUID, user_id: str) -> DeviceWithAssignment:
        """
        Visible when unowned or owned by the caller. A device held by someone
        else reads as not found.
        """
        device = self.registry.get_with_assignment(device_id)
        if device.is_assigned and device.user_id != user_id:
            logger.warning(f"User {user_id} requested device {device_id} owned by another user")
            raise DeviceNotFound(str(device_id))
        return device

    def assign_device(self, device_id: UUID, user_id: str) -> Assignment:
        logger.debug(f"Attempting to assign device {device_id} to {user_id}")
        self.registry.get_by_id(device_id)
        return self.ledger.assign(device_id, user_id)

    def unassign_device(self, device_id: UUID, user_id: str) -> Assignment:
        """
        Only the current owner may release a device. Raises Forbidden (the
        API reports it exactly like a missing device).
        """
        if not self.gate.can_modify(device_id, user_id):
            logger.warning(f"User {user_id} attempted to unassign device {device_id} they don't own")
            raise Forbidden(str(device_id))
        return self.ledger.unassign(device_id, owner=user_id)

    def list_owned_devices(self, user_id: str) -> List[DeviceWithAssignment]:
        devices = self.ledger.owned_by(user_id)
        logger.debug(f"Retrieved {len(devices)} devices for user {user_id}")
        return devices

    def assignment_history(self, device_id: UUID, user_id: str) -> List[Assignment]:
        if not self.gate.can_modify(device_id, user_id):
            raise Forbidden(str(device_id))
        return self.ledger.history(device_id)
