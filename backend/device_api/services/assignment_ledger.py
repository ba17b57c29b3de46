# backend/device_api/services/assignment_ledger.py
import logging
from typing import List, Optional
from uuid import UUID

from backend.device_api.core.errors import (
    AlreadyAssigned, ConflictingActiveAssignment, NoActiveAssignment
)
from backend.device_api.db.repos.assignment_repo import AssignmentRepository
from backend.device_api.db.repos.device_repo import DeviceRepository
from backend.device_api.schemas.devices import Assignment, DeviceWithAssignment

logger = logging.getLogger(__name__)


class AssignmentLedger:
    """
    Append-only custody history. A device is either Unowned (no open
    interval) or Owned(user_id) (exactly one open interval).

    assign() does not look before it leaps: it inserts and lets the store's
    uniqueness guarantee pick the single winner among concurrent callers.
    """

    def __init__(self, assignment_repo: AssignmentRepository, device_repo: DeviceRepository):
        self.assignment_repo = assignment_repo
        self.device_repo = device_repo

    def assign(self, device_id: UUID, user_id: str) -> Assignment:
        try:
            assignment = self.assignment_repo.create(Assignment.new(device_id, user_id))
        except ConflictingActiveAssignment as e:
            logger.warning(f"Device {device_id} is already assigned; rejected claim by {user_id}")
            raise AlreadyAssigned(str(device_id)) from e

        logger.info(f"Device {device_id} assigned to {user_id} (assignment {assignment.id})")
        return assignment

    def unassign(self, device_id: UUID, owner: Optional[str] = None) -> Assignment:
        """
        Close the open interval. Passing owner makes the close conditional on
        that user still holding the device, so a release authorized against
        one owner can never end a newer owner's interval.
        """
        try:
            assignment = self.assignment_repo.deactivate(device_id, owner)
        except NoActiveAssignment:
            logger.warning(f"Unassign requested for device {device_id} with no active assignment")
            raise

        logger.info(f"Device {device_id} unassigned from {assignment.user_id}")
        return assignment

    def current_owner(self, device_id: UUID) -> Optional[str]:
        active = self.assignment_repo.get_active_by_device(device_id)
        return active.user_id if active else None

    def owned_by(self, user_id: str) -> List[DeviceWithAssignment]:
        """Active assignments only, newest first."""
        return self.device_repo.list_by_user(user_id)

    def is_owned_by(self, device_id: UUID, user_id: str) -> bool:
        return self.assignment_repo.is_active_for_user(device_id, user_id)

    def history(self, device_id: UUID) -> List[Assignment]:
        return self.assignment_repo.list_for_device(device_id)
