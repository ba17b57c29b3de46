# backend/device_api/services/authorization.py
from uuid import UUID

from backend.device_api.services.assignment_ledger import AssignmentLedger


class AuthorizationGate:
    """
    Owner-of-record policy. Claiming an unowned device needs nothing beyond
    an authenticated user, so only reads and releases go through here.
    """

    def __init__(self, ledger: AssignmentLedger):
        self.ledger = ledger

    def can_modify(self, device_id: UUID, user_id: str) -> bool:
        return self.ledger.is_owned_by(device_id, user_id)
