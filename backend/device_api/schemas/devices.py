# backend/device_api/schemas/devices.py
from datetime import datetime
from typing import List, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field

from backend.device_api.utils.utils import current_datetime_utc


class Device(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: UUID
    serial_number: str
    issuer_common_name: str
    created_at: datetime

    @classmethod
    def new(cls, serial_number: str, issuer_common_name: str) -> "Device":
        return cls(
            id=uuid4(),
            serial_number=serial_number,
            issuer_common_name=issuer_common_name,
            created_at=current_datetime_utc(),
        )


class Assignment(BaseModel):
    """One ownership interval. unassigned_at is None while it is active."""
    model_config = ConfigDict(frozen=True)

    id: UUID
    device_id: UUID
    user_id: str
    assigned_at: datetime
    unassigned_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.unassigned_at is None

    @classmethod
    def new(cls, device_id: UUID, user_id: str) -> "Assignment":
        return cls(
            id=uuid4(),
            device_id=device_id,
            user_id=user_id,
            assigned_at=current_datetime_utc(),
        )


class DeviceWithAssignment(Device):
    assignment_id: Optional[UUID] = None
    user_id: Optional[str] = None
    assigned_at: Optional[datetime] = None
    is_assigned: bool = False


# ----------------------------
# Response DTOs
# ----------------------------

class MessageDTO(BaseModel):
    message: str


class AssignResponseDTO(MessageDTO):
    assignment: Assignment


class OwnedDevicesDTO(BaseModel):
    devices: List[DeviceWithAssignment] = Field(default_factory=list)
    count: int = 0


class AssignmentHistoryDTO(BaseModel):
    device_id: UUID
    assignments: List[Assignment] = Field(default_factory=list)
