# backend/device_api/api/v1/devices.py
import logging
from uuid import UUID

from cryptography import x509
from fastapi import APIRouter, Depends, HTTPException, status

from backend.device_api.api.deps import (
    device_certificate_required, get_device_service, user_required
)
from backend.device_api.core.errors import (
    AlreadyAssigned, DeviceNotFound, Forbidden, InvalidCertificate, NoActiveAssignment
)
from backend.device_api.schemas.devices import (
    AssignmentHistoryDTO, AssignResponseDTO, Device, DeviceWithAssignment, MessageDTO
)
from backend.device_api.services.device_service import DeviceService

router = APIRouter(prefix="/api/v1/devices", tags=["devices"])
logger = logging.getLogger(__name__)


def _device_not_found() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Device not found")


@router.post("/authenticate", response_model=Device)
def authenticate_device(
    cert: x509.Certificate = Depends(device_certificate_required),
    svc: DeviceService = Depends(get_device_service),
):
    """
    Device first contact and every later login. The certificate's serial
    number is the device identity; unknown serials are registered.
    """
    try:
        return svc.authenticate_device(cert)
    except InvalidCertificate as e:
        logger.warning(f"Device authentication rejected: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid client certificate"
        )


@router.get("/{device_id}", response_model=DeviceWithAssignment)
def get_device(
    device_id: UUID,
    user_id: str = Depends(user_required),
    svc: DeviceService = Depends(get_device_service),
):
    try:
        return svc.get_device(device_id, user_id)
    except DeviceNotFound:
        raise _device_not_found()


@router.post("/{device_id}/assign", response_model=AssignResponseDTO)
def assign_device(
    device_id: UUID,
    user_id: str = Depends(user_required),
    svc: DeviceService = Depends(get_device_service),
):
    try:
        assignment = svc.assign_device(device_id, user_id)
    except DeviceNotFound:
        raise _device_not_found()
    except AlreadyAssigned:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Device is already assigned"
        )
    return AssignResponseDTO(message="Device assigned successfully", assignment=assignment)


@router.delete("/{device_id}/unassign", response_model=MessageDTO)
def unassign_device(
    device_id: UUID,
    user_id: str = Depends(user_required),
    svc: DeviceService = Depends(get_device_service),
):
    """
    Only the current owner may release a device. Every failure reads as
    404 so callers cannot probe who owns what.
    """
    try:
        svc.unassign_device(device_id, user_id)
    except (DeviceNotFound, Forbidden, NoActiveAssignment):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Device not found or not assigned to you"
        )
    return MessageDTO(message="Device unassigned successfully")


@router.get("/{device_id}/assignments", response_model=AssignmentHistoryDTO)
def assignment_history(
    device_id: UUID,
    user_id: str = Depends(user_required),
    svc: DeviceService = Depends(get_device_service),
):
    try:
        assignments = svc.assignment_history(device_id, user_id)
    except (DeviceNotFound, Forbidden):
        raise _device_not_found()
    return AssignmentHistoryDTO(device_id=device_id, assignments=assignments)
