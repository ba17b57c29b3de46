# backend/device_api/api/v1/users.py
from fastapi import APIRouter, Depends

from backend.device_api.api.deps import get_device_service, user_required
from backend.device_api.schemas.devices import OwnedDevicesDTO
from backend.device_api.services.device_service import DeviceService

router = APIRouter(prefix="/api/v1/users", tags=["users"])


@router.get("/me/devices", response_model=OwnedDevicesDTO)
def my_devices(
    user_id: str = Depends(user_required),
    svc: DeviceService = Depends(get_device_service),
):
    """Devices currently assigned to the caller, most recent first."""
    devices = svc.list_owned_devices(user_id)
    return OwnedDevicesDTO(devices=devices, count=len(devices))
