"""Device pool API endpoints."""

from fastapi import APIRouter, Depends

from gamecentre.api.deps import get_session_engine, http_error
from gamecentre.models.device import Device
from gamecentre.schemas.device import DeviceListResponse, DeviceResponse
from gamecentre.services.errors import GameCentreError
from gamecentre.services.scheduler import as_utc
from gamecentre.services.session_service import SessionEngine

router = APIRouter(tags=["devices"])


def _to_response(d: Device) -> DeviceResponse:
    return DeviceResponse(
        id=d.id,
        name=d.name,
        kind=d.kind,
        status=d.status,
        current_session_id=d.current_session_id,
        updated_at=as_utc(d.updated_at).isoformat() if d.updated_at else None,
    )


@router.get("/devices", response_model=DeviceListResponse)
def list_devices(engine: SessionEngine = Depends(get_session_engine)):
    """List the device pool with lock state and how many are free."""
    devices = engine.devices.list_devices()
    return DeviceListResponse(
        devices=[_to_response(d) for d in devices],
        total=len(devices),
        available=engine.devices.available_count(),
    )


@router.get("/devices/{device_id}", response_model=DeviceResponse)
def get_device(device_id: str, engine: SessionEngine = Depends(get_session_engine)):
    try:
        device = engine.devices.get_device(device_id)
    except GameCentreError as e:
        raise http_error(e)
    return _to_response(device)
