"""Device pool: lock state and exclusive holding by one session.

The registry never commits on its own for lock/unlock; both run inside the
caller's transaction so the device write lands together with the session
write that caused it.
"""

import logging
from datetime import datetime, timezone

from sqlmodel import col, or_

from gamecentre.config import DeviceSpec
from gamecentre.models.device import Device
from gamecentre.services.errors import AlreadyHeld, UnknownDevice
from gamecentre.services.store import RecordStore, StoreTransaction

logger = logging.getLogger(__name__)


class DeviceRegistry:
    def __init__(self, store: RecordStore):
        self.store = store

    def provision(self, catalogue: list[DeviceSpec]) -> int:
        """Insert catalogue devices that are missing. Returns how many were added."""
        added = 0
        with self.store.transaction() as tx:
            for spec in catalogue:
                if tx.get(Device, spec.id) is None:
                    tx.insert(Device(id=spec.id, name=spec.name, kind=spec.kind))
                    added += 1
        if added:
            logger.info("Provisioned %d device(s)", added)
        return added

    def get_device(self, device_id: str) -> Device:
        device = self.store.get(Device, device_id)
        if not device:
            raise UnknownDevice(f"Unknown device: {device_id}")
        return device

    def list_devices(self) -> list[Device]:
        return self.store.list(Device, order_by=col(Device.id))

    def available_count(self) -> int:
        """Pool size minus unlocked devices. Display only, not admission control."""
        devices = self.list_devices()
        return len(devices) - sum(1 for d in devices if d.status == "unlocked")

    def unlock(self, tx: StoreTransaction, device_id: str, session_id: str) -> None:
        """Hand the device to ``session_id``. Raises AlreadyHeld if another session has it."""
        unlocked = tx.update_where(
            Device,
            device_id,
            {
                "status": "unlocked",
                "current_session_id": session_id,
                "updated_at": datetime.now(timezone.utc),
            },
            or_(
                col(Device.current_session_id).is_(None),
                col(Device.current_session_id) == session_id,
            ),
        )
        if not unlocked:
            holder = tx.get(Device, device_id)
            logger.warning(
                "Unlock refused: device=%s held by %s, requested by %s",
                device_id, holder.current_session_id if holder else None, session_id,
            )
            raise AlreadyHeld(f"Device {device_id} is held by another session")
        logger.info("Device unlocked: device=%s session=%s", device_id, session_id)

    def lock(self, tx: StoreTransaction, device_id: str, session_id: str) -> bool:
        """Release the device if ``session_id`` holds it. No-op otherwise."""
        locked = tx.update_fields(
            Device,
            device_id,
            {
                "status": "locked",
                "current_session_id": None,
                "updated_at": datetime.now(timezone.utc),
            },
            expect={"current_session_id": session_id},
        )
        if locked:
            logger.info("Device locked: device=%s session=%s", device_id, session_id)
        return locked
