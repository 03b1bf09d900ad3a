"""GameCentre Database Models."""

from gamecentre.models.customer import Customer
from gamecentre.models.device import Device
from gamecentre.models.session import GameSession

__all__ = [
    "Customer",
    "Device",
    "GameSession",
]
