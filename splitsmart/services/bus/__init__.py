"""Change-notification bus package."""

from splitsmart.services.bus.interface import (
    BusDisconnectedError,
    BusError,
    ChangeBusInterface,
)
from splitsmart.services.bus.memory import InMemoryChangeBus

__all__ = [
    "BusDisconnectedError",
    "BusError",
    "ChangeBusInterface",
    "InMemoryChangeBus",
]
