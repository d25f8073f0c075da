"""
Abstract Change Bus Interface

The change bus pushes row-level insert/update/delete notifications from
the record store to every connected client. Connections can drop; the
subscriber is responsible for reconnecting and subscribing again.
"""

from abc import ABC, abstractmethod
from typing import Any, Sequence


class ChangeBusInterface(ABC):
    """
    Abstract interface for the change-notification bus.

    A subscriber calls connect(), subscribe() once per connection and then
    receive() in a loop until BusDisconnectedError.
    """

    @abstractmethod
    async def connect(self) -> None:
        """
        Open a connection.

        Raises:
            BusError: If the bus cannot be reached
        """
        pass

    @abstractmethod
    async def subscribe(self, collections: Sequence[str]) -> None:
        """Ask for change events of the given collections on this connection."""
        pass

    @abstractmethod
    async def receive(self) -> dict[str, Any]:
        """
        Wait for the next raw change message.

        Raises:
            BusDisconnectedError: The connection was lost
        """
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        pass


class BusError(Exception):
    """Base exception for change bus operations."""
    pass


class BusDisconnectedError(BusError):
    """The bus connection dropped or was never established."""
    pass
