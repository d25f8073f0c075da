"""
In-Memory Change Bus

A single-process stand-in for the change-notification bus, used in tests
and when no bus is configured. Messages published while the subscriber is
disconnected are lost, like on the real bus.
"""

import asyncio
from typing import Any, Mapping, Sequence

from splitsmart.models.changes import CollectionType
from splitsmart.services.bus.interface import (
    BusDisconnectedError,
    BusError,
    ChangeBusInterface,
)


_DROPPED = object()


class InMemoryChangeBus(ChangeBusInterface):
    """
    Queue-backed change bus.

    Test hooks:
        publish(message)    deliver a raw change message
        drop_connection()   simulate the connection going away
        fail_connects       number of upcoming connect() calls that fail
    """

    def __init__(self):
        self.connected = False
        self.connect_count = 0
        self.fail_connects = 0
        self.subscriptions: set[str] = set()
        self.subscribe_calls: list[list[str]] = []
        self._queue: asyncio.Queue = asyncio.Queue()

    async def connect(self) -> None:
        if self.fail_connects > 0:
            self.fail_connects -= 1
            raise BusError("In-memory bus refused the connection")
        self._queue = asyncio.Queue()
        self.connected = True
        self.connect_count += 1

    async def subscribe(self, collections: Sequence[str]) -> None:
        if not self.connected:
            raise BusDisconnectedError("Cannot subscribe while disconnected")
        self.subscribe_calls.append(list(collections))
        self.subscriptions.update(collections)

    def _wants(self, message: Mapping[str, Any]) -> bool:
        try:
            collection = CollectionType.parse(
                message.get("type") or message.get("collection") or ""
            )
        except ValueError:
            # Let the subscriber see and report malformed messages
            return True
        return collection.value in self.subscriptions

    def publish(self, message: Mapping[str, Any]) -> bool:
        """Deliver a message; returns False if nobody was listening for it."""
        if not self.connected or not self._wants(message):
            return False
        self._queue.put_nowait(dict(message))
        return True

    def drop_connection(self) -> None:
        self.connected = False
        self.subscriptions.clear()
        self._queue.put_nowait(_DROPPED)

    async def receive(self) -> dict[str, Any]:
        if not self.connected:
            raise BusDisconnectedError("Not connected")
        item = await self._queue.get()
        if item is _DROPPED:
            raise BusDisconnectedError("Connection dropped")
        return item

    async def disconnect(self) -> None:
        if self.connected:
            self.drop_connection()
