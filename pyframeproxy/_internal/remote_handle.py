"""Opaque handles for owner-side objects that cannot cross the channel.

RemoteObjectHandle is what a requester holds in place of a non-transferable
result. HandleRegistry is the owner-side arena the handle ids point into.
"""
from __future__ import annotations

import itertools
import logging
from typing import Any

from ..errors import DanglingReferenceError

logger = logging.getLogger(__name__)


class RemoteObjectHandle:
    """Handle to an object living in the owner context.

    Attributes:
        handle_id: Registry id of the object on the owner side.
        type_name: The type name of the owner object (for debugging/logging).
    """

    __slots__ = ("handle_id", "type_name")

    def __init__(self, handle_id: int, type_name: str = "object") -> None:
        self.handle_id = handle_id
        self.type_name = type_name

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RemoteObjectHandle):
            return NotImplemented
        return self.handle_id == other.handle_id

    def __hash__(self) -> int:
        return hash(("RemoteObjectHandle", self.handle_id))

    def __repr__(self) -> str:
        return f"<RemoteObject id={self.handle_id} type={self.type_name}>"


class HandleRegistry:
    """Arena mapping integer handle ids to owner objects.

    Ids are allocated from the registry's own counter and are never reused,
    so a released id resolves to nothing rather than to a newer object.
    Entries live until :meth:`release` is called.
    """

    def __init__(self) -> None:
        self._objects: dict[int, Any] = {}
        self._ids = itertools.count(1)

    def store(self, obj: Any) -> int:
        handle_id = next(self._ids)
        self._objects[handle_id] = obj
        return handle_id

    def resolve(self, handle_id: int) -> Any:
        try:
            return self._objects[handle_id]
        except KeyError:
            raise DanglingReferenceError(handle_id) from None

    def release(self, handle_id: int) -> bool:
        """Drop the object behind *handle_id*. Returns False if it was not registered."""
        if handle_id not in self._objects:
            logger.debug("Release of unknown handle %s ignored", handle_id)
            return False
        del self._objects[handle_id]
        return True

    def __contains__(self, handle_id: object) -> bool:
        return handle_id in self._objects

    def __len__(self) -> int:
        return len(self._objects)
