"""Public protocols for pyframeproxy collaborators.

These interfaces let applications plug in their own channels and frame
presentation without inheriting from concrete base classes.
"""

from __future__ import annotations

from collections.abc import Awaitable
from typing import Any, Protocol, Union, runtime_checkable


@runtime_checkable
class MessageChannel(Protocol):
    """Bidirectional, FIFO-per-sender channel between a requester and the owner."""

    def send(self, obj: Any) -> None:
        """Send a message to the other end. Raises ConnectionError once closed."""

    async def recv(self) -> Any:
        """Wait for the next message. ``None`` signals end of stream."""

    def close(self) -> None:
        """Close both directions of the channel."""


@runtime_checkable
class FramePresenter(Protocol):
    """Called once per frame, after every requester has finished collecting.

    Resets or presents the owner resource before the buffered commands of
    the new frame are applied. May be a plain function or a coroutine.
    """

    def __call__(self) -> Union[None, Awaitable[None]]:
        ...
