"""Public requester-side base class for pyframeproxy."""

from __future__ import annotations

from typing import TYPE_CHECKING, final

if TYPE_CHECKING:
    from ._internal.requester import OperationNamespace, RequesterClient


class RequesterBase:
    """Base class for code that drives the owner resource from a requester context.

    Subclasses override the hooks; the framework wires the instance to a
    :class:`RequesterClient` that owns the channel.
    """

    def __init__(self) -> None:
        self._client: RequesterClient | None = None

    async def on_bootstrap(self, ops: OperationNamespace) -> None:
        """Hook called once the owner has announced its operations and constants."""

    async def render(self, frame_time: float) -> None:
        """Hook called for every frame the owner collects.

        Calls made here are buffered by the owner and applied after every
        requester has finished its frame, so their replies arrive only after
        this hook returns.
        """

    @final
    def _initialize_client(self, client: RequesterClient) -> None:
        """Attach the client (called internally by the framework)."""
        self._client = client

    @property
    def ops(self) -> OperationNamespace:
        """The bootstrapped operation namespace."""
        if self._client is None or self._client.ops is None:
            raise RuntimeError("Requester has not been bootstrapped yet")
        return self._client.ops
