"""
Frame Coordinator.

Drives the two-phase frame cycle across every registered CommandProxy:
collect every requester's commands concurrently, present the owner resource
once, then flush each proxy's buffer in registration order.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from typing import TYPE_CHECKING, Any, TypedDict

from ..config import FrameCoordinatorConfig, resolve_frame_config
from ..errors import FrameProxyError, PeerDisconnectedError, PeerUnresponsiveError

if TYPE_CHECKING:
    from ..interfaces import FramePresenter
    from .command_proxy import CommandProxy
    from .rpc_serialization import RequesterId

logger = logging.getLogger(__name__)


class FrameReport(TypedDict):
    frame: int
    flushed: dict[RequesterId, int]
    faults: dict[RequesterId, FrameProxyError]


class FrameCoordinator:
    """Runs frames across all registered command proxies."""

    def __init__(
        self,
        present: FramePresenter | None = None,
        *,
        config: FrameCoordinatorConfig | None = None,
    ) -> None:
        self.present = present
        self.config = resolve_frame_config(config)
        self.proxies: list[CommandProxy] = []
        self.frame_count = 0
        self._stopping = False

    def register(self, proxy: CommandProxy) -> None:
        if any(p.requester_id == proxy.requester_id for p in self.proxies):
            raise ValueError(f"Requester {proxy.requester_id!r} is already registered")
        self.proxies.append(proxy)

    def unregister(self, proxy: CommandProxy) -> None:
        if proxy in self.proxies:
            self.proxies.remove(proxy)
            proxy.discard()

    async def _collect(self, proxy: CommandProxy, frame_time: float) -> None:
        try:
            waiter = proxy.begin_frame_collection(frame_time)
        except ConnectionError:
            raise PeerDisconnectedError(proxy.requester_id, "frame begin") from None

        # asyncio.wait leaves the waiter alone when this task is cancelled, so a
        # cancelled waiter can only mean the proxy lost its channel.
        timeout = self.config.get("frame_end_timeout")
        try:
            done, _ = await asyncio.wait({waiter}, timeout=timeout)
        except asyncio.CancelledError:
            proxy.discard()
            raise
        if not done:
            raise PeerUnresponsiveError(proxy.requester_id, "frame end", timeout)
        if waiter.cancelled():
            raise PeerDisconnectedError(proxy.requester_id, "frame end")

    async def _present(self) -> None:
        if self.present is None:
            return
        result = self.present()
        if inspect.isawaitable(result):
            await result

    async def run_frame(self, frame_time: float | None = None) -> FrameReport:
        """Collect, present and flush one frame.

        A requester that does not signal frame end within ``frame_end_timeout``,
        or whose channel closes mid-frame, is reported as a fault and its buffer
        is discarded; the rest of the frame proceeds. Disconnected requesters
        are also dropped from the frame loop.
        """
        if frame_time is None:
            frame_time = time.time() * 1000.0
        proxies = list(self.proxies)

        results = await asyncio.gather(
            *(self._collect(proxy, frame_time) for proxy in proxies),
            return_exceptions=True,
        )

        faults: dict[Any, FrameProxyError] = {}
        for proxy, result in zip(proxies, results):
            if isinstance(result, (PeerUnresponsiveError, PeerDisconnectedError)):
                logger.warning("Frame %d: %s", self.frame_count, result)
                faults[proxy.requester_id] = result
            elif isinstance(result, BaseException):
                # Anything other than a peer fault is a bug in the caller; propagate it.
                for p in proxies:
                    p.discard()
                raise result

        await self._present()

        flushed: dict[Any, int] = {}
        for proxy in proxies:
            fault = faults.get(proxy.requester_id)
            if fault is None:
                flushed[proxy.requester_id] = proxy.flush()
            elif isinstance(fault, PeerDisconnectedError):
                self.unregister(proxy)
            else:
                proxy.discard()

        report = FrameReport(frame=self.frame_count, flushed=flushed, faults=faults)
        self.frame_count += 1
        return report

    async def warm_up(self, proxy: CommandProxy, frames: int | None = None) -> None:
        """Run collect/flush handshake cycles for one proxy without presenting."""
        if frames is None:
            frames = self.config["warmup_frames"]
        for index in range(frames):
            try:
                await self._collect(proxy, time.time() * 1000.0)
            except BaseException:
                proxy.discard()
                raise
            proxy.flush()
            logger.debug("Warm-up frame %d/%d done for %r", index + 1, frames, proxy.requester_id)

    async def run(self, max_frames: int | None = None) -> None:
        """Run frames until :meth:`stop` is called or *max_frames* have run."""
        self._stopping = False
        frames = 0
        while not self._stopping and (max_frames is None or frames < max_frames):
            await self.run_frame()
            frames += 1
            await asyncio.sleep(self.config["frame_interval"])

    def stop(self) -> None:
        self._stopping = True
