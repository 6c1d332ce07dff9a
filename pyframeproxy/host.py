"""Owner-side host for pyframeproxy.

Owns the shared resource, one CommandProxy per attached requester and the
FrameCoordinator that runs frames across them.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from ._internal.command_proxy import CommandProxy
from ._internal.coordinator import FrameCoordinator, FrameReport
from ._internal.operation_table import OperationTable
from ._internal.rpc_serialization import BootstrapMessage, RequesterId
from .config import HostConfig, resolve_frame_config, resolve_policy

if TYPE_CHECKING:
    from .interfaces import FramePresenter, MessageChannel

__all__ = ["SharedResourceHost"]

logger = logging.getLogger(__name__)


class SharedResourceHost:
    """Host that lets several requesters drive one owner resource."""

    def __init__(
        self,
        resource: Any,
        config: HostConfig | None = None,
        present: FramePresenter | None = None,
        *,
        operations: OperationTable | None = None,
    ) -> None:
        """Initialize the host.

        Args:
            resource: The shared owner resource.
            config: Policy and frame timing configuration.
            present: Called once per frame before buffered commands are applied.
            operations: Pre-built operation table; built from *resource* when omitted.
        """
        config = config or HostConfig()
        self.resource = resource
        self.policy = resolve_policy(config.get("policy"))
        self.frame_config = resolve_frame_config(config.get("frames"))
        self.operations = operations if operations is not None else OperationTable.from_resource(resource)
        self.coordinator = FrameCoordinator(present, config=self.frame_config)
        self.proxies: dict[RequesterId, CommandProxy] = {}
        self._serve_tasks: dict[RequesterId, asyncio.Task[None]] = {}

    def bootstrap_message(self) -> BootstrapMessage:
        return BootstrapMessage(
            name="bootstrap",
            operation_names=self.operations.operation_names,
            constants=dict(self.operations.constants),
            reply_timeout=self.frame_config.get("reply_timeout"),
        )

    async def attach(self, requester_id: RequesterId, channel: MessageChannel) -> CommandProxy:
        """Connect a requester, bootstrap it, warm it up and add it to the frame loop."""
        if requester_id in self.proxies:
            raise ValueError(f"Requester {requester_id!r} is already attached")

        proxy = CommandProxy(requester_id, channel, self.operations, policy=self.policy)
        self.proxies[requester_id] = proxy
        self._serve_tasks[requester_id] = asyncio.ensure_future(proxy.serve())

        channel.send(self.bootstrap_message())
        logger.info("Requester %r attached, warming up", requester_id)
        try:
            await self.coordinator.warm_up(proxy)
        except BaseException:
            await self.detach(requester_id)
            raise
        self.coordinator.register(proxy)
        return proxy

    async def detach(self, requester_id: RequesterId) -> None:
        proxy = self.proxies.pop(requester_id, None)
        if proxy is None:
            return
        self.coordinator.unregister(proxy)
        proxy.channel.close()
        task = self._serve_tasks.pop(requester_id, None)
        if task is not None:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        logger.info("Requester %r detached", requester_id)

    async def run_frame(self) -> FrameReport:
        return await self.coordinator.run_frame()

    async def run(self, max_frames: int | None = None) -> None:
        await self.coordinator.run(max_frames)

    def stop(self) -> None:
        self.coordinator.stop()

    async def close(self) -> None:
        """Stop the frame loop and detach every requester."""
        self.stop()
        for requester_id in list(self.proxies):
            await self.detach(requester_id)
