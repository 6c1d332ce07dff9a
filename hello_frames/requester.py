"""Minimal RequesterBase implementation for the hello frames sample."""

from __future__ import annotations

import logging

from typing_extensions import override

from pyframeproxy import OperationNamespace, RemoteObjectHandle, RequesterBase

logger = logging.getLogger(__name__)


class TriangleRequester(RequesterBase):
    """Uploads one triangle at bootstrap and draws it every frame."""

    def __init__(self, name: str) -> None:
        super().__init__()
        self.name = name
        self.program: RemoteObjectHandle | None = None
        self.buffer: RemoteObjectHandle | None = None

    @override
    async def on_bootstrap(self, ops: OperationNamespace) -> None:
        self.program = await ops.createProgram(self.name)
        self.buffer = await ops.createBuffer()
        ops.useProgram.notify(self.program)
        ops.bindBuffer.notify(ops.ARRAY_BUFFER, self.buffer)
        ops.bufferData.notify(ops.ARRAY_BUFFER, [0.0, 1.0, -1.0, -1.0, 1.0, -1.0])
        logger.info("%s uploaded program %s and buffer %s", self.name, self.program, self.buffer)

    @override
    async def render(self, frame_time: float) -> None:
        # Program and buffer bindings are replayed by the owner every frame.
        self.ops.drawArrays.notify(self.ops.TRIANGLES, 0, 3)
