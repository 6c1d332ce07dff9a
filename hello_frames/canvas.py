"""A software stand-in for a graphics context, used as the shared owner resource."""

from __future__ import annotations

import logging
from typing import Any

logger = logging.getLogger(__name__)


class Buffer:
    def __init__(self, buffer_id: int) -> None:
        self.buffer_id = buffer_id
        self.data: list[float] = []

    def __repr__(self) -> str:
        return f"<Buffer {self.buffer_id} len={len(self.data)}>"


class Program:
    def __init__(self, name: str) -> None:
        self.name = name

    def __repr__(self) -> str:
        return f"<Program {self.name}>"


class Canvas:
    """Stateful drawing context: one active program, one buffer per target."""

    ARRAY_BUFFER = 34962
    COLOR_BUFFER_BIT = 16384
    TRIANGLES = 4

    def __init__(self) -> None:
        self._next_buffer = 1
        self.program: Program | None = None
        self.bindings: dict[int, Buffer | None] = {}
        self.draw_calls: list[tuple[str, int, int]] = []
        self.frames_presented = 0

    def createProgram(self, name: str) -> Program:
        return Program(name)

    def useProgram(self, program: Program | None) -> None:
        self.program = program

    def createBuffer(self) -> Buffer:
        buffer = Buffer(self._next_buffer)
        self._next_buffer += 1
        return buffer

    def bindBuffer(self, target: int, buffer: Buffer | None) -> None:
        self.bindings[target] = buffer

    def bufferData(self, target: int, data: list[float]) -> None:
        buffer = self.bindings.get(target)
        if buffer is None:
            raise RuntimeError(f"No buffer bound to target {target}")
        buffer.data = list(data)

    def drawArrays(self, mode: int, first: int, count: int) -> None:
        program = self.program.name if self.program else "<none>"
        self.draw_calls.append((program, first, count))

    def getError(self) -> int:
        return 0

    def clear(self, mask: int) -> None:
        self.draw_calls.clear()

    def present(self) -> None:
        """Clear once per frame, then count the frame as shown."""
        self.clear(self.COLOR_BUFFER_BIT)
        self.frames_presented += 1

    def describe(self) -> dict[str, Any]:
        return {
            "frames": self.frames_presented,
            "draw_calls": list(self.draw_calls),
        }
