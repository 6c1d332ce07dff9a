"""
Message Channel & Transport Layer.

This module contains:
- RPCTransport Protocol (blocking send/recv)
- JSONSocketTransport
- LocalChannel (in-process async channel pairs)
- TransportChannel (async channel over any RPCTransport)
"""

from __future__ import annotations

import asyncio
import base64
import contextlib
import json
import logging
import socket
import struct
import threading
from typing import (
    Any,
    Protocol,
    runtime_checkable,
)

from .rpc_serialization import debugprint, prepare_for_wire

logger = logging.getLogger(__name__)

MAX_MESSAGE_BYTES = 100 * 1024 * 1024


@runtime_checkable
class RPCTransport(Protocol):
    """Protocol for blocking transport mechanisms.

    Implementations must provide thread-safe send/recv operations.
    """

    def send(self, obj: Any) -> None:
        """Send an object to the remote endpoint."""
        ...

    def recv(self) -> Any:
        """Receive an object from the remote endpoint. Blocks until available."""
        ...

    def close(self) -> None:
        """Close the transport. Further send/recv calls may fail."""
        ...


class JSONSocketTransport:
    """Transport using a stream socket with length-prefixed JSON frames.

    Only primitives, lists, dicts and bytes are encodable, which is exactly
    what may cross the owner boundary; everything else fails loudly.
    """

    def __init__(self, sock: Any) -> None:
        self._sock = sock
        self._lock = threading.Lock()
        self._recv_lock = threading.Lock()

    def send(self, obj: Any) -> None:
        """Serialize to JSON with length prefix."""
        try:
            data = json.dumps(obj, default=self._json_default).encode("utf-8")
        except TypeError as e:
            type_name = type(obj).__name__
            logger.error(
                "Cannot serialize message:\n"
                "  Type: %s\n"
                "  Error: %s\n"
                "  Resolution: return the object by handle reference instead",
                type_name,
                e,
            )
            raise TypeError(f"Cannot JSON-serialize {type_name}: {e}") from e

        msg = struct.pack(">I", len(data)) + data
        with self._lock:
            self._sock.sendall(msg)

    def recv(self) -> Any:
        """Receive length-prefixed JSON message."""
        with self._recv_lock:
            raw_len = self._recvall(4)
            if not raw_len or len(raw_len) < 4:
                raise ConnectionError("Socket closed or incomplete length header")
            msg_len = struct.unpack(">I", raw_len)[0]
            if msg_len > MAX_MESSAGE_BYTES:
                raise ValueError(f"Message too large: {msg_len} bytes")
            data = self._recvall(msg_len)
            if len(data) < msg_len:
                raise ConnectionError(f"Incomplete message: got {len(data)}/{msg_len} bytes")
            return json.loads(data.decode("utf-8"), object_hook=self._json_object_hook)

    def _recvall(self, n: int) -> bytes:
        """Receive exactly n bytes from the socket."""
        chunks = []
        remaining = n
        while remaining > 0:
            chunk = self._sock.recv(min(remaining, 65536))
            if not chunk:
                break
            chunks.append(chunk)
            remaining -= len(chunk)
        return b"".join(chunks)

    def close(self) -> None:
        """Shut down and close the underlying socket, waking any blocked reader."""
        with contextlib.suppress(Exception):
            self._sock.shutdown(socket.SHUT_RDWR)
        with contextlib.suppress(Exception):
            self._sock.close()

    def _json_default(self, obj: Any) -> Any:
        if isinstance(obj, bytes):
            return {"__pyframeproxy_bytes__": True, "data": base64.b64encode(obj).decode("ascii")}
        raise TypeError(
            f"Object of type {type(obj).__name__} is not transferable; "
            "only primitives and handle references may cross the channel"
        )

    def _json_object_hook(self, dct: dict[str, Any]) -> Any:
        if dct.get("__pyframeproxy_bytes__"):
            return base64.b64decode(dct["data"])
        return dct


class LocalChannel:
    """One end of an in-process message channel.

    Messages are delivered FIFO to the peer end. ``send`` copies the payload
    through :func:`prepare_for_wire`, so a raw owner object can never be
    handed across. Use :func:`create_channel_pair` to build connected ends.
    """

    def __init__(self, name: str = "channel") -> None:
        self.name = name
        self._inbox: asyncio.Queue[Any] = asyncio.Queue()
        self._peer: LocalChannel | None = None
        self._closed = False

    def send(self, obj: Any) -> None:
        if self._closed or self._peer is None:
            raise ConnectionError(f"{self.name}: channel is closed")
        payload = prepare_for_wire(obj)
        debugprint(f"[{self.name}] send", payload)
        self._peer._inbox.put_nowait(payload)

    async def recv(self) -> Any:
        """Wait for the next message; ``None`` marks end of stream."""
        return await self._inbox.get()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._inbox.put_nowait(None)
        peer = self._peer
        if peer is not None and not peer._closed:
            peer._closed = True
            peer._inbox.put_nowait(None)

    @property
    def closed(self) -> bool:
        return self._closed


def create_channel_pair(name: str = "channel") -> tuple[LocalChannel, LocalChannel]:
    """Return connected ``(owner_end, requester_end)`` channel endpoints."""
    owner_end = LocalChannel(f"{name}:owner")
    requester_end = LocalChannel(f"{name}:requester")
    owner_end._peer = requester_end
    requester_end._peer = owner_end
    return owner_end, requester_end


class TransportChannel:
    """Async channel over a blocking :class:`RPCTransport`.

    A daemon reader thread pulls from the transport and hands each message to
    the event loop; transport errors and end of stream surface as ``None``.
    """

    def __init__(self, transport: RPCTransport) -> None:
        self._transport = transport
        self._loop: asyncio.AbstractEventLoop | None = None
        self._queue: asyncio.Queue[Any] | None = None
        self._thread: threading.Thread | None = None
        self._stopping = False

    def start(self) -> None:
        """Start the reader thread. Must be called from the owning event loop."""
        if self._thread is not None:
            return
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        self._thread = threading.Thread(target=self._recv_thread, daemon=True)
        self._thread.start()

    def send(self, obj: Any) -> None:
        payload = prepare_for_wire(obj)
        debugprint("[transport] send", payload)
        self._transport.send(payload)

    async def recv(self) -> Any:
        if self._queue is None:
            self.start()
        assert self._queue is not None
        return await self._queue.get()

    def close(self) -> None:
        self._stopping = True
        self._transport.close()

    def _recv_thread(self) -> None:
        assert self._loop is not None and self._queue is not None
        while True:
            try:
                item = self._transport.recv()
            except Exception as exc:
                if self._stopping:
                    logger.debug("Transport reader shutting down (%s)", exc)
                else:
                    logger.error("Transport recv failed: %s", exc)
                item = None

            try:
                self._loop.call_soon_threadsafe(self._queue.put_nowait, item)
            except RuntimeError:
                logger.debug("Event loop closed; transport reader exiting")
                break

            if item is None:
                break
