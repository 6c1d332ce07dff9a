"""
Requester-side call stubs and message dispatch.

A RequesterClient owns everything one requester context needs to talk to the
owner: the request id counter, the table of replies still outstanding, and
the operation namespace built from the owner's bootstrap message.
"""

from __future__ import annotations

import asyncio
import inspect
import itertools
import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

from ..errors import PeerUnresponsiveError, RemoteOperationError
from ..shared import RequesterBase
from .rpc_serialization import (
    FrameEndMessage,
    RequesterId,
    RequestMessage,
    debugprint,
    rehydrate,
)

if TYPE_CHECKING:
    from ..interfaces import MessageChannel

logger = logging.getLogger(__name__)


class OperationStub:
    """Callable standing in for one owner operation."""

    __slots__ = ("_client", "name")

    def __init__(self, client: RequesterClient, name: str) -> None:
        self._client = client
        self.name = name

    def __call__(self, *args: Any) -> asyncio.Future[Any]:
        """Send the request and return a future for its result."""
        return self._client.invoke(self.name, args)

    def notify(self, *args: Any) -> None:
        """Send the request without asking for a reply."""
        self._client.send_request(self.name, args, wants_response=False)

    async def call(self, *args: Any, timeout: float | None = None) -> Any:
        return await self._client.call(self.name, *args, timeout=timeout)

    def __repr__(self) -> str:
        return f"<OperationStub {self.name}>"


class OperationNamespace:
    """Attribute access to the owner's operations (as stubs) and constants."""

    def __init__(
        self,
        client: RequesterClient,
        operation_names: Iterable[str],
        constants: dict[str, Any],
    ) -> None:
        self._operation_names = tuple(operation_names)
        self._constant_names = tuple(constants)
        for name in self._operation_names:
            setattr(self, name, client.make_stub(name))
        for name, value in constants.items():
            setattr(self, name, value)

    @property
    def operation_names(self) -> tuple[str, ...]:
        return self._operation_names

    @property
    def constant_names(self) -> tuple[str, ...]:
        return self._constant_names

    def __contains__(self, name: object) -> bool:
        return name in self._operation_names or name in self._constant_names

    def __repr__(self) -> str:
        return (
            f"<OperationNamespace operations={len(self._operation_names)} "
            f"constants={len(self._constant_names)}>"
        )


class RequesterClient:
    """Requester end of one channel to the owner."""

    def __init__(
        self,
        requester_id: RequesterId,
        channel: MessageChannel,
        requester: RequesterBase | None = None,
        *,
        reply_timeout: float | None = None,
    ) -> None:
        self.requester_id = requester_id
        self.channel = channel
        self.requester = requester if requester is not None else RequesterBase()
        self.reply_timeout = reply_timeout

        self.pending: dict[int, tuple[str, asyncio.Future[Any]]] = {}
        self._ids = itertools.count()
        self.ops: OperationNamespace | None = None
        self.frames_rendered = 0

        self._bootstrapped = asyncio.Event()
        self._tasks: set[asyncio.Task[Any]] = set()
        self.requester._initialize_client(self)

    def make_stub(self, name: str) -> OperationStub:
        return OperationStub(self, name)

    # ------------------------------------------------------------------
    # Outbound requests
    # ------------------------------------------------------------------

    def send_request(
        self, name: str, args: Iterable[Any], *, wants_response: bool
    ) -> tuple[int, asyncio.Future[Any] | None]:
        """Send one request; register a pending future when a reply is wanted."""
        request_id = next(self._ids)
        future: asyncio.Future[Any] | None = None
        if wants_response:
            future = asyncio.get_running_loop().create_future()
            self.pending[request_id] = (name, future)

        message = RequestMessage(
            requester_id=self.requester_id,
            request_id=request_id,
            name=name,
            args=list(args),
            wants_response=wants_response,
        )
        try:
            self.channel.send(message)
        except Exception:
            self.pending.pop(request_id, None)
            raise
        return request_id, future

    def invoke(self, name: str, args: Iterable[Any]) -> asyncio.Future[Any]:
        """Send a request and return an awaitable for its result.

        With a configured ``reply_timeout`` the awaitable fails with
        :class:`PeerUnresponsiveError` once the timeout expires.
        """
        request_id, future = self.send_request(name, args, wants_response=True)
        assert future is not None
        if self.reply_timeout is None:
            return future
        return asyncio.ensure_future(self._await_reply(request_id, name, future, self.reply_timeout))

    async def call(self, name: str, *args: Any, timeout: float | None = None) -> Any:
        request_id, future = self.send_request(name, args, wants_response=True)
        assert future is not None
        if timeout is None:
            timeout = self.reply_timeout
        if timeout is None:
            return await future
        return await self._await_reply(request_id, name, future, timeout)

    async def _await_reply(
        self, request_id: int, name: str, future: asyncio.Future[Any], timeout: float
    ) -> Any:
        try:
            return await asyncio.wait_for(future, timeout)
        except asyncio.TimeoutError:
            self.pending.pop(request_id, None)
            raise PeerUnresponsiveError(self.requester_id, f"reply to {name}", timeout) from None

    def release(self, *handles: Any) -> None:
        """Ask the owner to drop the objects behind *handles*."""
        ids = [h.handle_id for h in handles]
        if ids:
            self.channel.send({"requester_id": self.requester_id, "release": ids})

    # ------------------------------------------------------------------
    # Inbound messages
    # ------------------------------------------------------------------

    def handle_message(self, message: Any) -> None:
        """Dispatch one owner message: bootstrap, reply, or frame begin."""
        if not isinstance(message, dict):
            logger.warning("Requester %r dropped non-mapping message %r", self.requester_id, message)
            return

        debugprint(f"[requester {self.requester_id}] recv", message)

        name = message.get("name")
        if name == "bootstrap":
            self.ops = OperationNamespace(
                self, message.get("operation_names", []), message.get("constants", {})
            )
            if self.reply_timeout is None and message.get("reply_timeout") is not None:
                self.reply_timeout = message["reply_timeout"]
            self._spawn(self._run_bootstrap())
        elif name == "frame":
            self._spawn(self._run_frame(message.get("time", 0.0)))
        elif "request_id" in message:
            self._resolve_reply(message)
        else:
            logger.warning("Requester %r dropped unknown message %r", self.requester_id, message)

    def _resolve_reply(self, message: dict[str, Any]) -> None:
        entry = self.pending.pop(message["request_id"], None)
        if entry is None:
            logger.debug("Reply for unknown request %s ignored", message["request_id"])
            return
        name, future = entry
        if future.done():
            return
        error = message.get("error")
        if error:
            future.set_exception(RemoteOperationError(name, error))
        else:
            future.set_result(rehydrate(message.get("result")))

    async def _run_bootstrap(self) -> None:
        assert self.ops is not None
        try:
            await self._call_hook(self.requester.on_bootstrap, self.ops)
        except Exception:
            logger.exception("Requester %r bootstrap hook failed", self.requester_id)
        finally:
            self._bootstrapped.set()

    async def _run_frame(self, frame_time: float) -> None:
        # Until bootstrap completes, frames are answered without rendering so the
        # owner can flush the bootstrap calls that are buffered in the meantime.
        if self._bootstrapped.is_set():
            try:
                await self._call_hook(self.requester.render, frame_time)
            except Exception:
                logger.exception("Requester %r failed to render frame", self.requester_id)
            self.frames_rendered += 1
        else:
            logger.debug("Requester %r skipped frame before bootstrap finished", self.requester_id)
        try:
            self.channel.send(FrameEndMessage(requester_id=self.requester_id, is_frame_end=True))
        except ConnectionError as exc:
            logger.debug("Requester %r could not signal frame end: %s", self.requester_id, exc)

    @staticmethod
    async def _call_hook(hook: Any, *args: Any) -> None:
        result = hook(*args)
        if inspect.isawaitable(result):
            await result

    def _spawn(self, coro: Any) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def run(self) -> None:
        """Receive owner messages until end of stream."""
        while True:
            message = await self.channel.recv()
            if message is None:
                logger.debug("Requester %r channel closed", self.requester_id)
                break
            self.handle_message(message)
        self._cancel_pending()

    def close(self) -> None:
        """Cancel every outstanding request and close the channel."""
        self._cancel_pending()
        for task in list(self._tasks):
            task.cancel()
        self.channel.close()

    def _cancel_pending(self) -> None:
        pending, self.pending = self.pending, {}
        for _, future in pending.values():
            if not future.done():
                future.cancel()
