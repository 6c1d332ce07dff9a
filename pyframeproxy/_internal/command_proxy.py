"""
Owner-side command proxy.

One CommandProxy serves one requester. It applies that requester's requests
to the shared owner resource, either immediately or, while a frame is being
collected, after the Frame Coordinator flushes the buffer. Results that
cannot cross the channel are kept in a HandleRegistry and returned as handle
references.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from typing import TYPE_CHECKING, Any, cast

from ..config import ProxyPolicyConfig, resolve_policy
from ..errors import DanglingReferenceError, ProtocolError
from .remote_handle import HandleRegistry
from .rpc_serialization import (
    BatchMessage,
    FrameBeginMessage,
    ReleaseMessage,
    ReplyMessage,
    RequesterId,
    RequestMessage,
    debugprint,
    is_handle_ref,
    is_primitive,
    make_handle_ref,
    validate_inbound,
)
from .state_cache import ResultTrace, StickyStateCache

if TYPE_CHECKING:
    from ..interfaces import MessageChannel
    from .operation_table import OperationTable

logger = logging.getLogger(__name__)


class _Skipped:
    """Marker for requests the proxy chose not to execute."""

    def __repr__(self) -> str:
        return "<skipped>"


SKIPPED = _Skipped()


class CommandProxy:
    """Mediator between one requester and the shared owner resource."""

    def __init__(
        self,
        requester_id: RequesterId,
        channel: MessageChannel,
        operations: OperationTable,
        *,
        policy: ProxyPolicyConfig | None = None,
        handles: HandleRegistry | None = None,
    ) -> None:
        self.requester_id = requester_id
        self.channel = channel
        self.operations = operations
        self.policy = resolve_policy(policy)

        self.handles = handles if handles is not None else HandleRegistry()
        self.sticky = StickyStateCache()
        self.trace = ResultTrace(self.policy.get("trace_limit"))

        self.buffering = False
        self.pending: deque[dict[str, Any]] = deque()
        self._frame_end_waiter: asyncio.Future[None] | None = None

    def __repr__(self) -> str:
        return f"<CommandProxy requester={self.requester_id!r} buffering={self.buffering}>"

    # ------------------------------------------------------------------
    # Inbound messages
    # ------------------------------------------------------------------

    def dispatch(self, message: Any) -> None:
        """Route one inbound message: resolve a frame end, buffer, or execute."""
        # Messages addressed to another requester are not ours to validate.
        if isinstance(message, dict) and message.get("requester_id", self.requester_id) != self.requester_id:
            return

        try:
            kind = validate_inbound(message)
        except ProtocolError as exc:
            logger.warning("Protocol error from requester %r, message dropped: %s", self.requester_id, exc)
            return

        debugprint(f"[proxy {self.requester_id}] recv", message)

        if kind == "frame_end":
            waiter = self._frame_end_waiter
            if waiter is not None:
                self._frame_end_waiter = None
                if not waiter.done():
                    waiter.set_result(None)
            else:
                logger.debug("Frame end from %r with no frame in progress ignored", self.requester_id)
            return

        if self.buffering:
            self.pending.append(message)
            return

        self._execute_message(message)

    async def serve(self) -> None:
        """Dispatch channel messages until the channel reports end of stream."""
        while True:
            message = await self.channel.recv()
            if message is None:
                logger.debug("Channel for requester %r closed", self.requester_id)
                break
            self.dispatch(message)
        self._cancel_waiter()

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def _execute_message(self, message: dict[str, Any]) -> None:
        if "release" in message:
            for handle_id in cast(ReleaseMessage, message)["release"]:
                self.release_handle(handle_id)
            return
        self.execute_batch(cast(RequestMessage, message))

    def execute_batch(self, message: RequestMessage | BatchMessage) -> list[Any]:
        """Execute a single request or every element of a batch, in order.

        Each request that asked for a response gets its own reply. Returns the
        results in execution order (``None`` for skipped requests).
        """
        if "messages" in message:
            requests = cast(BatchMessage, message)["messages"]
        else:
            requests = [cast(RequestMessage, message)]
        return [self._execute_and_reply(request) for request in requests]

    def _execute_and_reply(self, request: RequestMessage) -> Any:
        error: str | None = None
        try:
            result = self._execute(request)
        except DanglingReferenceError as exc:
            logger.warning(
                "Request %s (%s) from %r failed: %s",
                request.get("request_id"), request.get("name"), self.requester_id, exc,
            )
            result, error = None, str(exc)
        except Exception as exc:
            # The owner resource rejected the call; fail this request only.
            logger.exception(
                "Operation %s from %r raised", request.get("name"), self.requester_id
            )
            result, error = None, f"{type(exc).__name__}: {exc}"

        if result is SKIPPED:
            return None

        if request.get("wants_response"):
            reply = ReplyMessage(request_id=request["request_id"], result=result, error=error)
            try:
                self.channel.send(reply)
            except ConnectionError as exc:
                logger.warning("Reply %s to %r not delivered: %s", request["request_id"], self.requester_id, exc)
        return result

    def execute_one(self, request: RequestMessage) -> Any:
        """Apply one request to the owner resource and return its wire result.

        Returns ``None`` for unknown or suppressed operations.

        Raises:
            DanglingReferenceError: If an argument references a released handle.
        """
        result = self._execute(request)
        return None if result is SKIPPED else result

    def _execute(self, request: RequestMessage) -> Any:
        name = request["name"]
        wire_args = list(request.get("args") or [])
        args = [self._resolve_arg(arg) for arg in wire_args]

        func = self.operations.lookup(name)
        if func is None:
            logger.debug("Unsupported operation %s from %r ignored", name, self.requester_id)
            return SKIPPED

        if name in self.policy["suppressed_operations"]:
            debugprint(f"[proxy {self.requester_id}] suppressed", name)
            return SKIPPED

        self.sticky.record(request, self.policy)

        result = func(*args)

        if is_primitive(result):
            if result is not None and self.policy.get("record_results", True):
                self.trace.record(name, wire_args, result)
            return result

        handle_id = self.handles.store(result)
        debugprint(f"[proxy {self.requester_id}] {name} -> handle {handle_id}")
        return make_handle_ref(handle_id, result)

    def _resolve_arg(self, arg: Any) -> Any:
        if is_handle_ref(arg):
            return self.handles.resolve(arg["handle_id"])
        return arg

    def release_handle(self, handle_id: int) -> bool:
        """Free a handle and forget any sticky state that still points at it."""
        dropped = self.sticky.forget_handle(handle_id)
        if dropped:
            logger.debug(
                "Released handle %s dropped %d sticky entries for %r", handle_id, dropped, self.requester_id
            )
        return self.handles.release(handle_id)

    # ------------------------------------------------------------------
    # Frame windows
    # ------------------------------------------------------------------

    def begin_frame_collection(self, frame_time: float | None = None) -> asyncio.Future[None]:
        """Start buffering and ask the requester to render a frame.

        The buffer is seeded with the sticky state replay so that flushing it
        re-establishes this requester's mode and bindings on the shared
        resource. Returns a future resolved by the requester's frame end.

        Raises:
            RuntimeError: If a frame collection is already outstanding.
        """
        if self._frame_end_waiter is not None and not self._frame_end_waiter.done():
            raise RuntimeError(f"Requester {self.requester_id!r} already has a frame in progress")

        self.buffering = True
        self.pending.extend(self.sticky.replay())

        waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._frame_end_waiter = waiter
        if frame_time is None:
            frame_time = time.time() * 1000.0
        self.channel.send(FrameBeginMessage(name="frame", time=frame_time))
        return waiter

    def flush(self) -> int:
        """Stop buffering and execute the queued messages in order."""
        self.buffering = False
        executed = 0
        while self.pending:
            self._execute_message(self.pending.popleft())
            executed += 1
        return executed

    def discard(self) -> None:
        """Stop buffering and drop the queued messages without executing them."""
        self.buffering = False
        if self.pending:
            logger.debug("Discarding %d buffered messages for %r", len(self.pending), self.requester_id)
        self.pending.clear()
        self._cancel_waiter()

    def _cancel_waiter(self) -> None:
        waiter = self._frame_end_waiter
        self._frame_end_waiter = None
        if waiter is not None and not waiter.done():
            waiter.cancel()
