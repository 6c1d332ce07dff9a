"""Error types raised by pyframeproxy."""

from __future__ import annotations


class FrameProxyError(Exception):
    """Base class for all pyframeproxy errors."""


class ProtocolError(FrameProxyError):
    """Raised for malformed messages on a requester/owner channel."""


class DanglingReferenceError(FrameProxyError):
    """Raised when a handle reference no longer resolves in the owner registry."""

    def __init__(self, handle_id: int) -> None:
        self.handle_id = handle_id
        super().__init__(f"dangling reference: handle {handle_id} is not registered")


class PeerUnresponsiveError(FrameProxyError):
    """Raised when a reply or frame-end signal does not arrive in time."""

    def __init__(self, requester_id: str | int, waited_for: str, timeout: float) -> None:
        self.requester_id = requester_id
        self.waited_for = waited_for
        self.timeout = timeout
        super().__init__(
            f"peer unresponsive: requester {requester_id!r} sent no {waited_for} within {timeout}s"
        )


class PeerDisconnectedError(FrameProxyError):
    """Raised when a requester's channel closes while the owner waits on it."""

    def __init__(self, requester_id: str | int, waited_for: str) -> None:
        self.requester_id = requester_id
        self.waited_for = waited_for
        super().__init__(f"peer disconnected: requester {requester_id!r} closed before {waited_for}")


class RemoteOperationError(FrameProxyError):
    """Raised on the requester side when the owner answers a request with an error."""

    def __init__(self, operation: str, message: str) -> None:
        self.operation = operation
        self.remote_message = message
        super().__init__(f"Owner failed {operation}: {message}")
