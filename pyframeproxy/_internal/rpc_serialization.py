"""
Wire Protocol & Serialization.

This module contains:
1. Data Structures: the message TypedDicts exchanged between requester and owner
2. Serialization Logic: prepare_for_wire, rehydrate, handle reference helpers
3. Validation: validate_inbound for owner-bound messages
"""

from __future__ import annotations

import logging
import os
from typing import Any, Literal, TypedDict, Union

from ..errors import ProtocolError
from .remote_handle import RemoteObjectHandle

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------

RequesterId = Union[str, int]

PRIMITIVE_TYPES = (type(None), bool, int, float, str, bytes)


class HandleRef(TypedDict):
    is_handle: Literal[True]
    handle_id: int
    type_name: str


class BootstrapMessage(TypedDict):
    name: Literal["bootstrap"]
    operation_names: list[str]
    constants: dict[str, Any]
    reply_timeout: float | None


class RequestMessage(TypedDict, total=False):
    requester_id: RequesterId
    request_id: int
    name: str
    args: list[Any]
    wants_response: bool


class BatchMessage(TypedDict):
    requester_id: RequesterId
    messages: list[RequestMessage]


class ReleaseMessage(TypedDict):
    requester_id: RequesterId
    release: list[int]


class ReplyMessage(TypedDict):
    request_id: int
    result: Any
    error: str | None


class FrameBeginMessage(TypedDict):
    name: Literal["frame"]
    time: float


class FrameEndMessage(TypedDict):
    requester_id: RequesterId
    is_frame_end: Literal[True]


InboundMessage = Union[RequestMessage, BatchMessage, ReleaseMessage, FrameEndMessage]
OutboundMessage = Union[BootstrapMessage, ReplyMessage, FrameBeginMessage]

InboundKind = Literal["request", "batch", "release", "frame_end"]


# ---------------------------------------------------------------------------
# Globals / Debug Logic
# ---------------------------------------------------------------------------

# Verbose per-message logging (set via PYFRAMEPROXY_DEBUG_RPC=1)
debug_all_messages = bool(os.environ.get("PYFRAMEPROXY_DEBUG_RPC"))


def debugprint(*args: Any) -> None:
    if debug_all_messages:
        logger.debug(" ".join(str(arg) for arg in args))


# ---------------------------------------------------------------------------
# Serialization Functions
# ---------------------------------------------------------------------------

def is_primitive(value: Any) -> bool:
    return isinstance(value, PRIMITIVE_TYPES)


def is_handle_ref(value: Any) -> bool:
    return isinstance(value, dict) and value.get("is_handle") is True and "handle_id" in value


def make_handle_ref(handle_id: int, obj: Any = None) -> HandleRef:
    return HandleRef(is_handle=True, handle_id=handle_id, type_name=type(obj).__name__)


def prepare_for_wire(obj: Any) -> Any:
    """Recursively copy *obj* into a form that may cross the channel.

    Primitives pass through, containers are copied (tuples become lists),
    RemoteObjectHandle instances become HandleRef dicts. Anything else is a
    non-transferable object and fails loudly.
    """
    if is_primitive(obj):
        return obj

    if isinstance(obj, RemoteObjectHandle):
        return HandleRef(is_handle=True, handle_id=obj.handle_id, type_name=obj.type_name)

    if isinstance(obj, dict):
        return {k: prepare_for_wire(v) for k, v in obj.items()}

    if isinstance(obj, (list, tuple)):
        return [prepare_for_wire(item) for item in obj]

    raise TypeError(
        f"Object of type {type(obj).__name__} cannot cross the channel. "
        "Only primitive values and handle references are transferable."
    )


def rehydrate(obj: Any) -> Any:
    """Turn HandleRef dicts received by a requester back into RemoteObjectHandle."""
    if is_handle_ref(obj):
        return RemoteObjectHandle(obj["handle_id"], obj.get("type_name", "object"))

    if isinstance(obj, dict):
        return {k: rehydrate(v) for k, v in obj.items()}

    if isinstance(obj, list):
        return [rehydrate(item) for item in obj]

    return obj


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def _validate_request(message: Any, where: str) -> None:
    if not isinstance(message, dict):
        raise ProtocolError(f"{where}: expected a mapping, got {type(message).__name__}")
    request_id = message.get("request_id")
    if not isinstance(request_id, int) or isinstance(request_id, bool):
        raise ProtocolError(f"{where}: missing or non-integer 'request_id'")
    if not isinstance(message.get("name"), str):
        raise ProtocolError(f"{where}: missing or non-string 'name'")
    if not isinstance(message.get("args", []), (list, tuple)):
        raise ProtocolError(f"{where}: 'args' must be a list")
    if not isinstance(message.get("wants_response", False), bool):
        raise ProtocolError(f"{where}: 'wants_response' must be a bool")


def validate_inbound(message: Any) -> InboundKind:
    """Classify an owner-bound message, rejecting it whole if it is malformed.

    Raises:
        ProtocolError: If a required field is missing or has the wrong type.
    """
    if not isinstance(message, dict):
        raise ProtocolError(f"Message must be a mapping, got {type(message).__name__}")
    if "requester_id" not in message:
        raise ProtocolError("Message is missing 'requester_id'")

    if message.get("is_frame_end"):
        return "frame_end"

    if "release" in message:
        ids = message["release"]
        if not isinstance(ids, list) or not all(
            isinstance(i, int) and not isinstance(i, bool) for i in ids
        ):
            raise ProtocolError("'release' must be a list of integer handle ids")
        return "release"

    if "messages" in message:
        batch = message["messages"]
        if not isinstance(batch, list):
            raise ProtocolError("'messages' must be a list of requests")
        for index, item in enumerate(batch):
            _validate_request(item, f"batch element {index}")
        return "batch"

    _validate_request(message, "request")
    return "request"
