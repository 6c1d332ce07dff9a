"""Sticky state cache and diagnostic result trace kept per command proxy."""

from __future__ import annotations

from collections import deque
from collections.abc import Hashable, Iterable, MutableSequence
from typing import TYPE_CHECKING, Any, TypedDict

from .rpc_serialization import is_handle_ref

if TYPE_CHECKING:
    from ..config import ProxyPolicyConfig
    from .rpc_serialization import RequestMessage


def target_key(value: Any) -> Hashable:
    """Return a hashable key for the target argument of a targeted setter."""
    if is_handle_ref(value):
        return ("handle", value["handle_id"])
    if isinstance(value, list):
        return tuple(target_key(v) for v in value)
    if isinstance(value, dict):
        return tuple(sorted((k, target_key(v)) for k, v in value.items()))
    return value


def _references(value: Any, handle_id: int) -> bool:
    if is_handle_ref(value):
        return value["handle_id"] == handle_id
    if isinstance(value, list):
        return any(_references(v, handle_id) for v in value)
    if isinstance(value, dict):
        return any(_references(v, handle_id) for v in value.values())
    return False


class StickyStateCache:
    """Most recent state-setting requests, replayed at the start of each frame.

    Holds one mode-setter request plus one request per
    ``(operation name, target argument)`` pair. Re-recording a key replaces
    the previous request but keeps the key's original replay position.
    """

    def __init__(self) -> None:
        self.mode_setter: RequestMessage | None = None
        self.targeted: dict[tuple[str, Hashable], RequestMessage] = {}

    def record(self, request: RequestMessage, policy: ProxyPolicyConfig) -> None:
        name = request["name"]
        if name == policy.get("mode_setter"):
            self.mode_setter = self._snapshot(request)
        elif name in policy["targeted_setters"]:
            args = request.get("args") or []
            target = target_key(args[0]) if args else None
            self.targeted[(name, target)] = self._snapshot(request)

    def replay(self) -> list[RequestMessage]:
        """Return the requests to re-run, mode setter first."""
        entries: list[RequestMessage] = []
        if self.mode_setter is not None:
            entries.append(self.mode_setter)
        entries.extend(self.targeted.values())
        return entries

    def forget_handle(self, handle_id: int) -> int:
        """Drop every entry whose arguments reference *handle_id*; return how many."""
        dropped = 0
        if self.mode_setter is not None and _references(self.mode_setter.get("args"), handle_id):
            self.mode_setter = None
            dropped += 1
        stale = [key for key, entry in self.targeted.items() if _references(entry.get("args"), handle_id)]
        for key in stale:
            del self.targeted[key]
        return dropped + len(stale)

    def clear(self) -> None:
        self.mode_setter = None
        self.targeted.clear()

    def __len__(self) -> int:
        return len(self.targeted) + (1 if self.mode_setter is not None else 0)

    @staticmethod
    def _snapshot(request: RequestMessage) -> RequestMessage:
        # Replays must not produce a second reply for the original request.
        snapshot = dict(request)
        snapshot["args"] = list(request.get("args") or [])
        snapshot["wants_response"] = False
        return snapshot  # type: ignore[return-value]


class TraceEntry(TypedDict):
    args: list[Any]
    result: Any


class ResultTrace:
    """Append-only record of primitive results, per operation name.

    Observational only: nothing reads it back to skip execution.
    """

    def __init__(self, limit: int | None = None) -> None:
        self._limit = limit
        self._entries: dict[str, MutableSequence[TraceEntry]] = {}

    def record(self, name: str, args: Iterable[Any], result: Any) -> None:
        entries = self._entries.get(name)
        if entries is None:
            entries = [] if self._limit is None else deque(maxlen=self._limit)
            self._entries[name] = entries
        entries.append(TraceEntry(args=list(args), result=result))

    def entries(self, name: str) -> list[TraceEntry]:
        return list(self._entries.get(name, ()))

    def operations(self) -> list[str]:
        return list(self._entries)

    def __len__(self) -> int:
        return sum(len(v) for v in self._entries.values())
