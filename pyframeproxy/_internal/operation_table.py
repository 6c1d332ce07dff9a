"""Name -> callable registry for the operations an owner resource exposes."""

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable, Iterable
from typing import Any

logger = logging.getLogger(__name__)


class OperationTable:
    """Operations of one owner resource, resolved once by name.

    Lookups of names that were never registered return ``None`` every time,
    independent of what attributes the resource grows later.
    """

    def __init__(self, resource: Any = None) -> None:
        self.resource = resource
        self._operations: dict[str, Callable[..., Any]] = {}
        self.constants: dict[str, int | float] = {}

    @classmethod
    def from_resource(cls, resource: Any, names: Iterable[str] | None = None) -> OperationTable:
        """Build a table from *resource*.

        Args:
            resource: The owner object operations are applied to.
            names: Exact operation names to expose. When omitted, every public
                callable attribute is exposed.

        Public ``int``/``float`` attributes become the constant table sent to
        requesters at bootstrap.
        """
        table = cls(resource)
        if names is not None:
            for name in names:
                func = getattr(resource, name, None)
                if not callable(func):
                    raise ValueError(f"{type(resource).__name__} has no operation {name!r}")
                table.register(name, func)
        for name, value in inspect.getmembers(resource):
            if name.startswith("_"):
                continue
            if names is None and callable(value) and not inspect.isclass(value):
                table.register(name, value)
            elif isinstance(value, (int, float)) and not isinstance(value, bool):
                table.constants[name] = value
        logger.debug(
            "Operation table for %s: %d operations, %d constants",
            type(resource).__name__, len(table._operations), len(table.constants),
        )
        return table

    def register(self, name: str, func: Callable[..., Any]) -> None:
        if name in self._operations:
            logger.debug("Overwriting existing operation %s", name)
        self._operations[name] = func

    def lookup(self, name: str) -> Callable[..., Any] | None:
        return self._operations.get(name)

    @property
    def operation_names(self) -> list[str]:
        return sorted(self._operations)

    def __contains__(self, name: object) -> bool:
        return name in self._operations

    def __len__(self) -> int:
        return len(self._operations)
