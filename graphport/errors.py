from __future__ import annotations

from typing import Any


class ExportError(Exception):
    """Base class for every failure that aborts an export.

    Carries the node id, operator kind and offending option when known.
    """

    def __init__(
        self,
        message: str,
        *,
        node_id: Any = None,
        op: str | None = None,
        option: str | None = None,
    ) -> None:
        self.node_id = node_id
        self.op = op
        self.option = option
        super().__init__(self._format(message))

    def _format(self, message: str) -> str:
        context = []
        if self.node_id is not None:
            context.append(f"node_id={self.node_id!r}")
        if self.op is not None:
            context.append(f"op={self.op!r}")
        if self.option is not None:
            context.append(f"option={self.option!r}")
        if not context:
            return message
        return f"{message} ({', '.join(context)})"


class ValidationError(ExportError, ValueError):
    """Option or input value does not fit the graph it is applied to."""


class GraphError(ExportError, ValueError):
    """Source graph is malformed (dangling reference or cycle)."""


class UnsupportedOperatorError(ExportError, NotImplementedError):
    """Operator kind has no lowering rule."""


class UnsupportedDtypeError(ExportError, TypeError):
    """Tensor element type has no entry in the export dtype table."""


class InvariantError(ExportError, RuntimeError):
    """Internal traversal invariant was violated."""


__all__ = [
    "ExportError",
    "ValidationError",
    "GraphError",
    "UnsupportedOperatorError",
    "UnsupportedDtypeError",
    "InvariantError",
]
