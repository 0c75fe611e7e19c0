from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Protocol

from graphport.graph import Graph


class Exporter(Protocol):
    """Public export interface for graph serialization."""

    def export(
        self,
        graph: Graph,
        output_path: str,
        *,
        templates: Any,
        params: Mapping[str, Mapping[str, Any]] | None = None,
    ) -> str:
        """Export graph artifacts and return destination path."""
        ...
