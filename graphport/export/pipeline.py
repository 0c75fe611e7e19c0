from __future__ import annotations

import hashlib
import json
import os
import tempfile
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from graphport.config import GraphportConfig, load_yaml_config
from graphport.graph import Graph, ShapeQuery
from graphport.utils.logging import get_logger, log_event

from .assembler import IR_VERSION, OPSET_VERSION, ExportResult, ModelAssembler
from .interfaces import Exporter

LOGGER = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class ExportPaths:
    model_path: Path
    manifest_path: Path | None


def _sha256_bytes(payload: bytes) -> str:
    return hashlib.sha256(payload).hexdigest()


def _resolve_paths(output_path: str, cfg: GraphportConfig) -> ExportPaths:
    target = Path(output_path).expanduser()
    if target.suffix:
        model_path = target
    else:
        model_path = target / "model.onnx"
    model_path.parent.mkdir(parents=True, exist_ok=True)

    if not cfg.output.write_manifest:
        return ExportPaths(model_path=model_path, manifest_path=None)
    manifest_name = cfg.output.manifest_name or f"{model_path.stem}.manifest.json"
    return ExportPaths(model_path=model_path, manifest_path=model_path.parent / manifest_name)


def _atomic_write(path: Path, payload: bytes) -> None:
    """Write via a sibling temp file so a failed write never leaves a usable artifact."""
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(payload)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def _manifest(result: ExportResult, model_path: Path, payload: bytes) -> dict[str, Any]:
    graph = result.model.graph
    initializer_names = {init.name for init in graph.initializer}
    return {
        "schema_version": 1,
        "created_at_utc": datetime.now(UTC).isoformat(),
        "format": "onnx",
        "ir_version": IR_VERSION,
        "opset_version": OPSET_VERSION,
        "model_version": result.model.model_version,
        "output_name": result.output_name,
        "inputs": [v.name for v in graph.input if v.name not in initializer_names],
        "initializers": sorted(initializer_names),
        "outputs": [v.name for v in graph.output],
        "node_count": len(graph.node),
        "artifacts": {
            "onnx_path": str(model_path.resolve()),
            "onnx_sha256": _sha256_bytes(payload),
            "onnx_bytes": len(payload),
        },
    }


class OnnxExporter(Exporter):
    """Export a source graph as an ONNX file plus an optional JSON manifest."""

    def __init__(
        self,
        config: GraphportConfig | None = None,
        *,
        shape_query: ShapeQuery | None = None,
    ) -> None:
        self._config = config if config is not None else GraphportConfig()
        self._assembler = ModelAssembler(shape_query=shape_query)

    @classmethod
    def from_yaml(
        cls,
        path: str | Path,
        overrides: Sequence[str] | None = None,
        *,
        shape_query: ShapeQuery | None = None,
    ) -> OnnxExporter:
        """Build an exporter from a YAML config file plus dot-path overrides."""
        return cls(load_yaml_config(path, overrides), shape_query=shape_query)

    @property
    def config(self) -> GraphportConfig:
        return self._config

    def export(
        self,
        graph: Graph,
        output_path: str,
        *,
        templates: Any,
        params: Mapping[str, Mapping[str, Any]] | None = None,
    ) -> str:
        # Build everything in memory first; nothing touches disk on failure.
        result = self._assembler.build(graph, templates, params, self._config.export)
        payload = result.serialize()

        paths = _resolve_paths(output_path, self._config)
        _atomic_write(paths.model_path, payload)

        if paths.manifest_path is not None:
            manifest = _manifest(result, paths.model_path, payload)
            _atomic_write(
                paths.manifest_path,
                (json.dumps(manifest, indent=2) + "\n").encode("utf-8"),
            )

        log_event(
            LOGGER,
            "export_written",
            fields={
                "model_path": str(paths.model_path),
                "output_name": result.output_name,
                "node_count": len(result.model.graph.node),
                "bytes": len(payload),
            },
        )
        if paths.manifest_path is not None:
            return str(paths.manifest_path)
        return str(paths.model_path)
