from __future__ import annotations

from collections.abc import Mapping
from dataclasses import asdict, dataclass, field
from typing import Any

DEFAULT_DOC_STRING = "A graphport model"


@dataclass(slots=True)
class ExportOptions:
    """Caller-supplied metadata written into the model envelope."""

    version: int = 1
    doc_string: str = DEFAULT_DOC_STRING

    def validate(self) -> None:
        if isinstance(self.version, bool) or not isinstance(self.version, int):
            raise ValueError("export.version must be an integer")
        if self.version < 0:
            raise ValueError("export.version must be >= 0")
        if not isinstance(self.doc_string, str):
            raise ValueError("export.doc_string must be a string")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> ExportOptions:
        parsed = {k: v for k, v in dict(data or {}).items() if v is not None}
        unknown = set(parsed) - {"version", "doc_string"}
        if unknown:
            raise ValueError(f"unknown export options: {', '.join(sorted(unknown))}")
        options = cls(**parsed)
        options.validate()
        return options


@dataclass(slots=True)
class OutputConfig:
    write_manifest: bool = True
    manifest_name: str = ""

    def validate(self) -> None:
        if self.manifest_name and not self.manifest_name.endswith(".json"):
            raise ValueError("output.manifest_name must end with .json")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> OutputConfig:
        parsed = dict(data)
        if "write_manifest" in parsed:
            parsed["write_manifest"] = bool(parsed["write_manifest"])
        return cls(**parsed)


@dataclass(slots=True)
class GraphportConfig:
    export: ExportOptions = field(default_factory=ExportOptions)
    output: OutputConfig = field(default_factory=OutputConfig)

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        self.export.validate()
        self.output.validate()

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> GraphportConfig:
        return cls(
            export=ExportOptions.from_dict(data.get("export", {})),
            output=OutputConfig.from_dict(data.get("output", {})),
        )
