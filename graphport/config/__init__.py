from .io import apply_overrides, load_yaml_config
from .schema import DEFAULT_DOC_STRING, ExportOptions, GraphportConfig, OutputConfig

__all__ = [
    "DEFAULT_DOC_STRING",
    "ExportOptions",
    "GraphportConfig",
    "OutputConfig",
    "load_yaml_config",
    "apply_overrides",
]
