"""Build services: compression, config persistence and the production tree."""

from .compression import (
    CommandCompressor,
    CommandResult,
    CompiledArtifact,
    CompressionError,
    Compressor,
    WhitespaceCompressor,
    combine_includes,
    resolve_compressors,
    run_command,
)
from .config_writer import build_config_map, load_config_file, write_config_file, write_config_map
from .crypto import unique_id
from .production import EntryTemplate, ProductionTree, TemplateError, create_production_site

__all__ = [
    "CommandCompressor", "CommandResult", "CompiledArtifact", "CompressionError", "Compressor",
    "WhitespaceCompressor", "combine_includes", "resolve_compressors", "run_command",
    "build_config_map", "load_config_file", "write_config_file", "write_config_map",
    "unique_id",
    "EntryTemplate", "ProductionTree", "TemplateError", "create_production_site",
]
