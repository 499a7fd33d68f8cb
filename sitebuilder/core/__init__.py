"""Core module scanning and registration."""

from .filters import FILTER_CATEGORIES, FilterSet, merge_filters
from .module_system import (
    Binding,
    ModuleDescriptor,
    ModuleSetup,
    ModuleSetupError,
    PageRegistry,
    RegistryStateError,
    SiteBuildError,
)
from .module_loader import ModuleScanner, ScanResult, parse_module_list

__all__ = [
    "FILTER_CATEGORIES", "FilterSet", "merge_filters",
    "Binding", "ModuleDescriptor", "ModuleSetup", "ModuleSetupError", "PageRegistry",
    "RegistryStateError", "SiteBuildError",
    "ModuleScanner", "ScanResult", "parse_module_list",
]
