"""Scanner that collects what each enabled module contributes to a build."""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Optional, Sequence, Union

from .filters import FilterSet, merge_filters
from .module_system import ModuleDescriptor, ModuleSetup, PageRegistry

logger = logging.getLogger(__name__)


def parse_module_list(value: Optional[Union[str, Sequence[str]]]) -> List[str]:
    """
    Parse the enabled module list from settings.

    Accepts a comma separated string or a list. Names are stripped and
    empty entries dropped; declaration order is kept.
    """
    if not value:
        return []
    if isinstance(value, str):
        value = value.split(",")
    return [str(name).strip() for name in value if str(name).strip()]


@dataclass
class ScanResult:
    """Combined contributions of all scanned modules."""
    js: str = ""
    css: str = ""
    filters: FilterSet = field(default_factory=FilterSet)
    assets: List[ModuleDescriptor] = field(default_factory=list)
    modules: List[ModuleDescriptor] = field(default_factory=list)


class ModuleScanner:
    """Loads enabled modules in declared order and folds their contributions."""

    def __init__(self, modules_dir: Union[str, Path], handlers: PageRegistry, outputs: PageRegistry):
        """
        Initialize the scanner.

        Args:
            modules_dir: Directory holding one subdirectory per module
            handlers: Registry handler bindings are registered into
            outputs: Registry output bindings are registered into
        """
        self.modules_dir = Path(modules_dir)
        self.handlers = handlers
        self.outputs = outputs

    def run_setup(self, module: ModuleDescriptor) -> Any:
        """Run a module's setup() against the registries and return its filters."""
        return module.setup(ModuleSetup(module.name, self.handlers, self.outputs))

    def scan_module(self, name: str, result: ScanResult) -> ModuleDescriptor:
        """Load one module and append its contributions to result."""
        logger.info(f"scanning module {name} ...")
        module = ModuleDescriptor.load(self.modules_dir, name)

        if module.has_script:
            result.js += module.script
        if module.has_style:
            result.css += module.style
        if module.has_setup:
            result.filters = merge_filters(result.filters, self.run_setup(module))
        if module.has_assets:
            result.assets.append(module)

        if module.missing:
            logger.debug(f"Module {name} has no {', '.join(module.missing)}")

        result.modules.append(module)
        return module

    def scan(self, names: Sequence[str]) -> ScanResult:
        """
        Scan modules in the given order.

        Args:
            names: Enabled module names, in declaration order

        Returns:
            ScanResult with concatenated JS/CSS, merged filters and asset modules
        """
        result = ScanResult()
        for name in names:
            self.scan_module(name, result)

        logger.info(f"Scanned {len(result.modules)} modules: "
                    f"{len(result.assets)} with assets, "
                    f"{sum(1 for m in result.modules if m.has_setup)} with setup")
        return result
