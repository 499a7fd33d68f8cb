"""Module descriptors and the page registries modules register into."""

import importlib.util
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)

SCRIPT_FILE = "site.js"
STYLE_FILE = "site.css"
SETUP_FILE = "setup.py"
ASSETS_DIR = "assets"

PLACEMENTS = ("before", "after")


class SiteBuildError(Exception):
    """Base class for build errors."""


class RegistryStateError(SiteBuildError):
    """Registry used in the wrong phase (queried while open, or written after finalize)."""


class ModuleSetupError(SiteBuildError):
    """A module's setup file could not be used."""


@dataclass(frozen=True)
class Binding:
    """A named handler or output module attached to a page."""
    name: str
    logged: bool = True
    source: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"logged": self.logged, "source": self.source}


@dataclass
class _PendingAdd:
    page: Optional[str]
    name: str
    logged: bool
    marker: Optional[str]
    placement: str
    source: str


class PageRegistry:
    """
    Ordered page -> bindings table for one kind of module (handler or output).

    Registration happens while the registry is open. finalize() applies the
    deferred entries (all-page bindings and marker inserts whose marker was
    not there yet) against the complete page set, switches the registry to
    finalized and returns a read-only snapshot. Lookups are only allowed
    after that.
    """

    def __init__(self, kind: str):
        self.kind = kind
        self._pages: Dict[str, List[Binding]] = {}
        self._retry_queue: List[_PendingAdd] = []
        self._all_page_queue: List[_PendingAdd] = []
        self._snapshot: Optional[Mapping[str, Tuple[Binding, ...]]] = None

    @property
    def finalized(self) -> bool:
        return self._snapshot is not None

    def _require_open(self):
        if self.finalized:
            raise RegistryStateError(f"{self.kind} registry is finalized, call reset() before registering")

    def _require_finalized(self):
        if not self.finalized:
            raise RegistryStateError(f"{self.kind} registry is still open, call finalize() first")

    def add(self, page: str, name: str, logged: bool = True, marker: Optional[str] = None,
            placement: str = "after", queue: bool = True, source: Optional[str] = None) -> bool:
        """
        Attach a module to a page.

        Args:
            page: Page identifier
            name: Module name
            logged: Whether the module only runs for logged in users
            marker: Existing module to insert relative to (appends if None)
            placement: "before" or "after" the marker
            queue: Retry at finalize time if the marker is not registered yet
            source: Module set that provides it

        Returns:
            True if the binding was inserted now
        """
        self._require_open()
        return self._insert(_PendingAdd(page, name, logged, marker, placement, source or ""), queue)

    def _insert(self, entry: _PendingAdd, queue: bool) -> bool:
        if entry.placement not in PLACEMENTS:
            raise ValueError(f"Invalid placement {entry.placement!r} for {self.kind} {entry.name}")

        bindings = self._pages.setdefault(entry.page, [])
        if any(b.name == entry.name for b in bindings):
            logger.debug(f"{self.kind} {entry.name} already registered for page {entry.page}")
            return False

        binding = Binding(entry.name, entry.logged, entry.source)
        if entry.marker is None:
            bindings.append(binding)
            return True

        names = [b.name for b in bindings]
        if entry.marker in names:
            index = names.index(entry.marker)
            if entry.placement == "after":
                index += 1
            bindings.insert(index, binding)
            return True

        if queue:
            self._retry_queue.append(entry)
        else:
            logger.warning(f"Failed to insert {self.kind} {entry.name} on page {entry.page}: "
                           f"marker {entry.marker} not found")
        return False

    def add_to_all_pages(self, name: str, logged: bool = True, marker: Optional[str] = None,
                         placement: str = "after", source: Optional[str] = None):
        """Queue a module for every page known when the registry is finalized."""
        self._require_open()
        self._all_page_queue.append(_PendingAdd(None, name, logged, marker, placement, source or ""))

    def replace(self, target: str, replacement: str, page: Optional[str] = None) -> int:
        """
        Swap a registered module for another one, keeping its position.

        Args:
            target: Module name to replace
            replacement: New module name
            page: Limit to one page (all pages if None)

        Returns:
            Number of pages changed
        """
        self._require_open()
        pages = [page] if page is not None else list(self._pages)
        changed = 0
        for p in pages:
            bindings = self._pages.get(p, [])
            for i, binding in enumerate(bindings):
                if binding.name == target:
                    bindings[i] = Binding(replacement, binding.logged, binding.source)
                    changed += 1
                    break
        if not changed:
            logger.warning(f"No {self.kind} {target} to replace with {replacement}")
        return changed

    def remove(self, page: str, name: str) -> bool:
        """Detach a module from a page."""
        self._require_open()
        bindings = self._pages.get(page, [])
        for i, binding in enumerate(bindings):
            if binding.name == name:
                del bindings[i]
                return True
        return False

    def finalize(self) -> Mapping[str, Tuple[Binding, ...]]:
        """
        Apply deferred registrations and freeze the registry.

        All-page entries are added to every page registered so far, in the
        order they were queued. Marker inserts are then retried until no
        more of them succeed; the rest are logged and dropped.

        Returns:
            Read-only mapping of page -> ordered bindings
        """
        self._require_open()

        for entry in self._all_page_queue:
            for page in list(self._pages):
                self._insert(_PendingAdd(page, entry.name, entry.logged, entry.marker,
                                         entry.placement, entry.source), queue=True)
        self._all_page_queue = []

        progress = True
        while self._retry_queue and progress:
            pending, self._retry_queue = self._retry_queue, []
            progress = False
            for entry in pending:
                if self._insert(entry, queue=True):
                    progress = True

        for entry in self._retry_queue:
            logger.warning(f"Failed to insert {self.kind} {entry.name} on page {entry.page}: "
                           f"marker {entry.marker} never registered")
        self._retry_queue = []

        self._snapshot = MappingProxyType({page: tuple(bindings) for page, bindings in self._pages.items()})
        logger.debug(f"Finalized {self.kind} registry with {len(self._snapshot)} pages")
        return self._snapshot

    def dump(self) -> Mapping[str, Tuple[Binding, ...]]:
        """Get the finalized page -> bindings mapping."""
        self._require_finalized()
        return self._snapshot

    def get_for_page(self, page: str) -> Tuple[Binding, ...]:
        """Get the finalized bindings for one page."""
        self._require_finalized()
        return self._snapshot.get(page, ())

    def reset(self):
        """Drop everything and reopen the registry for another build."""
        self._pages = {}
        self._retry_queue = []
        self._all_page_queue = []
        self._snapshot = None


def bindings_to_dict(snapshot: Mapping[str, Tuple[Binding, ...]]) -> Dict[str, Dict[str, Dict[str, Any]]]:
    """Plain nested dicts for a registry snapshot, order preserved."""
    return {
        page: {binding.name: binding.to_dict() for binding in bindings}
        for page, bindings in snapshot.items()
    }


class ModuleSetup:
    """API handed to a module's setup() function."""

    def __init__(self, module_name: str, handlers: PageRegistry, outputs: PageRegistry):
        self.module_name = module_name
        self.handlers = handlers
        self.outputs = outputs

    def add_handler(self, page: str, name: str, logged: bool = True, marker: Optional[str] = None,
                    placement: str = "after", queue: bool = True, source: Optional[str] = None) -> bool:
        return self.handlers.add(page, name, logged, marker, placement, queue, source or self.module_name)

    def add_output(self, page: str, name: str, logged: bool = True, marker: Optional[str] = None,
                   placement: str = "after", queue: bool = True, source: Optional[str] = None) -> bool:
        return self.outputs.add(page, name, logged, marker, placement, queue, source or self.module_name)

    def add_handler_to_all_pages(self, name: str, logged: bool = True, marker: Optional[str] = None,
                                 placement: str = "after", source: Optional[str] = None):
        self.handlers.add_to_all_pages(name, logged, marker, placement, source or self.module_name)

    def add_output_to_all_pages(self, name: str, logged: bool = True, marker: Optional[str] = None,
                                placement: str = "after", source: Optional[str] = None):
        self.outputs.add_to_all_pages(name, logged, marker, placement, source or self.module_name)

    def replace_handler(self, target: str, replacement: str, page: Optional[str] = None) -> int:
        return self.handlers.replace(target, replacement, page)

    def replace_output(self, target: str, replacement: str, page: Optional[str] = None) -> int:
        return self.outputs.replace(target, replacement, page)


def _readable_file(path: Path) -> bool:
    return path.is_file() and os.access(path, os.R_OK)


def _load_setup(module_name: str, path: Path) -> Callable[[ModuleSetup], Any]:
    spec = importlib.util.spec_from_file_location(f"sitebuilder_module_{module_name}_setup", path)
    if spec is None or spec.loader is None:
        raise ModuleSetupError(f"Cannot load setup file {path}")
    setup_module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(setup_module)

    setup = getattr(setup_module, "setup", None)
    if not callable(setup):
        raise ModuleSetupError(f"Module {module_name} setup file {path} does not define setup()")
    return setup


@dataclass
class ModuleDescriptor:
    """What one enabled module contributes to the build."""
    name: str
    path: Path
    script: Optional[str] = None
    style: Optional[str] = None
    setup: Optional[Callable[[ModuleSetup], Any]] = None
    asset_dir: Optional[Path] = None
    missing: List[str] = field(default_factory=list)

    @property
    def has_script(self) -> bool:
        return self.script is not None

    @property
    def has_style(self) -> bool:
        return self.style is not None

    @property
    def has_setup(self) -> bool:
        return self.setup is not None

    @property
    def has_assets(self) -> bool:
        return self.asset_dir is not None

    @classmethod
    def load(cls, modules_dir: Path, name: str) -> "ModuleDescriptor":
        """
        Load every optional part of a module.

        Parts that are absent or unreadable are left as None and listed in
        `missing`; that is never an error.

        Args:
            modules_dir: Directory holding one subdirectory per module
            name: Module name

        Returns:
            ModuleDescriptor
        """
        path = Path(modules_dir) / name
        descriptor = cls(name=name, path=path)

        script_path = path / SCRIPT_FILE
        if _readable_file(script_path):
            descriptor.script = script_path.read_text(encoding="utf-8", errors="surrogateescape")
        else:
            descriptor.missing.append(SCRIPT_FILE)

        style_path = path / STYLE_FILE
        if _readable_file(style_path):
            descriptor.style = style_path.read_text(encoding="utf-8", errors="surrogateescape")
        else:
            descriptor.missing.append(STYLE_FILE)

        setup_path = path / SETUP_FILE
        if _readable_file(setup_path):
            descriptor.setup = _load_setup(name, setup_path)
        else:
            descriptor.missing.append(SETUP_FILE)

        asset_path = path / ASSETS_DIR
        if asset_path.is_dir() and os.access(asset_path, os.R_OK):
            descriptor.asset_dir = asset_path
        else:
            descriptor.missing.append(ASSETS_DIR)

        return descriptor

    def __repr__(self):
        caps = [cap for cap, present in (("script", self.has_script), ("style", self.has_style),
                                         ("setup", self.has_setup), ("assets", self.has_assets)) if present]
        return f"<ModuleDescriptor: {self.name} ({', '.join(caps) or 'empty'})>"
