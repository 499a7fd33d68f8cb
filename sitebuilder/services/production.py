"""Build the production copy of the site."""

import logging
import re
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Sequence, Set

from sitebuilder.config import BuildPaths
from sitebuilder.core.module_system import ASSETS_DIR, ModuleDescriptor, SiteBuildError
from sitebuilder.services.compression import CompiledArtifact
from sitebuilder.services.crypto import unique_id

logger = logging.getLogger(__name__)

# define('NAME', value) with a quoted string or a bare literal as the value.
# A bare value stops at the first ")", so call expressions are not matched whole.
DEFINE_RE = re.compile(
    r"""define\(\s*(?P<quote>['"])(?P<name>\w+)(?P=quote)\s*,\s*"""
    r"""(?P<value>'(?:[^'\\]|\\.)*'|"(?:[^"\\]|\\.)*"|[^)]*?)\s*\)"""
)
QUOTED_RE = re.compile(r"'(?:[^'\\]|\\.)*'" r'|"(?:[^"\\]|\\.)*"')


class TemplateError(SiteBuildError):
    """A value cannot be written into the entry template."""


def render_literal(value: Any) -> str:
    """Render a Python value as a literal for the entry file."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, str):
        return "'" + value.replace("\\", "\\\\").replace("'", "\\'") + "'"
    raise TemplateError(f"Unsupported template value {value!r}")


class EntryTemplate:
    """Entry file whose define() statements are set by name."""

    def __init__(self, text: str):
        self.text = text

    @classmethod
    def from_file(cls, path: Path) -> "EntryTemplate":
        return cls(Path(path).read_text(encoding="utf-8"))

    def fields(self) -> List[str]:
        """Names of every define() in the template, in order."""
        return [m.group("name") for m in DEFINE_RE.finditer(self.text)]

    def render(self, values: Mapping[str, Any]) -> str:
        """
        Replace the value of each named define(), whatever it currently is.

        A named define() must hold a literal; an expression with parentheses
        cannot be replaced safely and raises TemplateError.

        Args:
            values: Field name -> new value (str, bool or int)

        Returns:
            Rendered text
        """
        literals = {name: render_literal(value) for name, value in values.items()}
        found: Set[str] = set()

        def substitute(match):
            name = match.group("name")
            if name not in literals:
                return match.group(0)
            found.add(name)
            value = match.group("value")
            if not QUOTED_RE.fullmatch(value) and value.count("(") != value.count(")"):
                raise TemplateError(f"Entry template field {name} holds an expression, not a literal: "
                                    f"{match.group(0)}")
            start, end = match.span("value")
            offset = match.start()
            whole = match.group(0)
            return whole[:start - offset] + literals[name] + whole[end - offset:]

        rendered = DEFINE_RE.sub(substitute, self.text)

        for name in values:
            if name not in found:
                logger.warning(f"Entry template has no {name} field")
        return rendered


@dataclass
class ProductionTree:
    """Result of building the production directory."""
    output_dir: Path
    entry_file: Path
    cache_id: str
    site_id: str
    copied: List[Path] = field(default_factory=list)
    asset_dirs: List[Path] = field(default_factory=list)


def mirror_path(module: ModuleDescriptor, paths: BuildPaths) -> Path:
    """Where a module's asset directory lands inside the output directory."""
    try:
        relative = module.asset_dir.resolve().relative_to(paths.root)
    except ValueError:
        relative = Path(paths.modules.name) / module.name / ASSETS_DIR
    return paths.output / relative


def copy_assets(module: ModuleDescriptor, paths: BuildPaths) -> List[Path]:
    """Copy the files directly inside a module's asset directory (not subdirectories)."""
    target = mirror_path(module, paths)
    target.mkdir(parents=True, exist_ok=True)

    copied = []
    for entry in sorted(module.asset_dir.iterdir()):
        if not entry.is_file():
            logger.debug(f"Skipping {entry} (not a file)")
            continue
        copied.append(Path(shutil.copyfile(entry, target / entry.name)))
    logger.debug(f"Copied {len(copied)} assets for module {module.name}")
    return copied


def entry_values(paths: BuildPaths, cache_bytes: int = 32, site_bytes: int = 64) -> Dict[str, Any]:
    """Fresh values for the production entry file."""
    return {
        "APP_PATH": str(paths.root) + "/",
        "CACHE_ID": unique_id(cache_bytes),
        "SITE_ID": unique_id(site_bytes),
        "DEBUG_MODE": False,
    }


def create_production_site(artifact: CompiledArtifact, assets: Sequence[ModuleDescriptor],
                           paths: BuildPaths, cache_bytes: int = 32,
                           site_bytes: int = 64) -> ProductionTree:
    """
    Create the deployable site directory.

    Copies the compiled site.js/site.css, writes the entry file with new
    cache and site identifiers and debug mode off, and mirrors every
    module's asset files. Filesystem errors are not caught.

    Args:
        artifact: Compiled JS/CSS of this build
        assets: Modules that have an asset directory
        paths: Build layout
        cache_bytes: Entropy of the cache identifier
        site_bytes: Entropy of the site identifier

    Returns:
        ProductionTree
    """
    logger.info("creating production site")
    paths.output.mkdir(parents=True, exist_ok=True)

    copied: List[Path] = []
    for source in (artifact.css_path, artifact.js_path):
        if source is not None:
            copied.append(Path(shutil.copyfile(source, paths.output / source.name)))

    values = entry_values(paths, cache_bytes, site_bytes)
    template = EntryTemplate.from_file(paths.entry)
    entry_file = paths.output / paths.entry.name
    entry_file.write_text(template.render(values), encoding="utf-8")
    logger.info(f"{entry_file} written")

    asset_dirs: List[Path] = []
    for module in assets:
        copied.extend(copy_assets(module, paths))
        asset_dirs.append(mirror_path(module, paths))

    return ProductionTree(
        output_dir=paths.output,
        entry_file=entry_file,
        cache_id=values["CACHE_ID"],
        site_id=values["SITE_ID"],
        copied=copied,
        asset_dirs=asset_dirs,
    )
