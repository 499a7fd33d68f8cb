"""Site build pipeline and command line entry point."""

import argparse
import logging
import logging.handlers
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from sitebuilder import __version__
from sitebuilder.config import BuildPaths, get, load_config, load_settings
from sitebuilder.core import ModuleScanner, PageRegistry, ScanResult, parse_module_list
from sitebuilder.services.compression import (
    CommandRunner,
    CompiledArtifact,
    combine_includes,
    resolve_compressors,
    run_command,
)
from sitebuilder.services.config_writer import write_config_file, write_config_map
from sitebuilder.services.production import ProductionTree, create_production_site

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@dataclass
class BuildResult:
    """Everything one build produced."""
    scan: ScanResult
    artifact: CompiledArtifact
    config: Dict[str, Any]
    config_path: Path
    production: ProductionTree


def build_config(paths: BuildPaths, settings: Optional[Dict[str, Any]] = None,
                 handlers: Optional[PageRegistry] = None, outputs: Optional[PageRegistry] = None,
                 config_map: bool = False, timeout: Optional[float] = None, strict: bool = False,
                 cache_bytes: int = 32, site_bytes: int = 64,
                 runner: CommandRunner = run_command) -> Optional[BuildResult]:
    """
    Run a full site build.

    Args:
        paths: Build layout
        settings: Site settings (read from paths.settings if None)
        handlers: Handler registry to register into (a fresh one if None)
        outputs: Output registry to register into (a fresh one if None)
        config_map: Also write the HTML config map
        timeout: Seconds before an external compressor is abandoned
        strict: Fail the build when an external compressor fails
        cache_bytes: Entropy of the cache identifier
        site_bytes: Entropy of the site identifier
        runner: Runs external compressor commands

    Returns:
        BuildResult, or None when there was nothing to build
    """
    if settings is None:
        settings = load_settings(paths.settings)

    if not settings:
        logger.warning("No settings found in ini file")
        return None

    modules = parse_module_list(settings.get("modules"))
    if not modules:
        logger.warning("No modules configured")
        return None

    handlers = handlers if handlers is not None else PageRegistry("handler")
    outputs = outputs if outputs is not None else PageRegistry("output")

    js_compressor, css_compressor = resolve_compressors(settings, timeout=timeout, strict=strict, runner=runner)

    scan = ModuleScanner(paths.modules, handlers, outputs).scan(modules)

    artifact = combine_includes(scan.js, js_compressor, scan.css, css_compressor,
                                paths.js, paths.css, paths.js_lib)

    # Registration is complete only now; deferred bindings need every page.
    handler_modules = handlers.finalize()
    output_modules = outputs.finalize()

    config = write_config_file(settings, handler_modules, output_modules, scan.filters, paths.config)
    if config_map:
        write_config_map(config, paths.config_map)

    production = create_production_site(artifact, scan.assets, paths,
                                        cache_bytes=cache_bytes, site_bytes=site_bytes)

    return BuildResult(scan=scan, artifact=artifact, config=config,
                       config_path=paths.config, production=production)


def setup_logging(level: str = "INFO", log_file: Optional[str] = None):
    """Log to stderr and, if configured, a daily rotated file."""
    handlers: List[logging.Handler] = [logging.StreamHandler()]

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.TimedRotatingFileHandler(
            log_file,
            when='midnight',
            interval=1,
            backupCount=7
        )
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handlers.append(file_handler)

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Build the site configuration and production tree")
    parser.add_argument("--root", default=".", help="Application root (default: current directory)")
    parser.add_argument("--config", help="Build configuration YAML (default: sitebuild.yaml under root)")
    parser.add_argument("--settings", help="Site settings file (overrides paths.settings)")
    parser.add_argument("--config-map", action="store_true", help="Also write the HTML config map")
    parser.add_argument("--strict-compress", action="store_true",
                        help="Fail when an external compressor fails instead of writing empty output")
    parser.add_argument("--compress-timeout", type=float, help="Seconds before a compressor is abandoned")
    parser.add_argument("--log-level", help="Logging level (default: logging.level or INFO)")
    parser.add_argument("--version", action="version", version=f"sitebuilder {__version__}")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """Run the site build from the command line."""
    args = parse_args(argv)

    load_config(args.config, root=args.root)
    setup_logging(args.log_level or get("logging.level", "INFO"), get("logging.file"))

    paths = BuildPaths.from_config()
    if args.settings:
        paths.settings = Path(args.settings).resolve()

    timeout = args.compress_timeout if args.compress_timeout is not None else get("compression.timeout")
    strict = args.strict_compress or bool(get("compression.strict", False))

    try:
        result = build_config(
            paths,
            config_map=args.config_map,
            timeout=timeout,
            strict=strict,
            cache_bytes=get("identifiers.cache_bytes", 32),
            site_bytes=get("identifiers.site_bytes", 64),
        )
    except Exception as e:
        logger.exception(f"Build failed: {e}")
        return 1

    if result is None:
        logger.info("Nothing to build")
    else:
        logger.info(f"Production site ready in {result.production.output_dir}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
