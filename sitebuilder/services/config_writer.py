"""Persist the runtime configuration and render the config map report."""

import html
import logging
import yaml
from pathlib import Path
from typing import Any, Dict, Mapping, Tuple

from sitebuilder.core.filters import FilterSet
from sitebuilder.core.module_system import Binding, bindings_to_dict

logger = logging.getLogger(__name__)

HANDLER_KEY = "handler_modules"
OUTPUT_KEY = "output_modules"
FILTERS_KEY = "input_filters"


def build_persisted_config(settings: Mapping[str, Any],
                           handlers: Mapping[str, Tuple[Binding, ...]],
                           outputs: Mapping[str, Tuple[Binding, ...]],
                           filters: FilterSet) -> Dict[str, Any]:
    """Settings plus the dumped bindings and merged filters, as a new dict."""
    config = dict(settings)
    config[HANDLER_KEY] = bindings_to_dict(handlers)
    config[OUTPUT_KEY] = bindings_to_dict(outputs)
    config[FILTERS_KEY] = filters.to_dict()
    return config


def write_config_file(settings: Mapping[str, Any],
                      handlers: Mapping[str, Tuple[Binding, ...]],
                      outputs: Mapping[str, Tuple[Binding, ...]],
                      filters: FilterSet,
                      path: Path) -> Dict[str, Any]:
    """
    Write the runtime configuration file.

    The file is a YAML snapshot of the settings with handler_modules,
    output_modules and input_filters added. Any previous file is
    overwritten.

    Args:
        settings: Site settings
        handlers: Finalized handler registry snapshot
        outputs: Finalized output registry snapshot
        filters: Merged filters from all modules
        path: Destination file

    Returns:
        The persisted configuration dict
    """
    config = build_persisted_config(settings, handlers, outputs, filters)
    path = Path(path)
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(config, f, sort_keys=False, default_flow_style=False, allow_unicode=True)
    logger.info(f"{path.name} file written")
    return config


def load_config_file(path: Path) -> Dict[str, Any]:
    """Read a runtime configuration file back."""
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def build_config_map(config: Mapping[str, Any]) -> str:
    """Render an HTML table of every page with its handler and output modules."""
    handlers = config.get(HANDLER_KEY, {})
    outputs = config.get(OUTPUT_KEY, {})

    res = ['<!DOCTYPE html><html dir="ltr" class="ltr_page" lang=en><head><title>Config Map</title>',
           '<style type="text/css">.page { padding: 10px; font-size: 120%; } '
           '.mod { padding-right: 10px; padding-left: 40px; }</style>',
           '</head><body><table>']
    for page, mods in handlers.items():
        res.append(f'<tr><td colspan="2" class="page">{html.escape(str(page))}</td></tr>')
        for name in mods:
            res.append(f'<tr><td class="mod">handler</td><td>{html.escape(str(name))}</td></tr>')
        for name in outputs.get(page, {}):
            res.append(f'<tr><td class="mod">output</td><td>{html.escape(str(name))}</td></tr>')
    res.append('</table></body></html>')
    return "".join(res)


def write_config_map(config: Mapping[str, Any], path: Path) -> Path:
    """Write the config map report."""
    path = Path(path)
    path.write_text(build_config_map(config), encoding="utf-8")
    logger.info(f"{path.name} file written")
    return path
