"""Shared test fixtures for the site build test suite."""

import pytest
import os
import textwrap

# Add parent directory to path so we can import sitebuilder
import sys
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sitebuilder.config import BuildPaths
from sitebuilder.core import PageRegistry

JS_LIB = "/* zepto */var $=function(){};"

INDEX_TEMPLATE = """<?php
define('DEBUG_MODE', true);
define('APP_PATH', '');
define('CACHE_ID', '');
define('SITE_ID', '');
require APP_PATH.'lib/framework.php';
"""


def write_module(root, name, js=None, css=None, setup=None, assets=None):
    """Create modules/<name>/ with the given optional parts."""
    path = root / "modules" / name
    path.mkdir(parents=True, exist_ok=True)
    if js is not None:
        (path / "site.js").write_text(js)
    if css is not None:
        (path / "site.css").write_text(css)
    if setup is not None:
        (path / "setup.py").write_text(textwrap.dedent(setup))
    if assets is not None:
        (path / "assets").mkdir(exist_ok=True)
        for filename, content in assets.items():
            (path / "assets" / filename).write_text(content)
    return path


@pytest.fixture
def site_root(tmp_path):
    """An application root with the library blob and entry template but no modules."""
    (tmp_path / "modules").mkdir()
    (tmp_path / "third_party").mkdir()
    (tmp_path / "third_party" / "zepto.min.js").write_text(JS_LIB)
    (tmp_path / "index.php").write_text(INDEX_TEMPLATE)
    return tmp_path


@pytest.fixture
def paths(site_root):
    """Default build layout under site_root."""
    return BuildPaths.for_root(site_root)


@pytest.fixture
def registries():
    """Fresh (handler, output) registries."""
    return PageRegistry("handler"), PageRegistry("output")


@pytest.fixture
def make_module(site_root):
    """Factory creating modules under site_root."""
    def factory(name, **parts):
        return write_module(site_root, name, **parts)
    return factory
