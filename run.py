#!/usr/bin/env python3
"""Main entry point for the site build."""

import sys
from pathlib import Path

# Add project to path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from sitebuilder.build import main


if __name__ == "__main__":
    sys.exit(main())
