"""Entry point for running the engine as a module.

Usage:
    python -m tariff_engine --help
"""

import sys

from tariff_engine.cli import main

if __name__ == "__main__":
    sys.exit(main())
