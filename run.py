#!/usr/bin/env python3
"""
PIN Bank Entry Point

Starts the interactive console against the snapshot file in the current
directory (or PINBANK_DATA_FILE).
"""

import sys
from pathlib import Path

# Add the project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from pinbank.cli import main


if __name__ == "__main__":
    sys.exit(main())
