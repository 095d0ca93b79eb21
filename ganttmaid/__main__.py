"""
ganttmaid.__main__ - Entry point for running ganttmaid as a module.

Usage:
    python -m ganttmaid <input_path> [options]
"""

import sys

from ganttmaid.cli import main

if __name__ == "__main__":
    sys.exit(main())
