"""
Entry point for running the package as a module.

This allows running the interview analyzer with:
    python -m interview_analyzer
"""

import sys

from .main import main

if __name__ == "__main__":
    sys.exit(main())
