"""
Module entry point for running pseudoide as `python -m pseudoide`
"""

import sys

from pseudoide.cli import main

if __name__ == "__main__":
    sys.exit(main())
