"""Allows ``python -m psscriptlint``."""

import sys

from psscriptlint.main import main

if __name__ == "__main__":
    sys.exit(main())
