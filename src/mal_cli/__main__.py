"""Entry point for ``python -m mal_cli``."""

import sys

from mal_cli.cli import main

if __name__ == "__main__":
    sys.exit(main())
