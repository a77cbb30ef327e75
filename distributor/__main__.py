"""Entry point for Distributor.

Usage:
    python -m distributor run            Copy every changed source to its targets
    python -m distributor run --force    Copy regardless of the cache
    python -m distributor --help         List all commands
"""

import sys


def main() -> None:
    """Run the command line and exit with its status."""
    from distributor.app import main as app_main

    sys.exit(app_main())


if __name__ == "__main__":
    main()
