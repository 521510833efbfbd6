#!/usr/bin/env python3
"""
Main entry point for the NearbyCities package when run as a module.

This module provides the entry point for running the NearbyCities package as a module
using `python -m NearbyCities`. It delegates to the CLI's main function.

Example:
    $ python -m NearbyCities prepare --csv-path worldcities.csv
    $ python -m NearbyCities search "Hanoi"
    $ python -m NearbyCities nearby 21.0278 105.8342 --radius 50
    $ python -m NearbyCities server --host localhost --port 8080
"""

import sys
from NearbyCities.utils.logging import get_logger

# Get a logger for this module
logger = get_logger(__name__)


def main():
    """Main entry point for the NearbyCities package."""
    try:
        from NearbyCities.cli.commands import main as cli_main
        cli_main()
    except ImportError as e:
        from NearbyCities.utils import handle_exception
        from NearbyCities.exceptions import SystemError

        error = handle_exception(
            e,
            logger=logger,
            error_class=SystemError,
            user_message="Failed to start NearbyCities. The application may be incorrectly installed."
        )

        print(f"Error: {error.user_message}")
        print("Technical details have been logged.")
        sys.exit(1)
    except Exception as e:
        from NearbyCities.utils import handle_exception
        from NearbyCities.exceptions import NearbyCitiesError

        error = handle_exception(
            e,
            logger=logger,
            error_class=NearbyCitiesError,
            user_message="An error occurred while running NearbyCities."
        )

        print(f"Error: {error.user_message}")
        print("Technical details have been logged.")
        sys.exit(1)


if __name__ == "__main__":
    main()
