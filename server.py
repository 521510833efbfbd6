#!/usr/bin/env python3
"""
Entry point for the NearbyCities API server.
This allows running the server directly with `python server.py`.
"""
import argparse

from NearbyCities import initialize_config
from NearbyCities.api.server import start_server
from NearbyCities.utils.logging import get_logger, set_log_level

# Get a logger for this module
logger = get_logger(__name__)


def main():
    """Entry point for the server."""
    parser = argparse.ArgumentParser(description='Start the NearbyCities API server')
    parser.add_argument('--host', type=str, help='The host to bind to (default: api.host)')
    parser.add_argument('--port', type=int, help='The port to bind to (default: api.port)')
    parser.add_argument('--db-uri', type=str, help='The database URI')
    parser.add_argument('--csv-path', type=str, help='World cities CSV used if the index must be built')
    parser.add_argument('--ip2location-path', type=str, help='IP2Location CSV used if the index must be built')
    parser.add_argument('--debug', action='store_true', default=None, help='Enable debug mode')
    parser.add_argument('--log-level', choices=['debug', 'info', 'warning', 'error', 'critical'],
                        help='Set the logging level')

    args = parser.parse_args()

    initialize_config()

    # Set the log level if specified
    if args.log_level:
        set_log_level(args.log_level)

    start_server(
        host=args.host,
        port=args.port,
        db_uri=args.db_uri,
        debug=args.debug,
        csv_path=args.csv_path,
        ip2location_path=args.ip2location_path
    )


if __name__ == "__main__":
    main()
