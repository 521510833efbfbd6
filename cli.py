#!/usr/bin/env python3
"""
Entry point for the NearbyCities CLI.
This allows running the CLI directly with `python cli.py`.
"""
from NearbyCities.cli.commands import main

if __name__ == '__main__':
    main()
