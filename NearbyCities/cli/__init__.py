"""
Command-line interface module for the NearbyCities package.

This module provides a command-line interface for building the spatial index
and finding the cities near a city name, a pair of coordinates or an IP
address.

Key Components:
- main: Main entry point for the CLI
- cli: The click command group
"""

from NearbyCities.cli.commands import cli, main

__all__ = ['cli', 'main']
