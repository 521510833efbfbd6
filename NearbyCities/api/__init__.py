"""
API module for the NearbyCities package.

This module provides a REST API that returns the cities near a city name,
a pair of coordinates or the caller's IP address.

Key Components:
- create_app: Flask application factory (builds the spatial index first)
- start_server: Function to start the API server
"""

from NearbyCities.api.server import create_app, start_server

__all__ = ['create_app', 'start_server']
