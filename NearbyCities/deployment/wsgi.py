#!/usr/bin/env python3
"""
WSGI entry point for the NearbyCities API.

The spatial index is built (or found already built) when this module is
imported, before the WSGI server accepts requests.
"""
from NearbyCities import initialize_config
from NearbyCities.api.server import create_app

initialize_config()

# Create the Flask application
app = create_app()

if __name__ == "__main__":
    app.run()
