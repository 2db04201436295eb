"""API Package.

FastAPI server exposing the Sankhya sales-force queries.
"""

from api.server import create_app, app

__all__ = [
    "create_app",
    "app",
]
