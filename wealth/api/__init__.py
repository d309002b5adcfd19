"""
HTTP API: FastAPI routes over the action layer.
"""

from wealth.api.server import create_app

__all__ = ["create_app"]
