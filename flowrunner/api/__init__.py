"""
API package - FastAPI routes and schemas.
"""

from flowrunner.api.routes import models, runs, websocket, workflows

__all__ = ["models", "runs", "websocket", "workflows"]
