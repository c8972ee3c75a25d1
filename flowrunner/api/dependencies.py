"""
Request dependencies.

The executor and inference client are created once in the application
lifespan and stored on app.state; routes receive them through these
dependencies so tests can override them.
"""

from starlette.requests import HTTPConnection

from flowrunner.engine.executor import Executor
from flowrunner.inference.base import InferenceClient


def get_executor(conn: HTTPConnection) -> Executor:
    return conn.app.state.executor


def get_inference_client(conn: HTTPConnection) -> InferenceClient:
    return conn.app.state.inference_client
