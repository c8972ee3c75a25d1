#!/usr/bin/env python3
"""
Simple run script for FlowRunner.

Usage:
    python run.py

Or with custom settings:
    HOST=127.0.0.1 PORT=8080 OLLAMA_ADDRESS=http://gpu-box:11434 python run.py
"""

import uvicorn
import os

from flowrunner.config import settings


def main():
    """Run the FastAPI application."""
    host = os.getenv("HOST", settings.HOST)
    port = int(os.getenv("PORT", str(settings.PORT)))
    reload = os.getenv("RELOAD", "true").lower() == "true"

    print(f"""
    FlowRunner
    Server:    http://{host}:{port}
    API Docs:  http://{host}:{port}/docs
    Ollama:    {settings.OLLAMA_ADDRESS}
    Demo:      http://{host}:{port}/workflows/demo
    """)

    uvicorn.run(
        "flowrunner.main:app",
        host=host,
        port=port,
        reload=reload,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
