"""
Configuration settings for FlowRunner.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    # Application
    APP_NAME: str = "FlowRunner"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = True

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Inference service
    OLLAMA_ADDRESS: str = "http://localhost:11434"
    DEFAULT_MODEL: Optional[str] = None
    KEEP_ALIVE: str = "5m"  # Passed to Ollama with every generate call
    KEEP_ALIVE_INTERVAL: float = 180.0  # Seconds between keep-alive pings
    REQUEST_TIMEOUT: float = 120.0  # Seconds

    # Workflow Engine
    MAX_NODE_VISITS: int = 1000  # Guard against cyclic graphs

    # Logging
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = True


# Global settings instance
settings = Settings()
