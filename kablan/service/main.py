"""Uvicorn entry point for running the collection service."""

from __future__ import annotations

import logging
import sys
from typing import Optional

import uvicorn

from ..config import Config, LoggingConfig
from .app import create_app

APP_IMPORT = "kablan.service.app:app"


def setup_logging(log_config: Optional[LoggingConfig] = None) -> logging.Logger:
    """Setup logging configuration"""
    log_config = log_config or LoggingConfig()

    handlers: list = [logging.StreamHandler(sys.stdout)]
    log_path = log_config.log_path
    if log_path is not None:
        # Create logs directory if it doesn't exist
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path))

    logging.basicConfig(
        level=getattr(logging, log_config.log_level, logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers,
    )
    return logging.getLogger("kablan")


def run() -> None:
    """Launch the FastAPI application with uvicorn."""
    config = Config.load()
    setup_logging(config.logging)
    service = config.service

    # uvicorn only reloads apps given as an import string
    target = APP_IMPORT if service.reload else create_app(service=service, storage=config.storage)
    uvicorn.run(
        target,
        host=service.host,
        port=service.port,
        reload=service.reload,
        log_level=service.log_level,
    )


if __name__ == "__main__":
    run()
