#!/usr/bin/env python3
"""
SACCO Ledger Entry Point

Starts the FastAPI server with host, port, storage and logging taken from
SACCO_* environment variables (or .env).
"""

import sys

import uvicorn

from sacco_ledger.api import create_app
from sacco_ledger.config import get_config
from sacco_ledger.logging_config import setup_logging


def main() -> None:
    config = get_config()
    logger = setup_logging(config.log_level, config.log_format)

    logger.info(
        f"Starting SACCO ledger on {config.api_host}:{config.api_port} "
        f"(storage: {config.storage_backend})"
    )

    try:
        app = create_app(config=config)
        uvicorn.run(app, host=config.api_host, port=config.api_port, log_level=config.log_level.lower())
    except KeyboardInterrupt:
        logger.info("Shutting down SACCO ledger")
    except Exception as e:
        logger.error(f"Error starting server: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
