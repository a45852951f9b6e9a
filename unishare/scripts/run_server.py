#!/usr/bin/env python3
"""
Server runner script.

This script starts the FastAPI server with the configured host and port.
"""

import sys

import uvicorn

from unishare.common.config import get_config
from unishare.common.logger import app_logger

logger = app_logger.getChild("scripts.run_server")


def main():
    """Run the gamification API server."""
    api_config = get_config().api
    try:
        logger.info(f"Starting server on {api_config.host}:{api_config.port} (reload: {api_config.reload})")

        uvicorn.run(
            "unishare.main:app",
            host=api_config.host,
            port=api_config.port,
            reload=api_config.reload,
            log_level="info"
        )

    except Exception as e:
        logger.error(f"Error starting server: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
