#!/usr/bin/env python3
"""
Script to run the book records API server.
"""

import sys

import uvicorn
from pydantic import ValidationError

from books_api.config import get_config


def main():
    """Run the API server. Refuses to start on incomplete configuration."""
    try:
        config = get_config()
    except ValidationError as e:
        print(f"Invalid configuration:\n{e}", file=sys.stderr)
        sys.exit(1)

    print("Starting Book Records API Server")
    print(f"Host: {config.host}")
    print(f"Port: {config.port}")
    print(f"Debug: {config.debug}")
    print(f"Database: {config.db_name} on {config.db_server}:{config.db_port}")
    print("=" * 50)

    uvicorn.run(
        "books_api.main:app",
        host=config.host,
        port=config.port,
        reload=config.debug,
        log_level=config.log_level.lower(),
        access_log=True
    )


if __name__ == "__main__":
    main()
