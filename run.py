#!/usr/bin/env python3
"""
Finance Ledger Entry Point

Starts the FastAPI server with host, port and logging taken from LEDGER_* settings.
"""

import sys
from pathlib import Path

# Add the project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

import uvicorn

from finance_ledger.config import get_config
from finance_ledger.logging_config import setup_logging


def run_server(host: str, port: int, workers: int = 1, log_level: str = "info") -> None:
    """Run the API with uvicorn"""
    uvicorn.run(
        "finance_ledger.api:app",
        host=host,
        port=port,
        workers=workers,
        log_level=log_level
    )


if __name__ == "__main__":
    config = get_config()
    setup_logging(config.log_level, log_format=config.log_format, log_file=config.log_file)

    print("Starting Finance Ledger...")
    print(f"Storage: {config.database_url.split('://', 1)[0]}")
    print(f"API available at: http://localhost:{config.api_port}")
    print(f"Documentation at: http://localhost:{config.api_port}/docs")
    print()

    try:
        run_server(
            host=config.api_host,
            port=config.api_port,
            workers=config.api_workers,
            log_level=config.log_level.lower()
        )
    except KeyboardInterrupt:
        print("\nShutting down Finance Ledger...")
    except Exception as e:
        print(f"Error starting server: {e}")
        sys.exit(1)
