#!/usr/bin/env python
"""
Service Entry Point

Starts the analytics pipeline behind Uvicorn.
Usage:
    Development:  python run_server.py --dev
    Production:   python run_server.py

Each process runs its own ingestion queue and scheduler, so the pipeline is
scaled by running more processes in the consumer group, not more workers.
"""

import argparse
import os


def run_dev_server(port: int):
    """Run development server with auto-reload."""
    import uvicorn

    uvicorn.run(
        "analytics_pipeline.main:app",
        host="0.0.0.0",
        port=port,
        reload=True,
        reload_dirs=["analytics_pipeline"],
        log_level="debug",
    )


def run_prod_server(port: int):
    """Run production server with Uvicorn directly."""
    import uvicorn

    uvicorn.run(
        "analytics_pipeline.main:app",
        host="0.0.0.0",
        port=port,
        workers=1,
        log_level=os.getenv("LOG_LEVEL", "info").lower(),
        proxy_headers=True,
        forwarded_allow_ips="*",
        server_header=False,
        timeout_graceful_shutdown=int(os.getenv("SHUTDOWN_TIMEOUT", 30)),
    )


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Shop Analytics Pipeline Server")
    parser.add_argument(
        "--dev",
        action="store_true",
        help="Run in development mode with auto-reload"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=int(os.getenv("PORT", 8000)),
        help="Port to run on (default: 8000)"
    )

    args = parser.parse_args()

    if args.dev:
        run_dev_server(args.port)
    else:
        run_prod_server(args.port)
