#!/usr/bin/env python
"""
Server Entry Point

Usage:
    Development:  python run_server.py --dev
    Production:   python run_server.py --gunicorn
    Seed data:    python run_server.py --seed

Host and port default to API_HOST and API_PORT.
"""

import argparse
import os
import subprocess

from laundry_api.config import get_settings

APP = "laundry_api.main:app"


def run_dev_server(host: str, port: int):
    """Single process with auto-reload and console logs."""
    import uvicorn

    os.environ.setdefault("LOG_FORMAT", "console")
    uvicorn.run(
        APP,
        host=host,
        port=port,
        reload=True,
        reload_dirs=["laundry_api"],
        log_level="debug",
    )


def run_uvicorn(host: str, port: int):
    import uvicorn

    uvicorn.run(
        APP,
        host=host,
        port=port,
        workers=int(os.getenv("WORKERS", 4)),
        log_level=os.getenv("LOG_LEVEL", "info").lower(),
        access_log=False,
        proxy_headers=True,
        forwarded_allow_ips="*",
        server_header=False,
    )


def run_gunicorn(host: str, port: int):
    env = dict(os.environ, API_HOST=host, API_PORT=str(port))
    subprocess.run(["gunicorn", APP, "-c", "gunicorn.conf.py"], check=True, env=env)


if __name__ == "__main__":
    settings = get_settings()

    parser = argparse.ArgumentParser(description="Laundry Marketplace API Server")
    parser.add_argument("--dev", action="store_true", help="Run in development mode with auto-reload")
    parser.add_argument("--gunicorn", action="store_true", help="Run under Gunicorn")
    parser.add_argument("--seed", action="store_true", help="Create tables, load demo data and exit")
    parser.add_argument("--host", default=settings.api_host)
    parser.add_argument("--port", type=int, default=settings.api_port)
    args = parser.parse_args()

    if args.seed:
        from laundry_api.database.seed import run

        run()
    elif args.dev:
        run_dev_server(args.host, args.port)
    elif args.gunicorn:
        run_gunicorn(args.host, args.port)
    else:
        run_uvicorn(args.host, args.port)
