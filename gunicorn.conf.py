"""
Gunicorn Configuration

Uvicorn workers behind Gunicorn. Request logging is done by the API's own
middleware, so Gunicorn's access log stays off.
"""

import multiprocessing
import os

bind = f"{os.getenv('API_HOST', '0.0.0.0')}:{os.getenv('API_PORT', '8000')}"
backlog = 2048

# Each worker holds its own database pool (POSTGRES_POOL_SIZE connections)
workers = int(os.getenv("WORKERS", min(multiprocessing.cpu_count() * 2 + 1, 8)))
worker_class = "uvicorn.workers.UvicornWorker"
max_requests = 10000
max_requests_jitter = 1000
timeout = 60
graceful_timeout = 30
keepalive = 5

proc_name = "laundry-marketplace-api"
pidfile = os.getenv("PIDFILE")

errorlog = "-"
loglevel = os.getenv("LOG_LEVEL", "info").lower()
accesslog = None


def post_worker_init(worker):
    """Route Gunicorn's own records through structlog in every worker."""
    from laundry_api.config.logging import configure_logging

    configure_logging()


def when_ready(server):
    server.log.info("Laundry Marketplace API ready on %s with %s workers", bind, workers)


def worker_abort(worker):
    worker.log.warning("Worker %s aborted, likely on timeout", worker.pid)
