import logging
import os
from collections.abc import Callable

from fastapi import FastAPI

_log = logging.getLogger("cafepos.health")


def add_standard_health(app: FastAPI, env_key: str = "ENV", check: Callable[[], None] | None = None):
    """
    Mount GET /health. `check` is an optional health check (e.g. a DB ping); when it
    raises, the endpoint still answers but reports status "degraded".
    """

    @app.get("/health")
    def _health():
        status = "ok"
        if check is not None:
            try:
                check()
            except Exception:
                _log.exception("health check failed")
                status = "degraded"
        return {
            "status": status,
            "env": os.getenv(env_key, "dev"),
            "service": app.title,
            "version": getattr(app, "version", None),
        }
