"""maildispatch - Main Application Entry Point.

Startup order:
1. Configuration loading
2. Logging
3. Observability (Prometheus metrics server)
4. Provider chain and dispatch core
5. HTTP API (uvicorn)

Shutdown runs in reverse: the API stops accepting requests, the dispatch
queue lets the in-flight email finish, providers release their sessions.
"""

import asyncio
import json
import logging
import logging.config
from typing import Optional

import uvicorn


# ---------------------------------------------------------------------------
# Logging setup -- runs from initialize(), before the components are built
# ---------------------------------------------------------------------------

def setup_logging(log_level: str = "INFO", log_format: str = "json"):
    """Setup structured JSON logging.

    Two modes are supported:
    - ``json``  -- machine-parseable JSON-ish format (default)
    - ``text``  -- human-readable format for local development

    Args:
        log_level: Root log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_format: ``"json"`` or ``"text"``.
    """
    if log_format == "json":
        formatter = {
            "class": "logging.Formatter",
            "format": json.dumps({
                "time": "%(asctime)s",
                "level": "%(levelname)s",
                "module": "%(name)s",
                "message": "%(message)s",
            }),
        }
    else:
        formatter = {
            "format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        }
    config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": formatter,
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "default",
                "stream": "ext://sys.stdout",
            }
        },
        "root": {
            "level": log_level,
            "handlers": ["console"],
        },
    }
    logging.config.dictConfig(config)


logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Application orchestrator
# ---------------------------------------------------------------------------

class DispatchApplication:
    """Owns the lifecycle of the dispatch service.

    Usage::

        app = DispatchApplication()
        app.initialize()
        await app.run()        # blocks until SIGINT / SIGTERM
    """

    def __init__(self):
        self._settings = None
        self._metrics = None
        self._core = None
        self._server: Optional[uvicorn.Server] = None

    def initialize(self):
        """Build every component from configuration."""
        # ---- 1. Load configuration ----------------------------------------
        from maildispatch.config.settings import get_settings

        self._settings = get_settings()
        setup_logging(self._settings.log_level, self._settings.log_format)

        logger.info("=" * 60)
        logger.info("maildispatch - Starting up")
        logger.info("=" * 60)
        logger.info("Providers: %s", self._settings.provider_names)
        logger.info(
            "Retries: %d (base delay %.2fs), breaker: %d failures / %.1fs cooldown",
            self._settings.max_retries,
            self._settings.retry_base_delay_seconds,
            self._settings.circuit_breaker_threshold,
            self._settings.circuit_breaker_cooldown_seconds,
        )
        logger.info(
            "Rate limit: %d per %.1fs per client",
            self._settings.rate_limit_max,
            self._settings.rate_limit_window_seconds,
        )

        # ---- 2. Observability ---------------------------------------------
        from maildispatch.observability.metrics import MetricsCollector

        self._metrics = MetricsCollector()
        if self._settings.prometheus_enabled:
            self._metrics.start_server(self._settings.prometheus_port)

        # ---- 3. Dispatch core ---------------------------------------------
        from maildispatch.core import DispatchCore

        self._core = DispatchCore.from_settings(self._settings, metrics=self._metrics)

        # ---- 4. HTTP API --------------------------------------------------
        from maildispatch.api.server import create_app

        config = uvicorn.Config(
            create_app(self._core),
            host=self._settings.host,
            port=self._settings.port,
            log_config=None,
        )
        self._server = uvicorn.Server(config)

    async def run(self):
        """Serve until a shutdown signal arrives.

        uvicorn installs the SIGINT / SIGTERM handlers and runs the app's
        lifespan, which starts and stops the dispatch core.
        """
        logger.info(
            "Server started on http://%s:%d",
            self._settings.host,
            self._settings.port,
        )
        await self._server.serve()
        logger.info("maildispatch shutdown complete")


# ---------------------------------------------------------------------------
# Async entry point
# ---------------------------------------------------------------------------

async def main():
    """Main async entry point."""
    app = DispatchApplication()
    try:
        app.initialize()
        await app.run()
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received")


def cli():
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    cli()
