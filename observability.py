"""Logging, metrics and tracing setup for the Campus Connect API.

``init_observability(app, settings)`` is called from ``main`` right after the
FastAPI app is created:

* structlog renders both its own events and stdlib records (uvicorn,
  SQLAlchemy, Alembic) through one handler, as JSON or console output
  depending on ``LOG_FORMAT``.
* CloudWatch Embedded Metrics get the service name and a default namespace,
  so ``@metric_scope`` functions only record counters.
* With ``ENABLE_XRAY=1`` and ``aws_xray_sdk`` installed, the database drivers
  are patched and every request is wrapped in an X-Ray segment.
"""
from __future__ import annotations

import logging
from typing import Optional

import structlog
from aws_embedded_metrics import metric_scope
from fastapi import FastAPI
from aws_embedded_metrics.config import get_config

from settings import Settings, get_settings

try:
    from aws_xray_sdk.core import patch, xray_recorder  # type: ignore
    from aws_xray_sdk.ext.fastapi.middleware import XRayMiddleware  # type: ignore
except ImportError:  # pragma: no cover
    patch = None  # type: ignore
    xray_recorder = None  # type: ignore
    XRayMiddleware = None  # type: ignore

__all__ = ["init_observability", "metric_scope"]

# Drivers the engine can sit on; a driver that is not installed is logged and skipped
TRACED_MODULES = ("sqlite3", "psycopg2")

_configured = False


def _shared_processors(service_name: str) -> list:
    def add_service(logger, method_name, event_dict):
        event_dict.setdefault("service", service_name)
        return event_dict

    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        add_service,
    ]


def _setup_logging(settings: Settings) -> None:
    pre_chain = _shared_processors(settings.service_name)

    if settings.log_format.lower() == "json":
        renderer_chain = [structlog.processors.dict_tracebacks, structlog.processors.JSONRenderer()]
    else:
        renderer_chain = [structlog.dev.ConsoleRenderer()]

    structlog.configure(
        processors=pre_chain
        + [
            structlog.processors.StackInfoRenderer(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, *renderer_chain],
        )
    )

    root_logger = logging.getLogger()
    # Replace rather than stack handlers if logging was configured before
    root_logger.handlers = [handler]
    root_logger.setLevel(settings.log_level.upper())

    # INFO on sqlalchemy.engine echoes every statement
    logging.getLogger("sqlalchemy.engine").setLevel(settings.sql_log_level.upper())
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    # sse-starlette logs every ping at DEBUG
    logging.getLogger("sse_starlette").setLevel(logging.INFO)


def _setup_metrics(settings: Settings) -> None:
    config = get_config()
    config.service_name = config.service_name or settings.service_name
    # AWS_EMF_NAMESPACE still wins when set
    config.namespace = config.namespace or settings.metrics_namespace


def _setup_tracing(app: Optional[FastAPI], settings: Settings) -> None:
    logger = structlog.get_logger(__name__)

    if not settings.enable_xray:
        return

    if xray_recorder is None or patch is None or XRayMiddleware is None:
        logger.warning("ENABLE_XRAY is set but aws_xray_sdk is not installed")
        return

    xray_recorder.configure(service=settings.service_name, context_missing="LOG_ERROR")
    patch(TRACED_MODULES, raise_errors=False)

    if app is None:
        logger.warning("No app given; X-Ray will trace database calls only")
        return
    app.add_middleware(XRayMiddleware, recorder=xray_recorder, segment_name=settings.service_name)
    logger.info("X-Ray tracing enabled", service=settings.service_name)


def init_observability(app: Optional[FastAPI] = None, settings: Optional[Settings] = None) -> None:
    """Configure logging, metrics and tracing once per process."""
    global _configured
    if _configured:
        return

    settings = settings or get_settings()

    _setup_logging(settings)
    _setup_metrics(settings)
    _setup_tracing(app, settings)
    _configured = True

    structlog.get_logger(__name__).info(
        "Observability initialized",
        log_format=settings.log_format,
        metrics_namespace=get_config().namespace,
        xray=settings.enable_xray,
    )
