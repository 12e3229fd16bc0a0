"""Operator entry point: ``kopf run -m secretsbeam_operator.main --all-namespaces``."""

from __future__ import annotations

import logging
import os
import threading
from typing import Any

import kopf
from werkzeug.serving import make_server

from . import handlers  # noqa: F401  registers the kopf handlers
from . import health
from . import logging as structured_logging
from .services.registry import ProviderRegistry
from .tracing import initialize_tracing, shutdown_tracing

logger = logging.getLogger(__name__)


@kopf.on.startup()
def configure(settings: kopf.OperatorSettings, memo: kopf.Memo, **_: Any) -> None:
    """Wire logging, tracing, kopf settings, the provider registry and the HTTP endpoints."""
    structured_logging.setup_structured_logging()
    if initialize_tracing():
        logger.info("Exporting traces over OTLP")

    # Keep kopf bookkeeping out of .status, which the handlers own
    settings.persistence.progress_storage = kopf.AnnotationsProgressStorage()
    settings.persistence.diffbase_storage = kopf.AnnotationsDiffBaseStorage()
    settings.posting.level = logging.DEBUG
    settings.networking.request_timeout = 30.0
    settings.execution.max_workers = int(os.getenv("MAX_WORKERS", "4"))

    registry = ProviderRegistry()
    memo.registry = registry

    port = int(os.getenv("METRICS_PORT", "8080"))
    app = health.create_combined_wsgi_app(
        lambda: {"providers": registry.names(), "initialized": registry.initialized}
    )
    server = make_server("", port, app, threaded=True)
    memo.http_server = server
    threading.Thread(target=server.serve_forever, name="metrics-http", daemon=True).start()
    logger.info(f"Serving /metrics, /healthz and /readyz on port {port}")


@kopf.on.cleanup()
def shutdown(memo: kopf.Memo, **_: Any) -> None:
    """Stop the HTTP endpoints and flush pending spans."""
    server = getattr(memo, "http_server", None)
    if server is not None:
        server.shutdown()
    shutdown_tracing()
