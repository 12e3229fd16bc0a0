"""Liveness, readiness and Prometheus endpoints served from one WSGI app."""

from __future__ import annotations

import json
from typing import Any, Callable, Iterable

from prometheus_client import make_wsgi_app
from werkzeug.wrappers import Request, Response

ReadinessCheck = Callable[[], dict[str, Any]]
WSGIApp = Callable[[dict[str, Any], Any], Iterable[bytes]]


def _json(body: dict[str, Any]) -> Response:
    return Response(json.dumps(body), mimetype="application/json")


def create_combined_wsgi_app(readiness_check: ReadinessCheck | None = None) -> WSGIApp:
    """Route /healthz and /readyz; everything else goes to prometheus_client.

    ``readiness_check`` is called on each /readyz request and its fields are
    merged into the response body.
    """
    metrics_app = make_wsgi_app()

    def readyz() -> Response:
        body: dict[str, Any] = {"status": "ready"}
        if readiness_check is not None:
            body.update(readiness_check())
        return _json(body)

    routes: dict[str, Callable[[], Response]] = {
        "/healthz": lambda: _json({"status": "ok"}),
        "/readyz": readyz,
    }

    def app(environ: dict[str, Any], start_response: Any) -> Iterable[bytes]:
        view = routes.get(Request(environ).path)
        if view is None:
            return metrics_app(environ, start_response)
        return view()(environ, start_response)

    return app
