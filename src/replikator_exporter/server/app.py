from __future__ import annotations

"""
replikator_exporter.server.app
==============================

WSGI front-end: every scrape of the metrics path runs one collection and then
serializes the registry with `prometheus_client.make_wsgi_app`.

The response is always produced, with status 200, whatever happened during
collection. Failures are visible to the monitoring side only as stale or
missing series.

Routes:
    GET <metrics_path>   collect + exposition
    GET /                landing page
    GET /healthz         liveness ("ok"), no collection
"""

import logging
import time
import uuid
from collections.abc import Callable, Iterable
from socketserver import ThreadingMixIn
from typing import Any
from wsgiref.simple_server import WSGIRequestHandler, WSGIServer, make_server

from prometheus_client import make_wsgi_app

from ..collector.pipeline import CollectionPipeline
from ..core.logging import get_logger, log_context, swallow
from ..metrics.instrumentation import RequestMetrics
from ..metrics.registry import ReplikatorMetrics

__all__ = ["ExporterApp", "ThreadingWSGIServer", "make_server_for"]

_log = get_logger("server.app")

StartResponse = Callable[..., Any]

_LANDING = """<html>
<head><title>Replikator Exporter</title></head>
<body>
<h1>Replikator Exporter</h1>
<p><a href="{path}">Metrics</a></p>
</body>
</html>
"""


class ExporterApp:
    """
    WSGI application tying the pipeline, the registry and request instrumentation.

    Example:
        app = ExporterApp(pipeline, metrics)
        server = make_server_for(app, "0.0.0.0", 9876)
        server.serve_forever()
    """

    def __init__(
        self,
        pipeline: CollectionPipeline,
        metrics: ReplikatorMetrics,
        *,
        metrics_path: str = "/metrics",
        disable_compression: bool = False,
        request_metrics: RequestMetrics | None = None,
    ) -> None:
        self.pipeline = pipeline
        self.metrics = metrics
        self.metrics_path = metrics_path
        self.request_metrics = request_metrics or RequestMetrics.create(metrics.registry)
        self._exposition = make_wsgi_app(metrics.registry, disable_compression=disable_compression)

    def __call__(self, environ: dict[str, Any], start_response: StartResponse) -> Iterable[bytes]:
        method = environ.get("REQUEST_METHOD", "GET").upper()
        path = environ.get("PATH_INFO") or "/"
        started = time.perf_counter()
        status: dict[str, str] = {"code": "500"}

        def _start_response(status_line: str, headers: list[tuple[str, str]], exc_info: Any = None):
            status["code"] = status_line.split(" ", 1)[0]
            return start_response(status_line, headers, exc_info)

        try:
            with log_context(scrape_id=uuid.uuid4().hex[:12], path=path):
                return self._dispatch(method, path, environ, _start_response)
        finally:
            self.request_metrics.observe(method=method, code=status["code"], duration_s=time.perf_counter() - started)

    # ---- routing -------------------------------------------------------------

    def _dispatch(self, method: str, path: str, environ: dict[str, Any], start_response: StartResponse) -> Iterable[bytes]:
        if method not in ("GET", "HEAD"):
            return _plain(start_response, "405 Method Not Allowed", b"Method Not Allowed\n", [("Allow", "GET, HEAD")])
        if path == self.metrics_path:
            return self._scrape(environ, start_response)
        if path == "/":
            body = _LANDING.format(path=self.metrics_path).encode("utf-8")
            return _plain(start_response, "200 OK", body, content_type="text/html; charset=utf-8")
        if path == "/healthz":
            return _plain(start_response, "200 OK", b"ok\n")
        return _plain(start_response, "404 Not Found", b"Not Found\n")

    def _scrape(self, environ: dict[str, Any], start_response: StartResponse) -> Iterable[bytes]:
        with swallow(
            logger=_log,
            level=logging.ERROR,
            code="collect.unexpected",
            msg="collection crashed; serving current registry",
        ):
            self.pipeline.collect()
        with self.metrics.transaction():
            return self._exposition(environ, start_response)


def _plain(
    start_response: StartResponse,
    status: str,
    body: bytes,
    extra_headers: list[tuple[str, str]] | None = None,
    *,
    content_type: str = "text/plain; charset=utf-8",
) -> list[bytes]:
    headers = [("Content-Type", content_type), ("Content-Length", str(len(body)))]
    headers.extend(extra_headers or [])
    start_response(status, headers)
    return [body]


# ---- server ------------------------------------------------------------------


class ThreadingWSGIServer(ThreadingMixIn, WSGIServer):
    """Thread per request, so a slow scrape does not block /healthz."""

    daemon_threads = True


class _QuietHandler(WSGIRequestHandler):
    def log_message(self, format: str, *args: Any) -> None:
        _log.debug("http access", event="http.access", line=format % args)


def make_server_for(app: ExporterApp, address: str, port: int) -> WSGIServer:
    return make_server(address, port, app, server_class=ThreadingWSGIServer, handler_class=_QuietHandler)
