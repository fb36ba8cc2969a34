"""WSGI middlewares that log and measure every HTTP request."""

from __future__ import annotations

import logging
import threading
import time
import weakref
from typing import Any, Callable, Iterable, Iterator

from graviola.metrics import CounterVec, HistogramVec, Registry

__all__ = ["LoggingMiddleware", "MetricsMiddleware"]

WSGIApp = Callable[[dict, Callable], Iterable[bytes]]

_LATENCY_BUCKETS = (0.1, 0.2, 0.5, 1.0, 2.5, 5.0, 10.0, 15.0, 30.0, 60.0, 120.0)

_metrics_lock = threading.Lock()
_metrics: "weakref.WeakKeyDictionary[Registry, tuple[CounterVec, HistogramVec]]" = (
    weakref.WeakKeyDictionary()
)


class _Response:
    """Records the status and size of what the wrapped application sends."""

    def __init__(self, start_response: Callable) -> None:
        self._start_response = start_response
        self.status_code = 0
        self.size = 0

    def start_response(self, status: str, headers: list, exc_info: Any = None) -> Callable:
        self.status_code = int(status.split(" ", 1)[0])
        write = self._start_response(status, headers, exc_info)

        def tracked_write(data: bytes) -> Any:
            self.size = len(data)
            return write(data)

        return tracked_write


def _run(app: WSGIApp, environ: dict, start_response: Callable,
         done: Callable[[_Response, float], None]) -> Iterator[bytes]:
    started = time.monotonic()
    response = _Response(start_response)
    body = app(environ, response.start_response)
    try:
        for chunk in body:
            if chunk:
                response.size = len(chunk)
            yield chunk
    finally:
        close = getattr(body, "close", None)
        if close is not None:
            close()
        done(response, time.monotonic() - started)


class LoggingMiddleware:
    """Logs method, path, status, size, client and latency of each response."""

    def __init__(self, app: WSGIApp, logger: logging.Logger) -> None:
        self._app = app
        self._logger = logger

    def __call__(self, environ: dict, start_response: Callable) -> Iterable[bytes]:
        def done(response: _Response, elapsed: float) -> None:
            self._logger.info("HTTP response", extra={
                "method": environ.get("REQUEST_METHOD", ""),
                "path": environ.get("PATH_INFO", ""),
                "status": response.status_code,
                "size": response.size,
                "from": environ.get("REMOTE_ADDR", ""),
                "latency_time": f"{elapsed * 1000:.3f}ms",
            })

        return _run(self._app, environ, start_response, done)


def _http_metrics(registry: Registry) -> tuple[CounterVec, HistogramVec]:
    with _metrics_lock:
        found = _metrics.get(registry)
        if found is None:
            count = CounterVec("requests_total", "How many HTTP requests processed.",
                               ("code", "method", "path"), namespace="graviola", subsystem="http")
            latency = HistogramVec("request_duration_seconds",
                                   "Latency of HTTP requests, in seconds.", ("path",),
                                   _LATENCY_BUCKETS, namespace="graviola", subsystem="http")
            registry.register(count, latency)
            found = _metrics[registry] = (count, latency)
        return found


class MetricsMiddleware:
    """Counts requests by code, method and path, and times them by path."""

    def __init__(self, app: WSGIApp, registry: Registry) -> None:
        self._app = app
        self._count, self._latency = _http_metrics(registry)

    def __call__(self, environ: dict, start_response: Callable) -> Iterable[bytes]:
        path = environ.get("PATH_INFO", "")

        def done(response: _Response, elapsed: float) -> None:
            self._latency.labels(path).observe(elapsed)
            self._count.labels(str(response.status_code),
                               environ.get("REQUEST_METHOD", ""), path).inc()

        return _run(self._app, environ, start_response, done)