"""HTTP API: operational routes, metrics and the query API under /api/v1."""

from __future__ import annotations

import logging
import sys
import threading
from socketserver import ThreadingMixIn
from typing import Any, Callable, Iterable, Protocol
from wsgiref.simple_server import WSGIRequestHandler, WSGIServer, make_server

from graviola.config import APIConfig
from graviola.httpmiddleware import LoggingMiddleware, MetricsMiddleware
from graviola.metrics import Registry

__all__ = ["GraviolaAPI"]

API_PREFIX = "/api/v1"

WSGIApp = Callable[[dict, Callable], Iterable[bytes]]

_server_logger = logging.getLogger("graviola.api.server")


class _Registerer(Protocol):
    def register(self, router: Any) -> None: ...


class _PrefixedRouter:
    """Adds routes to the API under a fixed path prefix."""

    def __init__(self, api: GraviolaAPI, prefix: str) -> None:
        self._api = api
        self._prefix = prefix

    def handle(self, path: str, handler: WSGIApp) -> None:
        self._api.handle(self._prefix + path, handler)


class _ThreadingServer(ThreadingMixIn, WSGIServer):
    daemon_threads = True


class _QuietHandler(WSGIRequestHandler):
    """Sends the server's access lines to a debug logger instead of stderr."""

    def log_message(self, format: str, *args: Any) -> None:
        _server_logger.debug("%s - %s", self.address_string(), format % args)


def _always_successful(_environ: dict, start_response: Callable) -> Iterable[bytes]:
    start_response("200 OK", [("Content-Length", "0")])
    return [b""]


class GraviolaAPI:
    """The WSGI application and the server that runs it."""

    def __init__(self, conf: APIConfig, logger: logging.Logger, registry: Registry,
                 native_api: _Registerer | None = None) -> None:
        self.conf = conf
        self._logger = logger.getChild("api")
        self._registry = registry
        self._routes: dict[str, WSGIApp] = {}
        self._server: WSGIServer | None = None
        self._ready = threading.Event()

        self.handle("/metrics", self._metrics)
        self.handle("/healthy", _always_successful)
        self.handle("/ready", _always_successful)
        if native_api is not None:
            native_api.register(_PrefixedRouter(self, API_PREFIX))

        self._app = LoggingMiddleware(MetricsMiddleware(self._route, registry), self._logger)

    def handle(self, path: str, handler: WSGIApp) -> None:
        """Serve ``handler`` for requests to exactly ``path``."""
        self._routes[path] = handler

    def __call__(self, environ: dict, start_response: Callable) -> Iterable[bytes]:
        return self._app(environ, start_response)

    def _metrics(self, _environ: dict, start_response: Callable) -> Iterable[bytes]:
        body = self._registry.expose().encode()
        start_response("200 OK", [("Content-Type", "text/plain; version=0.0.4"),
                                  ("Content-Length", str(len(body)))])
        return [body]

    def _route(self, environ: dict, start_response: Callable) -> Iterable[bytes]:
        handler = self._routes.get(environ.get("PATH_INFO", ""))
        if handler is None:
            body = b"404 page not found\n"
            start_response("404 Not Found", [("Content-Type", "text/plain"),
                                             ("Content-Length", str(len(body)))])
            return [body]
        try:
            return list(handler(environ, start_response))
        except Exception:
            self._logger.exception("panic while handling request")
            start_response("500 Internal Server Error", [("Content-Length", "0")], sys.exc_info())
            return [b""]

    def start(self) -> None:
        """Serve on the configured port until ``stop`` is called."""
        self._server = make_server("", self.conf.port, self, server_class=_ThreadingServer,
                                   handler_class=_QuietHandler)
        self._ready.set()
        try:
            self._server.serve_forever()
        finally:
            self._server.server_close()

    def stop(self) -> None:
        """Stop a server started with ``start``."""
        self._logger.debug("stopping called")
        if not self._ready.wait(timeout=5):
            self._logger.error("error when stopping: server was not started")
            return
        assert self._server is not None
        self._server.shutdown()
        self._logger.info("stopped")