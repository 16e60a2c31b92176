"""The HTTP application and its server loop."""

from __future__ import annotations

import logging
import signal
import socketserver
import threading
from typing import Any
from wsgiref.simple_server import WSGIRequestHandler, WSGIServer, make_server

from flask import Flask

from sablier.middleware import install_access_log
from sablier.routes import Health, ServeStrategy, StrategyConfig
from sablier.theme import Themes

logger = logging.getLogger(__name__)

SHUTDOWN_TIMEOUT = 10.0


class _ThreadingWSGIServer(socketserver.ThreadingMixIn, WSGIServer):
    daemon_threads = True


class _QuietHandler(WSGIRequestHandler):
    def log_message(self, format: str, *args: Any) -> None:
        # Requests are logged by the access-log middleware.
        pass


def _prefix(base_path: str) -> str:
    base = (base_path or "").strip("/")
    return f"/{base}" if base else ""


def create_app(
    sessions_manager: Any,
    themes: Themes | None,
    config: StrategyConfig | None = None,
    base_path: str = "/",
) -> Flask:
    """Build the application serving the strategies and the health check."""
    app = Flask("sablier")
    install_access_log(app, logging.getLogger("sablier.access"))

    strategy = ServeStrategy(sessions_manager, config or StrategyConfig(), themes)
    health = Health()
    prefix = _prefix(base_path)

    app.add_url_rule(f"{prefix}/api/strategies/dynamic", "dynamic", strategy.serve_dynamic)
    app.add_url_rule(
        f"{prefix}/api/strategies/dynamic/themes", "dynamic_themes", strategy.serve_dynamic_themes
    )
    app.add_url_rule(f"{prefix}/api/strategies/blocking", "blocking", strategy.serve_blocking)
    app.add_url_rule(f"{prefix}/health", "health", health.serve)

    app.extensions["sablier"] = {"health": health, "strategy": strategy}
    return app


def serve(app: Flask, port: int) -> None:
    """Serve ``app`` until SIGINT or SIGTERM, then shut down gracefully."""
    server = make_server(
        "0.0.0.0", port, app, server_class=_ThreadingWSGIServer, handler_class=_QuietHandler
    )
    stop = threading.Event()
    previous: dict[int, Any] = {}
    if threading.current_thread() is threading.main_thread():
        for sig in (signal.SIGINT, signal.SIGTERM):
            previous[sig] = signal.signal(sig, lambda signum, frame: stop.set())

    thread = threading.Thread(target=server.serve_forever, name="http-server", daemon=True)
    logger.info("server listening :%d", port)
    for rule in app.url_map.iter_rules():
        logger.debug("%s %s %s", ",".join(sorted(rule.methods or ())), rule.rule, rule.endpoint)
    thread.start()
    try:
        while not stop.wait(0.5):
            if not thread.is_alive():
                break
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)
        logger.info("shutting down gracefully, press Ctrl+C again to force")
        health = app.extensions.get("sablier", {}).get("health")
        if health is not None:
            health.mark_terminating()
        server.shutdown()
        thread.join(SHUTDOWN_TIMEOUT)
        server.server_close()
        logger.info("server exiting")