"""Wires the provider, the sessions, the storage and the HTTP server together."""

from __future__ import annotations

import logging
import os
import threading
from typing import Callable

from sablier.instance import State
from sablier.provider import Provider
from sablier.routes import StrategyConfig
from sablier.server import create_app, serve
from sablier.sessions import SessionsManager
from sablier.storage import FileStorage, StorageDisabledError
from sablier.store import ExpiringStore
from sablier.theme import Themes

logger = logging.getLogger(__name__)

_LEVELS = {
    "panic": logging.CRITICAL,
    "fatal": logging.CRITICAL,
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
    "trace": logging.DEBUG,
}


def _parse_log_level(name: str) -> int:
    level = _LEVELS.get((name or "").strip().lower())
    if level is None:
        logger.warning(
            'unrecognized log level "%s" must be one of [panic, fatal, error, warn, info, debug, trace]',
            name,
        )
        return logging.INFO
    return level


def on_session_expires(provider: Provider) -> Callable[[str, State], None]:
    """Return a callback that stops an expired instance in the background."""

    def callback(key: str, state: State) -> None:
        def run() -> None:
            logger.debug("stopping %s...", key)
            try:
                provider.stop(key)
            except Exception as exc:
                logger.warning("error stopping %s: %s", key, exc)
            else:
                logger.debug("stopped %s", key)

        threading.Thread(target=run, name=f"stop-{key}", daemon=True).start()

    return callback


def load_sessions(storage: FileStorage, manager: SessionsManager) -> None:
    """Load persisted sessions, logging any failure."""
    try:
        reader = storage.reader()
    except (OSError, StorageDisabledError) as exc:
        logger.error("error loading sessions: %s", exc)
        return
    try:
        manager.load_sessions(reader)
    except (OSError, ValueError, KeyError, TypeError, AttributeError) as exc:
        logger.error("error loading sessions: %s", exc)


def save_sessions(storage: FileStorage, manager: SessionsManager) -> None:
    """Persist sessions, logging any failure."""
    try:
        writer = storage.writer()
    except (OSError, StorageDisabledError) as exc:
        logger.error("error saving sessions: %s", exc)
        return
    try:
        manager.save_sessions(writer)
    except (OSError, ValueError, TypeError) as exc:
        logger.error("error saving sessions: %s", exc)


def start(
    provider: Provider,
    config: StrategyConfig | None = None,
    port: int = 10000,
    base_path: str = "/",
    storage_file: str | os.PathLike[str] | None = None,
    themes_path: str | os.PathLike[str] | None = None,
    expiration_interval: float = 20.0,
    log_level: str = "info",
) -> None:
    """Run the server until it is interrupted, saving sessions on exit."""
    level = _parse_log_level(log_level)
    logging.basicConfig(level=level)
    logging.getLogger().setLevel(level)

    logger.info('using provider "%s"', type(provider).__name__)

    store: ExpiringStore[State] = ExpiringStore(expiration_interval, on_session_expires(provider))
    storage = FileStorage(storage_file)
    manager = SessionsManager(store, provider)
    try:
        if storage.enabled():
            load_sessions(storage, manager)

        if themes_path:
            logger.debug("loading themes with custom theme path: %s", themes_path)
            themes = Themes.from_directory(themes_path)
        else:
            logger.debug("loading themes without custom themes")
            themes = Themes()

        app = create_app(manager, themes, config or StrategyConfig(), base_path)
        serve(app, port)
    finally:
        if storage.enabled():
            save_sessions(storage, manager)
        manager.stop()