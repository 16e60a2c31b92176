"""HTTP handlers for the health check and the strategies."""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from functools import lru_cache
from http import HTTPStatus
from importlib import metadata
from typing import Any, Mapping

from flask import Response, request

from sablier.models import BlockingRequest, DynamicRequest, RequestBindingError
from sablier.sessions import RequestCancelledError, SessionNotReadyError, SessionState
from sablier.theme import Instance, Options, ThemeNotFoundError, Themes

logger = logging.getLogger(__name__)

SESSION_STATUS_HEADER = "X-Sablier-Session-Status"


@lru_cache(maxsize=1)
def _version() -> str:
    try:
        return metadata.version("sablier")
    except metadata.PackageNotFoundError:
        return "draft"


@dataclass
class StrategyConfig:
    """Defaults applied to strategy requests; durations in seconds."""

    default_theme: str = "hacker-terminal"
    show_details_by_default: bool = True
    default_refresh_frequency: float = 5.0
    default_timeout: float = 60.0
    default_session_duration: float = 300.0


class Health:
    """Reports OK until the server starts terminating."""

    def __init__(self, terminating_status_code: int = HTTPStatus.SERVICE_UNAVAILABLE) -> None:
        self.terminating_status_code = int(terminating_status_code)
        self._terminating = threading.Event()

    @property
    def terminating(self) -> bool:
        return self._terminating.is_set()

    def mark_terminating(self) -> None:
        self._terminating.set()

    def serve(self) -> tuple[str, int, dict[str, str]]:
        code = self.terminating_status_code if self.terminating else int(HTTPStatus.OK)
        return HTTPStatus(code).phrase, code, {"Content-Type": "text/plain; charset=utf-8"}


def _request_data() -> Mapping[str, Any]:
    if request.is_json:
        body = request.get_json(silent=True)
        if isinstance(body, dict):
            return body
    return request.args


def _text(message: str, status: int) -> Response:
    return Response(message, status=status, mimetype="text/plain")


def _json(payload: Any, status: int = 200, headers: Mapping[str, str] | None = None) -> Response:
    body = json.dumps(payload, separators=(",", ":"), ensure_ascii=False)
    return Response(
        body,
        status=status,
        headers=dict(headers or {}),
        content_type="application/json; charset=utf-8",
    )


def session_to_theme_instances(session: SessionState) -> list[Instance]:
    """Convert a session to the instances shown on a waiting page, sorted by name."""
    instances = []
    for name, entry in session.instances.items():
        state = entry.instance
        if state is None:
            instances.append(Instance(name=name, error=entry.error))
            continue
        instances.append(
            Instance(
                name=state.name,
                status=state.status.value,
                error=Exception(state.message) if state.message else None,
                current_replicas=state.current_replicas,
                desired_replicas=state.desired_replicas,
            )
        )
    return sorted(instances, key=lambda instance: instance.name)


class ServeStrategy:
    """Serves the dynamic and blocking strategies."""

    def __init__(self, sessions_manager: Any, config: StrategyConfig, themes: Themes | None) -> None:
        self.sessions_manager = sessions_manager
        self.config = config
        self.themes = themes

    def serve_dynamic(self) -> Response:
        """Render a waiting page and report the session status in a header."""
        config = self.config
        default = DynamicRequest(
            theme=config.default_theme,
            show_details=config.show_details_by_default,
            refresh_frequency=config.default_refresh_frequency,
            session_duration=config.default_session_duration,
        )
        try:
            params = DynamicRequest.from_mapping(_request_data(), default)
        except RequestBindingError as exc:
            return _text(str(exc), HTTPStatus.BAD_REQUEST)

        if params.names:
            session = self.sessions_manager.request_session(params.names, params.session_duration)
        else:
            session = self.sessions_manager.request_session_group(params.group, params.session_duration)
        if session is None:
            return Response(status=HTTPStatus.NOT_FOUND)

        headers = {SESSION_STATUS_HEADER: session.status()}
        options = Options(
            display_name=params.display_name,
            show_details=params.show_details,
            instance_states=session_to_theme_instances(session),
            session_duration=params.session_duration,
            refresh_frequency=params.refresh_frequency,
        )
        try:
            if self.themes is None:
                raise ThemeNotFoundError(f"theme {params.theme} does not exist")
            page = self.themes.render(params.theme, options, _version())
        except ThemeNotFoundError as exc:
            logger.error("%s", exc)
            response = _text(str(exc), HTTPStatus.INTERNAL_SERVER_ERROR)
            response.headers.update(headers)
            return response
        return Response(page, status=HTTPStatus.OK, headers=headers, content_type="text/html")

    def serve_blocking(self) -> Response:
        """Wait for the session to be ready and return it as JSON."""
        default = BlockingRequest(timeout=self.config.default_timeout)
        try:
            params = BlockingRequest.from_mapping(_request_data(), default)
        except RequestBindingError as exc:
            return _text(str(exc), HTTPStatus.BAD_REQUEST)

        manager = self.sessions_manager
        try:
            if params.names:
                session = manager.request_ready_session(
                    params.names, params.session_duration, params.timeout, None
                )
            else:
                session = manager.request_ready_session_group(
                    params.group, params.session_duration, params.timeout, None
                )
        except (SessionNotReadyError, RequestCancelledError, ValueError) as exc:
            return _text(str(exc), HTTPStatus.INTERNAL_SERVER_ERROR)

        if session is None:
            return Response(status=HTTPStatus.NOT_FOUND)

        return _json(
            {"session": session.to_dict()},
            headers={SESSION_STATUS_HEADER: session.status()},
        )

    def serve_dynamic_themes(self) -> Response:
        """List the loaded themes."""
        themes = self.themes.list() if self.themes is not None else []
        return _json({"themes": themes})