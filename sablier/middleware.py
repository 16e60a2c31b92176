"""Access logging for the HTTP server."""

from __future__ import annotations

import logging
import math
import socket
import time
from datetime import datetime

from flask import Flask, Response, g, request

_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


def _format_time(when: datetime) -> str:
    return f"{when:%d}/{_MONTHS[when.month - 1]}/{when:%Y:%H:%M:%S %z}"


def format_access_line(
    client_ip: str,
    hostname: str,
    when: datetime,
    method: str,
    path: str,
    status_code: int,
    data_length: int,
    referer: str,
    user_agent: str,
    latency: int,
) -> str:
    """Return one access log line in the common log style."""
    return (
        f'{client_ip} - {hostname} [{_format_time(when)}] "{method} {path}" '
        f'{status_code} {data_length} "{referer}" "{user_agent}" ({latency}ms)'
    )


def install_access_log(app: Flask, logger: logging.Logger, *not_logged: str) -> None:
    """Log every request handled by ``app`` except those to ``not_logged`` paths."""
    try:
        hostname = socket.gethostname()
    except OSError:
        hostname = "unknow"
    skip = frozenset(not_logged)

    @app.before_request
    def _start_timer() -> None:
        g._access_log_start = time.perf_counter()

    @app.after_request
    def _log_access(response: Response) -> Response:
        path = request.path
        start = g.get("_access_log_start", time.perf_counter())
        latency = int(math.ceil((time.perf_counter() - start) * 1000.0))
        if path in skip:
            return response
        status_code = response.status_code
        length = response.content_length
        if length is None:
            length = response.calculate_content_length()
        data_length = max(length or 0, 0)
        client_ip = request.remote_addr or ""
        referer = request.referrer or ""
        user_agent = request.user_agent.string
        fields = {
            "hostname": hostname,
            "statusCode": status_code,
            "latency": latency,
            "clientIP": client_ip,
            "method": request.method,
            "path": path,
            "referer": referer,
            "dataLength": data_length,
            "userAgent": user_agent,
        }
        message = format_access_line(
            client_ip,
            hostname,
            datetime.now().astimezone(),
            request.method,
            path,
            status_code,
            data_length,
            referer,
            user_agent,
            latency,
        )
        if status_code >= 500:
            logger.error(message, extra=fields)
        elif status_code >= 400:
            logger.warning(message, extra=fields)
        else:
            logger.info(message, extra=fields)
        return response