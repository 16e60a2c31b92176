"""Check the health endpoint of a running server."""

from __future__ import annotations

import requests


def health(url: str) -> tuple[str, bool]:
    """Fetch ``url``; return the body (or error text) and whether it is healthy."""
    try:
        response = requests.get(url)
    except requests.RequestException as exc:
        return str(exc), False
    try:
        body = response.text
    except (requests.RequestException, UnicodeDecodeError) as exc:
        return str(exc), False
    return body, response.status_code < 400