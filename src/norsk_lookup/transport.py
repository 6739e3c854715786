"""Shared HTTP plumbing for the lookup adapters."""

from __future__ import annotations

from typing import Any

from requests import Response, Session
from requests.exceptions import RequestException

from .errors import TransportError


def make_session(user_agent: str) -> Session:
    """Create a requests session with the project User-Agent."""
    session = Session()
    session.headers.update({"User-Agent": user_agent, "Accept": "application/json"})
    return session


def decode_json(response: Response, service: str) -> Any:
    """Return the JSON payload of a 2xx response, or None when the body is empty.

    Non-2xx statuses and unparsable bodies raise TransportError.
    """
    try:
        response.raise_for_status()
    except RequestException as exc:
        raise TransportError(f"{service} responded with HTTP {response.status_code}") from exc
    if not response.content or not response.content.strip():
        return None
    try:
        return response.json()
    except ValueError as exc:
        raise TransportError(f"{service} returned malformed JSON") from exc


def send(session: Session, method: str, url: str, *, service: str, **kwargs: Any) -> Response:
    """Issue one request, wrapping connection failures in TransportError."""
    try:
        return session.request(method, url, **kwargs)
    except RequestException as exc:
        raise TransportError(f"{service} request failed: {exc}") from exc


def get_json(session: Session, url: str, *, service: str, timeout: float, **kwargs: Any) -> Any:
    """GET a URL and decode its JSON body (None for an empty body)."""
    response = send(session, "GET", url, service=service, timeout=timeout, **kwargs)
    return decode_json(response, service)
