"""Shared request helper mapping httpx failures onto the error taxonomy."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from songsmith.services.errors import NetworkError, ParseError, ServiceError

log = logging.getLogger(__name__)


async def request_json(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    what: str,
    **kwargs: Any,
) -> Any:
    """Send one request and return the decoded JSON body.

    ``what`` names the step for error messages, e.g. "Failed to create track".
    Raises NetworkError, ServiceError(status, body) or ParseError.
    """
    try:
        resp = await client.request(method, url, **kwargs)
    except httpx.TransportError as e:
        raise NetworkError(f"{what}: {e}") from e

    if not resp.is_success:
        body = resp.text
        log.debug("%s %s -> %s %s", method, url, resp.status_code, body[:500])
        raise ServiceError.from_response(what, resp.status_code, body)

    try:
        return resp.json()
    except ValueError as e:
        raise ParseError(f"{what}: response is not JSON") from e
