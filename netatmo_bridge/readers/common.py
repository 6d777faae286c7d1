"""
netatmo_bridge/readers/common.py
Shared GET + error types for the Netatmo data endpoints.
A reader performs exactly one request; retrying is the cache's business
(and it doesn't; the next scrape after the refresh interval tries again).
"""

from typing import Any, Optional

import httpx

from netatmo_bridge.core.credentials import Credential
from netatmo_bridge.core.http_client import api_client


class ReaderError(Exception):
    """Any failure to produce a snapshot."""


class TransportError(ReaderError):
    """Network failure or non-success HTTP status."""


class DecodeError(ReaderError):
    """Upstream answered 200 but the payload is not what we expect."""


async def get_body(
    url: str,
    credential: Credential,
    client: Optional[httpx.AsyncClient] = None,
) -> dict:
    """Authenticated GET. Returns the decoded `body` object of the response."""
    client = client or api_client()
    headers = {"Authorization": f"Bearer {credential.access_token}"}
    try:
        resp = await client.get(url, headers=headers)
    except httpx.HTTPError as ex:
        raise TransportError(f"GET {url}: {ex}") from ex
    if resp.status_code != 200:
        raise TransportError(f"GET {url}: HTTP {resp.status_code}")
    try:
        payload = resp.json()
    except ValueError as ex:
        raise DecodeError(f"GET {url}: invalid JSON: {ex}") from ex
    body = payload.get("body") if isinstance(payload, dict) else None
    if not isinstance(body, dict):
        raise DecodeError(f"GET {url}: response has no 'body' object")
    return body


def device_list(body: dict, url: str) -> list[dict]:
    devices = body.get("devices", [])
    if not isinstance(devices, list) or not all(isinstance(d, dict) for d in devices):
        raise DecodeError(f"GET {url}: 'devices' is not a list of objects")
    return devices


def number(data: dict, key: str) -> Optional[float]:
    """Numeric field or None. Booleans and strings count as not reported."""
    v = data.get(key)
    if isinstance(v, bool) or not isinstance(v, (int, float)):
        return None
    return float(v)


def timestamp(data: dict) -> Optional[float]:
    return number(data, "time_utc")


def pick(*values: Any) -> str:
    """First non-empty string."""
    for v in values:
        if isinstance(v, str) and v:
            return v
    return ""
