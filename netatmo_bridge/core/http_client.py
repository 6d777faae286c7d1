"""
netatmo_bridge/core/http_client.py
Shared async httpx client for api.netatmo.com.
  • api_client() → lazily created, reused by readers and token renewal
  • close_all()  → called once on shutdown
Per-request timeouts are enforced by the refresh cache; the client timeout
is only a backstop for calls made outside it (token exchange).
"""

import httpx

from netatmo_bridge.core.config import VERSION

_api_client: httpx.AsyncClient | None = None

_LIMITS  = httpx.Limits(max_connections=10, max_keepalive_connections=5)
_TIMEOUT = httpx.Timeout(30.0, connect=15.0)
_HEADERS = {
    "User-Agent": f"netatmo-bridge/{VERSION}",
    "Accept":     "application/json",
}


def api_client() -> httpx.AsyncClient:
    global _api_client
    if _api_client is None or _api_client.is_closed:
        _api_client = httpx.AsyncClient(
            headers=_HEADERS,
            timeout=_TIMEOUT,
            follow_redirects=True,
            limits=_LIMITS,
        )
    return _api_client


async def close_all() -> None:
    global _api_client
    if _api_client and not _api_client.is_closed:
        await _api_client.aclose()
    _api_client = None
