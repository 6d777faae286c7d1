"""
netatmo_bridge/routers/home.py
Endpoints:
  GET /         → human-readable status page (auth state + per-source health)
  GET /version  → build info
Times are shown in NETATMO_DISPLAY_TZ.
"""

import html
import time
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse

from netatmo_bridge.core.config import NETATMO_DEV_SITE, VERSION

router = APIRouter(tags=["meta"])


def _display(ts: Optional[float], tz) -> str:
    if not ts:
        return "never"
    dt = datetime.fromtimestamp(ts, tz=timezone.utc).astimezone(tz)
    return dt.strftime("%d %b %Y %H:%M:%S %Z")


def _remaining(expiry: Optional[float]) -> str:
    if expiry is None:
        return "unknown"
    left = int(expiry - time.time())
    if left <= 0:
        return "expired"
    return f"{left // 60}m{left % 60:02d}s"


def _auth_section(cred, tz) -> str:
    if cred is not None and cred.valid():
        return (
            "<p>Authenticated. Token expires "
            f"{html.escape(_display(cred.expiry, tz))} (in {_remaining(cred.expiry)}).</p>"
            '<form method="post" action="/auth/deletetoken">'
            '<button type="submit">Delete token</button></form>'
        )
    hint = "Token expired or not yet renewed." if cred is not None else "Not authenticated."
    return (
        f"<p>{hint}</p>"
        '<p><a href="/auth/authorize">Log in with Netatmo</a></p>'
        '<form method="post" action="/auth/settoken">'
        '<label>Refresh token <input name="refresh_token" size="60"></label> '
        '<button type="submit">Set token</button></form>'
        f'<p>Tokens can be generated on the <a href="{NETATMO_DEV_SITE}">Netatmo developer site</a>.</p>'
    )


def _sources_section(caches, tz) -> str:
    if not caches:
        return "<p>No data sources enabled.</p>"
    rows = []
    for name, cache in caches.items():
        state = cache.read()
        count = len(state.snapshot.readings) if state.snapshot is not None else 0
        error = html.escape(str(state.last_error)) if state.last_error is not None else ""
        rows.append(
            f"<tr><td>{html.escape(name)}</td>"
            f"<td>{'up' if state.healthy else 'down'}</td>"
            f"<td>{html.escape(_display(state.last_attempt, tz))}</td>"
            f"<td>{html.escape(_display(state.last_success, tz))}</td>"
            f"<td>{count}</td><td>{error}</td></tr>"
        )
    return (
        "<table><tr><th>Source</th><th>Status</th><th>Last refresh</th>"
        "<th>Last success</th><th>Devices</th><th>Error</th></tr>"
        + "".join(rows) + "</table>"
    )


@router.get("/", response_class=HTMLResponse)
async def home(request: Request):
    state = request.app.state
    tz = state.settings.timezone
    links = '<a href="/metrics/v1">/metrics/v1</a> · <a href="/metrics/v2">/metrics/v2</a>'
    if state.settings.debug_handlers:
        links += ' · <a href="/debug/netatmo">/debug/netatmo</a> · <a href="/debug/token">/debug/token</a>'
    return (
        "<!DOCTYPE html><html><head><title>netatmo-bridge</title></head><body>"
        f"<h1>netatmo-bridge {VERSION}</h1>"
        f"<h2>Authentication</h2>{_auth_section(state.credentials.peek(), tz)}"
        f"<h2>Data sources</h2>{_sources_section(state.caches, tz)}"
        f"<p>{links}</p>"
        "</body></html>"
    )


@router.get("/version", tags=["meta"])
async def version():
    return {"version": VERSION}
