"""
netatmo_bridge/routers/debug.py
Endpoints (only mounted with NETATMO_DEBUG_HANDLERS=true):
  GET /debug/netatmo  → cached raw devices + refresh health, per source
  GET /debug/token    → what we know about the current token (no secrets)

Read-only: never triggers a refresh. Status 200 if no source is failing,
206 if some are, 502 if all are.
"""

import logging

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse

from netatmo_bridge.core.cache import RefreshState

log = logging.getLogger("debug")

router = APIRouter(prefix="/debug", tags=["debug"])


def _source_view(state: RefreshState) -> dict:
    view: dict = {
        "healthy":          state.healthy,
        "last_refresh":     state.last_attempt,
        "last_success":     state.last_success,
        "refresh_duration": round(state.last_duration, 3),
    }
    if state.last_error is not None:
        view["error"] = f"Error retrieving data: {state.last_error}"
    view["devices"] = state.snapshot.raw if state.snapshot is not None else []
    return view


@router.get("/netatmo")
async def debug_netatmo(request: Request):
    caches = request.app.state.caches
    body, failing = {}, 0
    for name, cache in caches.items():
        state = cache.read()
        body[name] = _source_view(state)
        if state.last_error is not None:
            failing += 1
            log.warning(f"Debug handler: {name}: {state.last_error}")

    status = 200
    if caches and failing == len(caches):
        body["error"] = "All data sources are failing"
        status = 502
    elif failing:
        status = 206
    return JSONResponse(body, status_code=status)


@router.get("/token")
async def debug_token(request: Request):
    cred = request.app.state.credentials.peek()
    if cred is None:
        raise HTTPException(404, detail="No token available.")
    return {
        "isValid":         cred.valid(),
        "hasAccessToken":  bool(cred.access_token),
        "hasRefreshToken": bool(cred.refresh_token),
        "expiry":          cred.expiry,
    }
