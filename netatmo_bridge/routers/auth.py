"""
netatmo_bridge/routers/auth.py
═══════════════════════════════════════════════════════════════════════════════
Endpoints:
  GET  /auth/authorize    → redirect to Netatmo login (scopes follow the
                            enabled sources: read_station, read_homecoach)
  GET  /auth/callback     → exchange ?code=&state= for a token
  POST /auth/settoken     → install a refresh token pasted from dev.netatmo.com
  POST /auth/deletetoken  → forget the token (memory + token file)

Every successful change redirects back to the status page.
═══════════════════════════════════════════════════════════════════════════════
"""

import logging

from fastapi import APIRouter, Form, HTTPException, Request
from fastapi.responses import RedirectResponse

from netatmo_bridge.core.credentials import CredentialError

log = logging.getLogger("auth")

router = APIRouter(prefix="/auth", tags=["auth"])


def _redirect_uri(request: Request) -> str:
    return request.app.state.settings.external_url + "/auth/callback"


@router.get("/authorize")
async def authorize(request: Request):
    settings = request.app.state.settings
    url = request.app.state.credentials.authorize_url(_redirect_uri(request), settings.scopes())
    return RedirectResponse(url, status_code=302)


@router.get("/callback")
async def callback(request: Request, code: str = "", state: str = "", error: str = ""):
    if error:
        raise HTTPException(400, detail="Error processing code: user did not accept")
    settings = request.app.state.settings
    try:
        await request.app.state.credentials.exchange(code, state, _redirect_uri(request), settings.scopes())
    except CredentialError as ex:
        raise HTTPException(400, detail=f"Error processing code: {ex}")
    log.info("Successfully authenticated and created new token via OAuth")
    return RedirectResponse("/", status_code=302)


@router.post("/settoken")
async def set_token(request: Request, refresh_token: str = Form("")):
    if not refresh_token.strip():
        raise HTTPException(400, detail="The refresh token can not be empty. Please go back.")
    request.app.state.credentials.set_refresh_token(refresh_token.strip())
    log.info("Successfully set new token manually via refresh token")
    return RedirectResponse("/", status_code=302)


@router.post("/deletetoken")
async def delete_token(request: Request):
    store = request.app.state.token_store
    try:
        store.delete()
    except OSError as ex:
        log.error(f"Failed to delete token file {store.path}: {ex}")
        raise HTTPException(500, detail="Failed to delete token file")
    if store.path:
        log.info(f"Token file deleted or already absent: {store.path}")
    request.app.state.credentials.clear()
    log.info("Token cleared from memory. Please re-authenticate to create a new token.")
    return RedirectResponse("/", status_code=302)
