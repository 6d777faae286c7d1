"""
netatmo_bridge/core/credentials.py
═══════════════════════════════════════════════════════════════════════════════
Netatmo OAuth2 credentials.

  • CredentialSource.current_credential() → valid token or an exception
      NotAuthenticatedError  nobody has logged in (or the token was deleted)
      CredentialError        renewal / code exchange failed
  • Renewal uses the refresh token; only one renewal runs at a time
  • Every change is announced through on_update(credential) so the app can
    persist the token file
  • TokenStore reads/writes the token file (JSON, mode 0600)
═══════════════════════════════════════════════════════════════════════════════
"""

import asyncio
import json
import logging
import os
import secrets
import time
from dataclasses import dataclass, replace
from typing import Callable, Optional
from urllib.parse import urlencode

import httpx

from netatmo_bridge.core.config import NETATMO_AUTH_URL, NETATMO_TOKEN_URL
from netatmo_bridge.core.http_client import api_client

log = logging.getLogger("credentials")

EXPIRY_DELTA_S = 10.0


class NotAuthenticatedError(Exception):
    """No credential has been configured."""

    def __init__(self, message: str = "not authenticated"):
        super().__init__(message)


class CredentialError(Exception):
    """A credential exists but could not be obtained or renewed."""


@dataclass(frozen=True)
class Credential:
    access_token: str = ""
    refresh_token: str = ""
    expiry: Optional[float] = None   # epoch seconds, None = unknown

    def valid(self, now: Optional[float] = None) -> bool:
        if not self.access_token:
            return False
        if self.expiry is None:
            return True
        now = time.time() if now is None else now
        return now < self.expiry - EXPIRY_DELTA_S

    def expired(self, now: Optional[float] = None) -> bool:
        now = time.time() if now is None else now
        return self.expiry is not None and self.expiry <= now

    def to_dict(self) -> dict:
        return {
            "access_token":  self.access_token,
            "refresh_token": self.refresh_token,
            "expiry":        self.expiry,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Credential":
        expiry = data.get("expiry")
        return cls(
            access_token=data.get("access_token") or "",
            refresh_token=data.get("refresh_token") or "",
            expiry=float(expiry) if expiry is not None else None,
        )


class TokenStore:
    """JSON token file. An empty path disables persistence."""

    def __init__(self, path: str):
        self.path = path

    def load(self) -> Optional[Credential]:
        if not self.path:
            return None
        try:
            with open(self.path, encoding="utf-8") as fh:
                return Credential.from_dict(json.load(fh))
        except FileNotFoundError:
            return None

    def save(self, credential: Credential) -> None:
        if not self.path:
            return
        fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(credential.to_dict(), fh)

    def delete(self) -> None:
        if not self.path:
            return
        try:
            os.remove(self.path)
        except FileNotFoundError:
            pass


class CredentialSource:
    def __init__(
        self,
        client_id: str,
        client_secret: str,
        on_update: Optional[Callable[[Credential], None]] = None,
        client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.client_id     = client_id
        self.client_secret = client_secret
        self._on_update    = on_update
        self._client       = client
        self._clock        = clock
        self._credential: Optional[Credential] = None
        self._state: Optional[str] = None
        self._renew_lock = asyncio.Lock()

    # ── Reading ────────────────────────────────────────────────────────────────

    def peek(self) -> Optional[Credential]:
        """Current credential as stored, without renewal."""
        return self._credential

    async def current_credential(self) -> Credential:
        cred = self._credential
        if cred is None:
            raise NotAuthenticatedError()
        if cred.valid(self._clock()):
            return cred
        async with self._renew_lock:
            # another caller may have renewed while we waited
            cred = self._credential
            if cred is None:
                raise NotAuthenticatedError()
            if cred.valid(self._clock()):
                return cred
            if not cred.refresh_token:
                raise CredentialError("token expired and no refresh token available")
            return await self._renew(cred)

    # ── Changing ───────────────────────────────────────────────────────────────

    def restore(self, credential: Optional[Credential]) -> None:
        """Install a credential loaded from disk. Does not notify."""
        self._credential = credential

    def set_refresh_token(self, refresh_token: str) -> None:
        # no access token yet → the next current_credential() renews immediately
        self._update(Credential(refresh_token=refresh_token))

    def clear(self) -> None:
        self._credential = None

    def authorize_url(self, redirect_uri: str, scopes: list[str]) -> str:
        self._state = secrets.token_urlsafe(16)
        query = urlencode({
            "client_id":    self.client_id,
            "redirect_uri": redirect_uri,
            "scope":        " ".join(scopes),
            "state":        self._state,
        })
        return f"{NETATMO_AUTH_URL}?{query}"

    async def exchange(self, code: str, state: str, redirect_uri: str, scopes: list[str]) -> Credential:
        if not code:
            raise CredentialError("missing authorization code")
        if self._state is None or not secrets.compare_digest(state, self._state):
            raise CredentialError("state mismatch")
        self._state = None
        cred = await self._token_request({
            "grant_type":   "authorization_code",
            "code":         code,
            "redirect_uri": redirect_uri,
            "scope":        " ".join(scopes),
        })
        self._update(cred)
        return cred

    # ── Internals ──────────────────────────────────────────────────────────────

    async def _renew(self, cred: Credential) -> Credential:
        log.debug("Renewing access token")
        new = await self._token_request({
            "grant_type":    "refresh_token",
            "refresh_token": cred.refresh_token,
        })
        if not new.refresh_token:
            new = replace(new, refresh_token=cred.refresh_token)
        self._update(new)
        return new

    async def _token_request(self, form: dict) -> Credential:
        client = self._client or api_client()
        data = {**form, "client_id": self.client_id, "client_secret": self.client_secret}
        started = self._clock()
        try:
            resp = await client.post(NETATMO_TOKEN_URL, data=data)
        except httpx.HTTPError as ex:
            raise CredentialError(f"token request failed: {ex}") from ex
        if resp.status_code != 200:
            raise CredentialError(f"token request failed: HTTP {resp.status_code}")
        try:
            body = resp.json()
            access_token = body["access_token"]
        except (ValueError, KeyError, TypeError) as ex:
            raise CredentialError(f"malformed token response: {ex}") from ex
        expires_in = body.get("expires_in")
        return Credential(
            access_token=access_token,
            refresh_token=body.get("refresh_token") or "",
            expiry=started + float(expires_in) if expires_in is not None else None,
        )

    def _update(self, cred: Credential) -> None:
        self._credential = cred
        if cred.expiry is not None:
            log.debug(f"Token updated. Expires in {cred.expiry - self._clock():.0f}s")
        if self._on_update is not None:
            try:
                self._on_update(cred)
            except OSError as ex:
                log.error(f"Error saving token: {ex}")
