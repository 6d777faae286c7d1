"""
netatmo_bridge/main.py  ·  netatmo-bridge
Startup: restores the token file, warms every enabled cache once.
Scrapes are cache-read-only; refreshes run in the background.

Run:  netatmo-bridge                      (console script, reads NETATMO_*)
      uvicorn netatmo_bridge.main:create_app --factory
"""

import logging
import sys
import time
from contextlib import asynccontextmanager
from dataclasses import replace
from typing import Callable, Mapping, Optional

import uvicorn
from fastapi import FastAPI

from netatmo_bridge.core.aggregator import Aggregator, Source
from netatmo_bridge.core.cache import Reader, RefreshCache
from netatmo_bridge.core.config import HOMECOACH, VERSION, WEATHER, ConfigError, Settings, load_settings
from netatmo_bridge.core.credentials import CredentialSource, TokenStore
from netatmo_bridge.core.exposition import build_registry
from netatmo_bridge.core.http_client import close_all
from netatmo_bridge.core.projector import LEGACY, UNIFIED
from netatmo_bridge.readers.homecoach import fetch_homecoach
from netatmo_bridge.readers.weather import fetch_weather
from netatmo_bridge.routers import auth, debug, home, metrics

log = logging.getLogger("main")

DEFAULT_READERS: dict[str, Reader] = {
    WEATHER:   fetch_weather,
    HOMECOACH: fetch_homecoach,
}


def _restore_token(store: TokenStore, credentials: CredentialSource, now: float) -> None:
    if not store.path:
        log.warning("No token-file set! Authentication will be lost on restart.")
        return
    try:
        token = store.load()
    except ValueError as ex:
        log.error(f"Error loading token: {ex}")
        raise
    if token is None:
        return
    if token.expired(now):
        log.warning("Restored token has expired! Token has been ignored.")
        return
    if not token.refresh_token:
        log.warning("Restored token has no refresh-token! Exporter will need to be re-authenticated manually.")
    elif token.expiry is None:
        log.warning("Restored token has no expiry time! Token will be renewed immediately.")
        token = replace(token, expiry=now + 1)
    log.info(f"Loaded token from {store.path}.")
    credentials.restore(token)


def _save_token(store: TokenStore, credentials: CredentialSource) -> None:
    cred = credentials.peek()
    if not store.path or cred is None:
        return
    log.info(f"Saving token to {store.path} ...")
    try:
        store.save(cred)
    except OSError as ex:
        log.error(f"Error persisting token: {ex}")


def create_app(
    settings: Optional[Settings] = None,
    readers: Optional[Mapping[str, Reader]] = None,
    credentials: Optional[CredentialSource] = None,
    clock: Callable[[], float] = time.time,
) -> FastAPI:
    settings = settings or load_settings()
    readers  = {**DEFAULT_READERS, **(readers or {})}
    store    = TokenStore(settings.token_file)
    if credentials is None:
        credentials = CredentialSource(
            settings.client_id,
            settings.client_secret,
            on_update=store.save if settings.token_file else None,
            clock=clock,
        )

    enabled = set(settings.enabled_sources())
    sources = [
        Source(
            device_class=name,
            cache=RefreshCache(
                name,
                readers[name],
                credentials.current_credential,
                settings.refresh_interval,
                timeout=settings.refresh_timeout,
                clock=clock,
            ),
            enabled=name in enabled,
        )
        for name in (WEATHER, HOMECOACH)
    ]
    for src in sources:
        if not src.enabled:
            log.info(f"{src.device_class} collector disabled by configuration.")

    v1 = Aggregator(sources, settings.stale_threshold, LEGACY, clock)
    v2 = Aggregator(sources, settings.stale_threshold, UNIFIED, clock)
    if settings.runtime_metrics:
        log.info("Runtime metrics enabled.")
    else:
        log.info("Runtime metrics disabled.")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        log.info(f"netatmo-bridge {VERSION} starting...")
        _restore_token(store, credentials, clock())
        # warm the caches so the first scrape has something to show
        for src in v2.enabled():
            src.cache.maybe_refresh()
        yield
        log.info("Shutting down...")
        for src in sources:
            await src.cache.close()
        _save_token(store, credentials)
        await close_all()

    app = FastAPI(
        title="netatmo-bridge",
        description=(
            "Prometheus exporter for Netatmo weather stations and Home Coach devices. "
            "Scrapes read an in-memory cache; the Netatmo API is polled in the background "
            "at most once per refresh interval."
        ),
        version=VERSION,
        lifespan=lifespan,
    )
    app.state.settings    = settings
    app.state.credentials = credentials
    app.state.token_store = store
    app.state.caches      = {s.device_class: s.cache for s in sources if s.enabled}
    app.state.registries  = {
        "v1": build_registry(v1, credentials, settings.runtime_metrics),
        "v2": build_registry(v2, credentials, settings.runtime_metrics),
    }

    app.include_router(metrics.router)
    app.include_router(auth.router)
    app.include_router(home.router)
    if settings.debug_handlers:
        app.include_router(debug.router)

    return app


def run() -> None:
    try:
        settings = load_settings()
    except ConfigError as ex:
        print(f"Error in configuration: {ex}", file=sys.stderr)
        sys.exit(2)

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level,
    )


if __name__ == "__main__":
    run()
