"""
netatmo_bridge/core/cache.py
═══════════════════════════════════════════════════════════════════════════
Per-source refresh cache.
  • Scrapes call read() + maybe_refresh(); neither ever waits on the network
  • maybe_refresh() checks and marks last_attempt under the lock, then spawns
    ONE background refresh task → at most one fetch per refresh interval
  • The lock is never held across the fetch; results are committed by
    replacing the immutable RefreshState in one assignment
  • Failed refreshes keep the previous snapshot → stale data stays served
    until the projector judges individual readings expired
═══════════════════════════════════════════════════════════════════════════
"""

import asyncio
import logging
import threading
import time
from dataclasses import dataclass, replace
from typing import Awaitable, Callable, Optional

from netatmo_bridge.core.credentials import Credential, NotAuthenticatedError
from netatmo_bridge.core.models import Snapshot
from netatmo_bridge.core.staleness import refresh_due

log = logging.getLogger("cache")

Reader = Callable[[Credential], Awaitable[Snapshot]]
CredentialProvider = Callable[[], Awaitable[Credential]]


@dataclass(frozen=True)
class RefreshState:
    last_attempt: Optional[float] = None
    last_error: Optional[BaseException] = None
    last_duration: float = 0.0
    last_success: Optional[float] = None
    snapshot: Optional[Snapshot] = None

    @property
    def healthy(self) -> bool:
        return self.last_error is None and self.last_success is not None


class RefreshCache:
    def __init__(
        self,
        name: str,
        reader: Reader,
        credentials: CredentialProvider,
        refresh_interval: float,
        timeout: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.name             = name
        self.refresh_interval = refresh_interval
        self.timeout          = timeout
        self._reader          = reader
        self._credentials     = credentials
        self._clock           = clock
        self._lock            = threading.Lock()
        self._state           = RefreshState()
        self._tasks: set[asyncio.Task] = set()

    def read(self) -> RefreshState:
        """Latest committed state. The object is immutable; callers may keep it."""
        with self._lock:
            return self._state

    def maybe_refresh(self, now: Optional[float] = None) -> bool:
        """
        Start a background refresh if the refresh interval has elapsed.
        Must be called from the event loop thread. Returns True if started.
        """
        now = self._clock() if now is None else now
        with self._lock:
            if not refresh_due(self._state.last_attempt, now, self.refresh_interval):
                return False
            since = self._state.last_attempt
            self._state = replace(self._state, last_attempt=now)

        if since is None:
            log.debug(f"{self.name}: first refresh")
        else:
            log.debug(f"{self.name}: refreshing, {now - since:.0f}s since last attempt")
        task = asyncio.get_running_loop().create_task(self.refresh(now))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return True

    async def refresh(self, now: float) -> None:
        """One credential lookup + one fetch, then commit. Never raises (except cancel)."""
        start = self._clock()
        try:
            if self.timeout is not None:
                snapshot = await asyncio.wait_for(self._attempt(), self.timeout)
            else:
                snapshot = await self._attempt()
        except asyncio.CancelledError:
            # shutdown: nothing committed
            raise
        except asyncio.TimeoutError:
            self._commit_error(TimeoutError(f"refresh timed out after {self.timeout}s"), start)
        except NotAuthenticatedError as ex:
            log.warning(f"{self.name}: not authenticated, skipping refresh")
            self._commit_error(ex, start, logged=True)
        except Exception as ex:
            self._commit_error(ex, start)
        else:
            duration = self._clock() - start
            with self._lock:
                self._state = replace(
                    self._state,
                    last_error=None,
                    last_duration=duration,
                    last_success=now,
                    snapshot=snapshot,
                )
            log.info(f"{self.name}: {len(snapshot.readings)} readings cached in {duration:.2f}s")

    async def _attempt(self) -> Snapshot:
        # the timeout covers token renewal as well as the fetch
        credential = await self._credentials()
        return await self._reader(credential)

    def _commit_error(self, ex: BaseException, start: float, logged: bool = False) -> None:
        duration = self._clock() - start
        with self._lock:
            self._state = replace(self._state, last_error=ex, last_duration=duration)
        if not logged:
            log.error(f"{self.name}: error during refresh: {ex}")

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    async def join(self) -> None:
        """Wait for in-flight refreshes to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        """Cancel in-flight refreshes. Partial work is discarded."""
        tasks = list(self._tasks)
        for t in tasks:
            t.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
