"""
netatmo_bridge/core/config.py  ── netatmo-bridge
═══════════════════════════════════════════════════════════════════════════════
UPSTREAM:

  api.netatmo.com  →  /api/getstationsdata     weather stations + modules
                      /api/gethomecoachsdata   Home Coach (indoor air)
                      /oauth2/authorize        browser login
                      /oauth2/token            code exchange + renewal

Every tunable comes from the environment (NETATMO_*). load_settings() is
called once at startup; the resulting Settings object is handed to the app.
═══════════════════════════════════════════════════════════════════════════════
"""

import math
import os
import re
from dataclasses import dataclass
from typing import Mapping, Optional

import pytz

VERSION = "1.2.0"

# ── Netatmo API ───────────────────────────────────────────────────────────────
NETATMO_BASE      = "https://api.netatmo.com"
NETATMO_AUTH_URL  = f"{NETATMO_BASE}/oauth2/authorize"
NETATMO_TOKEN_URL = f"{NETATMO_BASE}/oauth2/token"
WEATHER_URL       = f"{NETATMO_BASE}/api/getstationsdata"
HOMECOACH_URL     = f"{NETATMO_BASE}/api/gethomecoachsdata"
NETATMO_DEV_SITE  = "https://dev.netatmo.com/apps/"

# ── Data sources ──────────────────────────────────────────────────────────────
WEATHER   = "weather"
HOMECOACH = "homecoach"

SOURCE_SCOPES: dict[str, str] = {
    WEATHER:   "read_station",
    HOMECOACH: "read_homecoach",
}

# ── Defaults ──────────────────────────────────────────────────────────────────
DEFAULT_ADDR             = ":9210"
DEFAULT_EXTERNAL_URL     = "http://127.0.0.1:9210"
DEFAULT_REFRESH_INTERVAL = 8 * 60       # 8 min, Netatmo updates every ~10 min
DEFAULT_STALE_THRESHOLD  = 60 * 60      # 1 h, older readings are dropped
DEFAULT_REFRESH_TIMEOUT  = 30.0         # one upstream attempt, then give up

LOG_LEVELS = ("debug", "info", "warning", "error", "critical")

_DURATION_RE = re.compile(r"(\d+(?:\.\d+)?)(h|m|s)")
_TRUE  = ("1", "true", "yes", "on")
_FALSE = ("0", "false", "no", "off", "")


class ConfigError(ValueError):
    """Malformed or missing configuration. Fatal at startup."""


@dataclass(frozen=True)
class Settings:
    client_id: str
    client_secret: str
    addr: str = DEFAULT_ADDR
    external_url: str = DEFAULT_EXTERNAL_URL
    token_file: str = ""
    refresh_interval: float = DEFAULT_REFRESH_INTERVAL
    stale_threshold: float = DEFAULT_STALE_THRESHOLD
    refresh_timeout: float = DEFAULT_REFRESH_TIMEOUT
    enable_weather: bool = True
    enable_homecoach: bool = True
    debug_handlers: bool = False
    runtime_metrics: bool = False
    log_level: str = "info"
    display_tz: str = "UTC"

    @property
    def host(self) -> str:
        host, _, _ = self.addr.rpartition(":")
        # "[::]:9210" → "::"
        return host.strip("[]") or "0.0.0.0"

    @property
    def port(self) -> int:
        return int(self.addr.rpartition(":")[2])

    @property
    def timezone(self):
        return pytz.timezone(self.display_tz)

    def enabled_sources(self) -> list[str]:
        out = []
        if self.enable_weather:
            out.append(WEATHER)
        if self.enable_homecoach:
            out.append(HOMECOACH)
        return out

    def scopes(self) -> list[str]:
        return [SOURCE_SCOPES[s] for s in self.enabled_sources()]


def parse_duration(value: str) -> float:
    """'90' → 90.0, '8m' → 480.0, '1h30m' → 5400.0"""
    text = value.strip().lower()
    if not text:
        raise ConfigError("empty duration")
    try:
        seconds = float(text)
    except ValueError:
        pass
    else:
        if not math.isfinite(seconds):
            raise ConfigError(f"invalid duration: {value!r}")
        return seconds
    pos, total = 0, 0.0
    for m in _DURATION_RE.finditer(text):
        if m.start() != pos:
            break
        total += float(m.group(1)) * {"h": 3600, "m": 60, "s": 1}[m.group(2)]
        pos = m.end()
    if pos != len(text):
        raise ConfigError(f"invalid duration: {value!r}")
    return total


def parse_bool(value: str) -> bool:
    text = value.strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ConfigError(f"invalid boolean: {value!r}")


def _duration(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key)
    if raw is None:
        return default
    try:
        seconds = parse_duration(raw)
    except ConfigError as ex:
        raise ConfigError(f"{key}: {ex}") from None
    if seconds <= 0:
        raise ConfigError(f"{key} must be > 0, got {raw!r}")
    return seconds


def _flag(env: Mapping[str, str], key: str, default: bool) -> bool:
    raw = env.get(key)
    if raw is None:
        return default
    try:
        return parse_bool(raw)
    except ConfigError as ex:
        raise ConfigError(f"{key}: {ex}") from None


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Build Settings from NETATMO_* variables. Raises ConfigError."""
    env = os.environ if environ is None else environ
    errors: list[str] = []

    client_id     = env.get("NETATMO_CLIENT_ID", "").strip()
    client_secret = env.get("NETATMO_CLIENT_SECRET", "").strip()
    if not client_id:
        errors.append("NETATMO_CLIENT_ID is required")
    if not client_secret:
        errors.append("NETATMO_CLIENT_SECRET is required")

    addr = env.get("NETATMO_EXPORTER_ADDR", DEFAULT_ADDR).strip()
    port = addr.rpartition(":")[2]
    if not port.isdigit() or not 1 <= int(port) <= 65535:
        errors.append(f"NETATMO_EXPORTER_ADDR must be [host]:port, got {addr!r}")

    log_level = env.get("NETATMO_LOG_LEVEL", "info").strip().lower()
    if log_level not in LOG_LEVELS:
        errors.append(f"NETATMO_LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}, got {log_level!r}")

    display_tz = env.get("NETATMO_DISPLAY_TZ", "UTC").strip()
    try:
        pytz.timezone(display_tz)
    except pytz.UnknownTimeZoneError:
        errors.append(f"NETATMO_DISPLAY_TZ: unknown time zone {display_tz!r}")

    try:
        refresh_interval = _duration(env, "NETATMO_REFRESH_INTERVAL", DEFAULT_REFRESH_INTERVAL)
        stale_threshold  = _duration(env, "NETATMO_AGE_STALE", DEFAULT_STALE_THRESHOLD)
        refresh_timeout  = _duration(env, "NETATMO_REFRESH_TIMEOUT", DEFAULT_REFRESH_TIMEOUT)
        enable_weather   = _flag(env, "NETATMO_ENABLE_WEATHER", True)
        enable_homecoach = _flag(env, "NETATMO_ENABLE_HOMECOACH", True)
        debug_handlers   = _flag(env, "NETATMO_DEBUG_HANDLERS", False)
        runtime_metrics  = _flag(env, "NETATMO_ENABLE_RUNTIME_METRICS", False)
    except ConfigError as ex:
        errors.append(str(ex))

    if errors:
        raise ConfigError("Configuration errors:\n  " + "\n  ".join(errors))

    return Settings(
        client_id=client_id,
        client_secret=client_secret,
        addr=addr,
        external_url=env.get("NETATMO_EXTERNAL_URL", DEFAULT_EXTERNAL_URL).rstrip("/"),
        token_file=env.get("NETATMO_TOKEN_FILE", "").strip(),
        refresh_interval=refresh_interval,
        stale_threshold=stale_threshold,
        refresh_timeout=refresh_timeout,
        enable_weather=enable_weather,
        enable_homecoach=enable_homecoach,
        debug_handlers=debug_handlers,
        runtime_metrics=runtime_metrics,
        log_level=log_level,
        display_tz=display_tz,
    )
