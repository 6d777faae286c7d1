"""
netatmo_bridge/readers/weather.py
═══════════════════════════════════════════════════════════════════════════════
Weather stations: GET /api/getstationsdata.

One Reading per station (indoor base unit) and one per linked module
(outdoor, rain gauge, anemometer, extra indoor). Labels come from the
station: station_name + home_name are shared by all its modules.

Modules that are unreachable have no dashboard_data → measured_at is None
and the projector drops them.
═══════════════════════════════════════════════════════════════════════════════
"""

import logging
import time
from typing import Optional

import httpx

from netatmo_bridge.core.config import WEATHER, WEATHER_URL
from netatmo_bridge.core.credentials import Credential
from netatmo_bridge.core.models import Reading, Snapshot
from netatmo_bridge.readers.common import DecodeError, device_list, get_body, number, pick, timestamp

log = logging.getLogger("weather")

# dashboard_data key → our metric key
_DASHBOARD_FIELDS = {
    "Temperature":  "temperature",
    "Humidity":     "humidity",
    "CO2":          "co2",
    "Noise":        "noise",
    "Pressure":     "pressure",
    "Rain":         "rain",
    "WindStrength": "wind_strength",
    "WindAngle":    "wind_direction",
}

# device-level key → our metric key
_STATUS_FIELDS = {
    "battery_percent": "battery",
    "wifi_status":     "wifi",
    "rf_status":       "rf",
}


def _build_reading(device: dict, station: str, home: str) -> Reading:
    dashboard = device.get("dashboard_data") or {}
    if not isinstance(dashboard, dict):
        raise DecodeError(f"device {device.get('_id')}: dashboard_data is not an object")

    values: dict[str, float] = {}
    for src, key in _DASHBOARD_FIELDS.items():
        v = number(dashboard, src)
        if v is not None:
            values[key] = v
    for src, key in _STATUS_FIELDS.items():
        v = number(device, src)
        if v is not None:
            values[key] = v

    return Reading(
        device_class=WEATHER,
        device_id=str(device.get("_id", "")),
        module=pick(device.get("module_name")),
        station=station,
        home=home,
        measured_at=timestamp(dashboard),
        values=values,
    )


def parse_stations(body: dict) -> list[Reading]:
    readings = []
    for dev in device_list(body, WEATHER_URL):
        station = pick(dev.get("station_name"))
        home    = pick(dev.get("home_name"))
        readings.append(_build_reading(dev, station, home))

        modules = dev.get("modules") or []
        if not isinstance(modules, list):
            raise DecodeError(f"station {dev.get('_id')}: modules is not a list")
        for module in modules:
            if not isinstance(module, dict):
                raise DecodeError(f"station {dev.get('_id')}: module is not an object")
            readings.append(_build_reading(module, station, home))
    return readings


async def fetch_weather(credential: Credential, client: Optional[httpx.AsyncClient] = None) -> Snapshot:
    """One getstationsdata call → Snapshot. Raises ReaderError."""
    body = await get_body(WEATHER_URL, credential, client)
    readings = parse_stations(body)
    log.debug(f"Weather: {len(readings)} devices/modules read")
    return Snapshot(readings=tuple(readings), raw=body.get("devices", []), fetched_at=time.time())
