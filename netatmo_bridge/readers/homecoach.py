"""
netatmo_bridge/readers/homecoach.py
Home Coach (indoor air quality): GET /api/gethomecoachsdata.
Each Home Coach is a standalone device, no linked modules.
"""

import logging
import time
from typing import Optional

import httpx

from netatmo_bridge.core.config import HOMECOACH, HOMECOACH_URL
from netatmo_bridge.core.credentials import Credential
from netatmo_bridge.core.models import Reading, Snapshot
from netatmo_bridge.readers.common import DecodeError, device_list, get_body, number, pick, timestamp

log = logging.getLogger("homecoach")

_DASHBOARD_FIELDS = {
    "Temperature": "temperature",
    "Humidity":    "humidity",
    "CO2":         "co2",
    "Noise":       "noise",
    "Pressure":    "pressure",
    "health_idx":  "health_index",
}


def parse_homecoaches(body: dict) -> list[Reading]:
    readings = []
    for dev in device_list(body, HOMECOACH_URL):
        dashboard = dev.get("dashboard_data") or {}
        if not isinstance(dashboard, dict):
            raise DecodeError(f"device {dev.get('_id')}: dashboard_data is not an object")

        values = {key: number(dashboard, src) for src, key in _DASHBOARD_FIELDS.items()}
        values["wifi"] = number(dev, "wifi_status")

        name = pick(dev.get("station_name"), dev.get("name"), dev.get("module_name"))
        readings.append(Reading(
            device_class=HOMECOACH,
            device_id=str(dev.get("_id", "")),
            module=name,
            station=name,
            home=pick(dev.get("home_name")),
            measured_at=timestamp(dashboard),
            values={k: v for k, v in values.items() if v is not None},
        ))
    return readings


async def fetch_homecoach(credential: Credential, client: Optional[httpx.AsyncClient] = None) -> Snapshot:
    """One gethomecoachsdata call → Snapshot. Raises ReaderError."""
    body = await get_body(HOMECOACH_URL, credential, client)
    readings = parse_homecoaches(body)
    log.debug(f"Home Coach: {len(readings)} devices read")
    return Snapshot(readings=tuple(readings), raw=body.get("devices", []), fetched_at=time.time())
