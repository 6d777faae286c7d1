"""
netatmo_bridge/core/projector.py
═══════════════════════════════════════════════════════════════════════════════
Snapshot → Observations.

ONE projection routine, two label schemas:

  LEGACY  (/metrics/v1)  per-source metric families
      weather    netatmo_sensor_<metric>{module, station, home}
      homecoach  netatmo_homecoach_<metric>{device_id, device_name}
      health     netatmo_up, netatmo_homecoach_up, ... and *_cache_updated_time

  UNIFIED (/metrics/v2)  one family per metric for every device class
      sensors    netatmo_sensor_<metric>{device_class, device_id, home, module, station}
      health     netatmo_up, netatmo_homecoach_up, ...  (no labels, as in v1)

Rules, independent of schema:
  • expired readings (or readings without a timestamp) emit nothing
  • metrics the upstream did not report are skipped, never zero-filled
  • a missing module name falls back to "id-<device_id>"
═══════════════════════════════════════════════════════════════════════════════
"""

import logging
from typing import Optional

from netatmo_bridge.core.config import HOMECOACH, WEATHER
from netatmo_bridge.core.models import Observation, Reading, Snapshot
from netatmo_bridge.core.staleness import Freshness, classify

log = logging.getLogger("projector")

PREFIX        = "netatmo_"
SENSOR_PREFIX = PREFIX + "sensor_"

# metric key → (netatmo_sensor_ suffix, help)
SENSOR_METRICS: dict[str, tuple[str, str]] = {
    "updated":        ("updated",                "Timestamp of last update"),
    "temperature":    ("temperature_celsius",    "Temperature measurement in celsius"),
    "humidity":       ("humidity_percent",       "Relative humidity measurement in percent"),
    "co2":            ("co2_ppm",                "Carbondioxide measurement in parts per million"),
    "noise":          ("noise_db",               "Noise measurement in decibels"),
    "pressure":       ("pressure_mb",            "Atmospheric pressure measurement in millibar"),
    "rain":           ("rain_amount_mm",         "Rain amount in millimeters"),
    "wind_strength":  ("wind_strength_kph",      "Wind strength in kilometers per hour"),
    "wind_direction": ("wind_direction_degrees", "Wind direction in degrees"),
    "battery":        ("battery_percent",        "Battery remaining life (10: low)"),
    "wifi":           ("wifi_signal_strength",   "Wifi signal strength (86: bad, 71: avg, 56: good)"),
    "rf":             ("rf_signal_strength",     "RF signal strength (90: lowest, 60: highest)"),
    "health_index":   ("health_index",           "Air quality health index (0: Healthy, 1: Fine, 2: Fair, 3: Poor, 4: Unhealthy)"),
}

# legacy Home Coach families: metric key → (netatmo_homecoach_ suffix, help)
HOMECOACH_METRICS: dict[str, tuple[str, str]] = {
    "temperature":  ("temperature",          "Netatmo Home Coach measured temperature in degrees Celsius."),
    "humidity":     ("humidity",             "Netatmo Home Coach measured humidity in percent."),
    "co2":          ("co2",                  "Netatmo Home Coach measured CO2 level in ppm."),
    "noise":        ("noise",                "Netatmo Home Coach measured noise level in dB."),
    "pressure":     ("pressure",             "Netatmo Home Coach measured pressure in mb."),
    "health_index": ("health_index",         "Netatmo Home Coach health index (0: Healthy, 1: Fine, 2: Fair, 3: Poor, 4: Unhealthy)."),
    "wifi":         ("wifi_signal_strength", "Wifi signal strength (86: bad, 71: avg, 56: good)."),
}

# health kind → (suffix, help); every view emits these per source
HEALTH_METRICS: dict[str, tuple[str, str]] = {
    "up": (
        "up",
        "Zero if there was an error during the last refresh try.",
    ),
    "refresh_interval": (
        "refresh_interval_seconds",
        "Contains the configured refresh interval in seconds. This is provided as a convenience for calculations with the cache update time.",
    ),
    "last_refresh_time": (
        "last_refresh_time",
        "Contains the time of the last refresh try, successful or not.",
    ),
    "last_refresh_duration": (
        "last_refresh_duration_seconds",
        "Contains the time it took for the last refresh to complete, even if it was unsuccessful.",
    ),
}

# the v1 view also reports when the cached data was fetched
LEGACY_HEALTH_METRICS: dict[str, tuple[str, str]] = {
    **HEALTH_METRICS,
    "cache_updated": ("cache_updated_time", "Contains the time of the cached data."),
}


class LabelSchema:
    """Names and labels for one exposition view. Subclasses fill in the sensor mapping."""

    name = ""
    health_metrics: dict[str, tuple[str, str]] = HEALTH_METRICS

    def sensor_metric(self, device_class: str, key: str) -> Optional[tuple[str, str]]:
        """(metric name, help) for a reading value, or None if this view omits it."""
        raise NotImplementedError

    def sensor_labels(self, reading: Reading) -> dict[str, str]:
        raise NotImplementedError

    def sensor_label_names(self, device_class: str) -> tuple[str, ...]:
        raise NotImplementedError

    def health_metric(self, device_class: str, kind: str) -> tuple[str, str]:
        """Unlabeled, source-prefixed: netatmo_up, netatmo_homecoach_up, ..."""
        suffix, help_text = self.health_metrics[kind]
        if device_class == WEATHER:
            return PREFIX + suffix, help_text
        return f"{PREFIX}{device_class}_{suffix}", help_text


class LegacySchema(LabelSchema):
    name = "v1"
    health_metrics = LEGACY_HEALTH_METRICS

    def sensor_metric(self, device_class, key):
        if device_class == HOMECOACH:
            entry = HOMECOACH_METRICS.get(key)
            return (f"{PREFIX}homecoach_{entry[0]}", entry[1]) if entry else None
        entry = SENSOR_METRICS.get(key)
        return (SENSOR_PREFIX + entry[0], entry[1]) if entry else None

    def sensor_labels(self, reading):
        if reading.device_class == HOMECOACH:
            return {"device_id": reading.device_id, "device_name": reading.display_name}
        return {"module": reading.display_name, "station": reading.station, "home": reading.home}

    def sensor_label_names(self, device_class):
        if device_class == HOMECOACH:
            return ("device_id", "device_name")
        return ("module", "station", "home")


class UnifiedSchema(LabelSchema):
    name = "v2"

    def sensor_metric(self, device_class, key):
        entry = SENSOR_METRICS.get(key)
        return (SENSOR_PREFIX + entry[0], entry[1]) if entry else None

    def sensor_labels(self, reading):
        return {
            "device_class": reading.device_class,
            "device_id":    reading.device_id,
            "home":         reading.home,
            "module":       reading.display_name,
            "station":      reading.station,
        }

    def sensor_label_names(self, device_class):
        return ("device_class", "device_id", "home", "module", "station")


LEGACY  = LegacySchema()
UNIFIED = UnifiedSchema()


def project_reading(reading: Reading, now: float, stale_threshold: float,
                    schema: LabelSchema = UNIFIED) -> list[Observation]:
    if classify(reading.measured_at, now, stale_threshold) is Freshness.EXPIRED:
        if reading.measured_at is None:
            log.debug(f"No data available for {reading.display_name}")
        else:
            log.debug(f"Data is stale for {reading.display_name}: "
                      f"{now - reading.measured_at:.0f}s > {stale_threshold:.0f}s")
        return []

    labels = schema.sensor_labels(reading)
    out = []
    values = {"updated": reading.measured_at, **reading.values}
    for key, value in values.items():
        metric = schema.sensor_metric(reading.device_class, key)
        if metric is None or value is None:
            continue
        out.append(Observation.of(metric[0], value, **labels))
    return out


def project(snapshot: Optional[Snapshot], now: float, stale_threshold: float,
            schema: LabelSchema = UNIFIED) -> list[Observation]:
    """Flatten a snapshot into observations. Pure; same input → same output."""
    if snapshot is None:
        return []
    out: list[Observation] = []
    for reading in snapshot.readings:
        out.extend(project_reading(reading, now, stale_threshold, schema))
    return out
