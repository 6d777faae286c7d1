"""
netatmo_bridge/core/aggregator.py
Fan-out over the per-source caches for one exposition view.
  • collect() → maybe_refresh + read + project for every enabled source,
                plus the health samples of every enabled source
                (four in v2, five in v1 with cache_updated_time)
  • the v1 and v2 aggregators share the same RefreshCache objects
  • a disabled source is never refreshed and emits nothing
"""

import time
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from netatmo_bridge.core.cache import RefreshCache, RefreshState
from netatmo_bridge.core.models import Observation
from netatmo_bridge.core.projector import (
    SENSOR_METRICS, HOMECOACH_METRICS, UNIFIED, LabelSchema, project,
)


@dataclass(frozen=True)
class Source:
    device_class: str
    cache: RefreshCache
    enabled: bool = True


@dataclass(frozen=True)
class MetricInfo:
    name: str
    help: str
    label_names: tuple[str, ...]


class Aggregator:
    def __init__(
        self,
        sources: Sequence[Source],
        stale_threshold: float,
        schema: LabelSchema = UNIFIED,
        clock: Callable[[], float] = time.time,
    ):
        self.sources         = list(sources)
        self.stale_threshold = stale_threshold
        self.schema          = schema
        self._clock          = clock

    def enabled(self) -> list[Source]:
        return [s for s in self.sources if s.enabled]

    def collect(self, now: Optional[float] = None) -> list[Observation]:
        now = self._clock() if now is None else now
        out: list[Observation] = []
        for src in self.enabled():
            src.cache.maybe_refresh(now)
            state = src.cache.read()
            out.extend(self.health(src, state))
            out.extend(project(state.snapshot, now, self.stale_threshold, self.schema))
        return out

    def health(self, src: Source, state: RefreshState) -> list[Observation]:
        values = {
            "up":                    1.0 if state.healthy else 0.0,
            "refresh_interval":      src.cache.refresh_interval,
            "last_refresh_time":     float(state.last_attempt or 0),
            "last_refresh_duration": state.last_duration,
            "cache_updated":         float(state.last_success or 0),
        }
        return [
            Observation.of(self.schema.health_metric(src.device_class, kind)[0], values[kind])
            for kind in self.schema.health_metrics
        ]

    def describe(self) -> dict[str, MetricInfo]:
        """Every metric family this view can emit, keyed by name."""
        out: dict[str, MetricInfo] = {}
        for src in self.enabled():
            dc = src.device_class
            for kind in self.schema.health_metrics:
                name, help_text = self.schema.health_metric(dc, kind)
                out[name] = MetricInfo(name, help_text, ())
            for key in {**SENSOR_METRICS, **HOMECOACH_METRICS}:
                metric = self.schema.sensor_metric(dc, key)
                if metric is not None and metric[0] not in out:
                    out[metric[0]] = MetricInfo(metric[0], metric[1], self.schema.sensor_label_names(dc))
        return out
