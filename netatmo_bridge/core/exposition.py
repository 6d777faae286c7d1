"""
netatmo_bridge/core/exposition.py
prometheus_client glue. Observations are turned into const gauge families
on every scrape; nothing is held in prometheus_client's own state.
  • ObservationCollector → one aggregator (one view: v1 or v2)
  • TokenCollector       → token validity/expiry, registered in both views
  • runtime metrics      → process/platform/gc collectors, opt-in
"""

import logging
import time
from typing import Callable, Iterable

from prometheus_client import CollectorRegistry, GCCollector, PlatformCollector, ProcessCollector
from prometheus_client.core import GaugeMetricFamily
from prometheus_client.registry import Collector

from netatmo_bridge.core.aggregator import Aggregator
from netatmo_bridge.core.credentials import CredentialSource
from netatmo_bridge.core.projector import PREFIX

log = logging.getLogger("exposition")


class ObservationCollector(Collector):
    def __init__(self, aggregator: Aggregator):
        self.aggregator = aggregator

    def describe(self) -> Iterable[GaugeMetricFamily]:
        # registration must not trigger an upstream refresh
        for info in self.aggregator.describe().values():
            yield GaugeMetricFamily(info.name, info.help, labels=sorted(info.label_names))

    def collect(self) -> Iterable[GaugeMetricFamily]:
        helps = {name: info.help for name, info in self.aggregator.describe().items()}
        families: dict[str, GaugeMetricFamily] = {}
        for obs in self.aggregator.collect():
            fam = families.get(obs.name)
            if fam is None:
                fam = GaugeMetricFamily(obs.name, helps.get(obs.name, obs.name),
                                        labels=[k for k, _ in obs.labels])
                families[obs.name] = fam
            try:
                fam.add_metric([v for _, v in obs.labels], obs.value)
            except ValueError as ex:
                log.error(f"Error creating metric {obs.name}: {ex}")
        yield from families.values()


class TokenCollector(Collector):
    def __init__(self, credentials: CredentialSource, clock: Callable[[], float] = time.time):
        self.credentials = credentials
        self._clock = clock

    def collect(self) -> Iterable[GaugeMetricFamily]:
        cred = self.credentials.peek()
        valid = GaugeMetricFamily(
            PREFIX + "token_valid",
            "One if the exporter holds a currently valid access token.",
        )
        valid.add_metric([], 1.0 if cred is not None and cred.valid(self._clock()) else 0.0)
        yield valid

        expiry = GaugeMetricFamily(
            PREFIX + "token_expiry_time",
            "Contains the time when the current access token expires (0 if unknown).",
        )
        expiry.add_metric([], float(cred.expiry or 0) if cred is not None else 0.0)
        yield expiry


def build_registry(aggregator: Aggregator, credentials: CredentialSource,
                   runtime_metrics: bool = False) -> CollectorRegistry:
    registry = CollectorRegistry(auto_describe=True)
    registry.register(ObservationCollector(aggregator))
    registry.register(TokenCollector(credentials))
    if runtime_metrics:
        # process_*, python_info, python_gc_*
        ProcessCollector(registry=registry)
        PlatformCollector(registry=registry)
        GCCollector(registry=registry)
    return registry
