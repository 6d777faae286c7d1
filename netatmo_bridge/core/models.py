"""
netatmo_bridge/core/models.py
Immutable value types shared by readers, the cache and the projector.
  • Reading     → one device or module, as of its last measurement
  • Snapshot    → everything one upstream fetch returned
  • Observation → one (metric, labels, value) sample for the publisher
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping, NamedTuple, Optional


@dataclass(frozen=True)
class Reading:
    device_class: str
    device_id: str
    module: str = ""
    station: str = ""
    home: str = ""
    measured_at: Optional[float] = None
    # metric key → value; keys the upstream did not report are simply absent
    values: Mapping[str, float] = field(default_factory=dict)

    def __post_init__(self):
        clean = {k: float(v) for k, v in self.values.items() if v is not None}
        object.__setattr__(self, "values", MappingProxyType(clean))

    @property
    def display_name(self) -> str:
        return self.module or f"id-{self.device_id}"


@dataclass(frozen=True)
class Snapshot:
    readings: tuple[Reading, ...]
    raw: Any = None
    fetched_at: float = 0.0

    def __post_init__(self):
        object.__setattr__(self, "readings", tuple(self.readings))


class Observation(NamedTuple):
    name: str
    labels: tuple[tuple[str, str], ...]
    value: float

    @classmethod
    def of(cls, name: str, value: float, **labels: str) -> "Observation":
        return cls(name, tuple(sorted(labels.items())), float(value))

    def label(self, key: str) -> Optional[str]:
        return dict(self.labels).get(key)
