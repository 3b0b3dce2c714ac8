"""
Result variants returned by collectors.

A sample never raises for expected platform conditions; callers branch on
SampleResult.status instead.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

from .powercap import EnergyDomain, PowercapError


class SampleStatus(Enum):
    OK = "ok"
    NO_DATA = "no_data"
    PARTIAL = "partial"


@dataclass(frozen=True)
class DomainReading:
    """Energy consumed by one domain since the previous sample."""

    domain: EnergyDomain
    delta_uj: int
    wrapped: bool = False
    wrap_count: int = 0

    @property
    def joules(self) -> float:
        return self.delta_uj / 1_000_000.0


@dataclass(frozen=True)
class SampleResult:
    """Outcome of one sample() call."""

    status: SampleStatus
    readings: List[DomainReading] = field(default_factory=list)
    errors: List[PowercapError] = field(default_factory=list)

    @classmethod
    def no_data(cls, cause: Optional[PowercapError] = None) -> "SampleResult":
        return cls(SampleStatus.NO_DATA, [], [cause] if cause else [])

    @property
    def has_data(self) -> bool:
        return self.status is not SampleStatus.NO_DATA


@dataclass(frozen=True)
class MetricDescriptor:
    """Metadata for a metric family: name, help text and label schema."""

    name: str
    help: str
    labels: Tuple[str, ...]
    kind: str = "gauge"
