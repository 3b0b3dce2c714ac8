"""
RAPL collector for Intel (and compatible) CPUs.
Reads energy counters from the Linux powercap interface
(/sys/class/powercap/intel-rapl:*) and reports per-scrape energy deltas.
"""
from pathlib import Path
from typing import List, Optional

from .base import BaseCollector
from .powercap import (
    DEFAULT_POWERCAP_ROOT,
    DEFAULT_ZONE_PREFIX,
    PowercapError,
    enumerate_domains,
)
from .results import MetricDescriptor, SampleResult, SampleStatus
from .tracker import DeltaTracker


ENERGY_METRIC = "node_rapl_energy_joules"
WRAPS_METRIC = "node_rapl_counter_wraps_total"
SUCCESS_METRIC = "node_rapl_scrape_success"

DOMAIN_LABELS = ("instance", "package", "domain")


class RaplCollector(BaseCollector):
    """
    Energy collector backed by RAPL powercap zones.

    Every sample re-enumerates zones (they can appear or vanish across
    platform states) and feeds each one through a DeltaTracker. The
    tracker lock is held for the whole enumerate-and-observe sequence so
    overlapping scrapes see and commit consistent baselines.

    Config keys (under "rapl"):
    - powercap_root: Powercap class directory (default: /sys/class/powercap)
    - zone_prefix: Zone directory prefix (default: intel-rapl)
    - evict_stale_domains: Drop state for zones that disappeared (default: False)
    """

    def __init__(self, config: dict, tracker: Optional[DeltaTracker] = None):
        super().__init__(config)

        rapl_config = config.get("rapl") or {}
        root = rapl_config.get("powercap_root", DEFAULT_POWERCAP_ROOT)
        if not root:
            raise ValueError("rapl.powercap_root must not be empty")

        self.root = Path(root)
        if self.root.exists() and not self.root.is_dir():
            raise ValueError(f"rapl.powercap_root is not a directory: {self.root}")

        self.zone_prefix = rapl_config.get("zone_prefix") or DEFAULT_ZONE_PREFIX
        self.evict_stale = bool(rapl_config.get("evict_stale_domains", False))
        self.tracker = tracker if tracker is not None else DeltaTracker()

        self.logger.info(f"RAPL collector initialized")
        self.logger.info(f"  Powercap root: {self.root}")
        self.logger.info(f"  Zone prefix: {self.zone_prefix}")

    def describe(self) -> List[MetricDescriptor]:
        return [
            MetricDescriptor(
                ENERGY_METRIC,
                "RAPL energy consumed since the previous scrape in joules",
                DOMAIN_LABELS,
            ),
            MetricDescriptor(
                WRAPS_METRIC,
                "RAPL counter wraparounds corrected since exporter start",
                DOMAIN_LABELS,
                kind="counter",
            ),
            MetricDescriptor(
                SUCCESS_METRIC,
                "Whether the last RAPL sample returned any data",
                (),
            ),
        ]

    def sample(self) -> SampleResult:
        """
        Enumerate zones and read each counter once.

        Returns:
            SampleResult. NO_DATA when the powercap interface is missing or
            unreadable; PARTIAL when some zones or counters were skipped.
        """
        with self.tracker.lock:
            try:
                domains, skipped = enumerate_domains(self.root, self.zone_prefix)
            except PowercapError as e:
                self.logger.warning(f"⚠️ No RAPL data: {e}")
                return SampleResult.no_data(e)

            errors = list(skipped)
            readings = []
            for domain in domains:
                try:
                    readings.append(self.tracker.observe(domain))
                except PowercapError as e:
                    self.logger.warning(f"⚠️ Skipping {domain.key}: {e}")
                    errors.append(e)

            # Skipped zones are not absent; only prune after a clean enumeration
            if self.evict_stale and not skipped:
                self.tracker.prune(domain.key for domain in domains)

        status = SampleStatus.PARTIAL if errors else SampleStatus.OK
        return SampleResult(status, readings, errors)
