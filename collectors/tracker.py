"""
Delta tracking for monotonically increasing energy counters.

Each RAPL zone exposes a raw microjoule counter that wraps at
max_energy_range_uj. The tracker remembers the last raw reading per
DomainKey and turns successive reads into non-negative per-sample deltas.
"""
import logging
from threading import RLock
from typing import Callable, Dict, Iterable

from .powercap import DomainKey, EnergyDomain, PowercapError, read_counter
from .results import DomainReading


CounterReader = Callable[..., int]


class DeltaTracker:
    """
    Per-domain delta state with wraparound correction.

    The first observation of a key establishes its baseline and yields 0.
    Later observations yield the energy consumed since the previous one.

    All state access goes through `lock`. Callers that observe several
    domains as one sample should hold the lock for the whole sequence:

        with tracker.lock:
            for domain in domains:
                tracker.observe(domain)
    """

    def __init__(self, reader: CounterReader = read_counter):
        self.lock = RLock()
        self._reader = reader
        self._previous: Dict[DomainKey, int] = {}
        self._wraps: Dict[DomainKey, int] = {}
        self.logger = logging.getLogger(self.__class__.__name__)

    def observe(self, domain: EnergyDomain) -> DomainReading:
        """
        Read the domain's counter and return its delta since the last observation.

        Args:
            domain: Domain to read

        Returns:
            DomainReading with a non-negative delta in microjoules

        Raises:
            PowercapError: Counter could not be read or parsed. State for the
                key is left untouched.
        """
        with self.lock:
            raw = self._reader(domain.energy_path)
            key = domain.key
            previous = self._previous.get(key, raw)

            delta = raw - previous
            wrapped = False
            if delta < 0:
                wrapped = True
                delta = self._correct_wrap(domain, delta)
                self._wraps[key] = self._wraps.get(key, 0) + 1

            self._previous[key] = raw
            return DomainReading(
                domain=domain,
                delta_uj=delta,
                wrapped=wrapped,
                wrap_count=self._wraps.get(key, 0),
            )

    def _correct_wrap(self, domain: EnergyDomain, delta: int) -> int:
        try:
            max_range = self._reader(domain.max_range_path)
        except PowercapError as e:
            self.logger.warning(f"Counter wrap on {domain.key} but max range unreadable, reporting 0: {e}")
            return 0

        corrected = delta + max_range
        if corrected < 0:
            self.logger.warning(
                f"Counter wrap on {domain.key} exceeds max range {max_range}, reporting 0"
            )
            return 0

        self.logger.debug(f"Counter wrap detected on {domain.key}: corrected delta {corrected} uJ")
        return corrected

    def prune(self, active: Iterable[DomainKey]) -> int:
        """
        Drop state for keys that are no longer enumerated.

        Args:
            active: Keys present in the latest enumeration

        Returns:
            Number of keys removed
        """
        keep = set(active)
        with self.lock:
            stale = [key for key in self._previous if key not in keep]
            for key in stale:
                del self._previous[key]
                self._wraps.pop(key, None)
        if stale:
            self.logger.info(f"Evicted {len(stale)} stale domains: {sorted(str(k) for k in stale)}")
        return len(stale)

    def previous(self, key: DomainKey):
        """Return the last raw counter seen for key, or None."""
        with self.lock:
            return self._previous.get(key)

    def wrap_count(self, key: DomainKey) -> int:
        with self.lock:
            return self._wraps.get(key, 0)

    def __len__(self) -> int:
        with self.lock:
            return len(self._previous)
