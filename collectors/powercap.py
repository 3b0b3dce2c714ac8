"""
Powercap (RAPL) domain discovery.

Walks the power-capping hierarchy exposed under /sys/class/powercap:

    intel-rapl:0/              package 0 (name: package-0)
        energy_uj
        max_energy_range_uj
        intel-rapl:0:0/        subdomain (name: core)
        intel-rapl:0:1/        subdomain (name: dram)
    intel-rapl:1/              package 1 or psys

Every zone, package-level or nested, becomes its own EnergyDomain.
"""
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, NamedTuple, Optional, Tuple


DEFAULT_POWERCAP_ROOT = "/sys/class/powercap"
DEFAULT_ZONE_PREFIX = "intel-rapl"

ENERGY_FILE = "energy_uj"
MAX_RANGE_FILE = "max_energy_range_uj"
NAME_FILE = "name"

PACKAGE_DOMAIN = "package"

logger = logging.getLogger(__name__)

_PACKAGE_NAME_RE = re.compile(r"^package-\d+$")


class PowercapError(Exception):
    """Base class for powercap read and discovery failures."""

    def __init__(self, message: str, path: Optional[Path] = None):
        super().__init__(message)
        self.path = path


class InterfaceAbsent(PowercapError):
    """The platform exposes no power-capping files."""


class PermissionDenied(PowercapError):
    """Powercap files exist but cannot be read by this process."""


class MalformedReading(PowercapError):
    """A counter file was read but does not hold a non-negative integer."""


class EnumerationPartialFailure(PowercapError):
    """A single zone entry could not be enumerated; its siblings still were."""


class DomainKey(NamedTuple):
    """Stable identity of an energy domain across polls."""

    package_id: int
    domain_name: str

    def __str__(self) -> str:
        return f"pkg{self.package_id}-{self.domain_name}"


@dataclass(frozen=True)
class EnergyDomain:
    """Read-only snapshot of one RAPL zone as found during enumeration."""

    package_id: int
    domain_name: str
    path: Path
    index: int = 0

    @property
    def key(self) -> DomainKey:
        return DomainKey(self.package_id, self.domain_name)

    @property
    def energy_path(self) -> Path:
        return self.path / ENERGY_FILE

    @property
    def max_range_path(self) -> Path:
        return self.path / MAX_RANGE_FILE

    @property
    def is_package(self) -> bool:
        return self.domain_name == PACKAGE_DOMAIN


def _read_text(path: Path) -> str:
    return path.read_text(encoding="utf-8")


def _translate_os_error(exc: OSError, path: Path) -> PowercapError:
    if isinstance(exc, FileNotFoundError):
        return InterfaceAbsent(f"Missing powercap file: {path}", path)
    if isinstance(exc, PermissionError):
        return PermissionDenied(f"Can't access powercap file: {path}", path)
    return EnumerationPartialFailure(f"Failed to read {path}: {exc}", path)


def read_counter(path: Path) -> int:
    """
    Read a single non-negative integer counter (energy_uj, max_energy_range_uj).

    Args:
        path: Counter file

    Returns:
        Counter value in microjoules

    Raises:
        InterfaceAbsent: File does not exist
        PermissionDenied: File exists but is unreadable
        MalformedReading: Content is not a non-negative integer
    """
    try:
        text = _read_text(path).strip()
    except UnicodeDecodeError as e:
        raise MalformedReading(f"Undecodable counter in {path}: {e}", path) from e
    except OSError as e:
        error = _translate_os_error(e, path)
        if isinstance(error, EnumerationPartialFailure):
            # Unexpected I/O errors on a counter are treated as a bad reading
            raise MalformedReading(str(error), path) from e
        raise error from e

    try:
        value = int(text, 10)
    except ValueError as e:
        raise MalformedReading(f"Invalid integer in {path}: {text!r}", path) from e

    if value < 0:
        raise MalformedReading(f"Negative counter in {path}: {value}", path)
    return value


def _zone_index(name: str, prefix: str) -> Optional[Tuple[int, ...]]:
    """Parse 'intel-rapl:0' -> (0,) and 'intel-rapl:0:1' -> (0, 1)."""
    head, sep, tail = name.partition(":")
    if head != prefix or not sep:
        return None
    try:
        return tuple(int(part) for part in tail.split(":"))
    except ValueError:
        return None


def _zone_name(zone_dir: Path) -> str:
    try:
        name = _read_text(zone_dir / NAME_FILE).strip()
    except UnicodeDecodeError as e:
        raise EnumerationPartialFailure(f"Undecodable zone name in {zone_dir}: {e}", zone_dir) from e
    except OSError as e:
        raise _translate_os_error(e, zone_dir / NAME_FILE) from e
    if not name:
        raise EnumerationPartialFailure(f"Empty zone name in {zone_dir}", zone_dir)
    return name


def _list_dir(path: Path) -> List[Path]:
    return sorted(entry for entry in path.iterdir() if entry.is_dir())


def enumerate_domains(
    root: Path,
    prefix: str = DEFAULT_ZONE_PREFIX,
) -> Tuple[List[EnergyDomain], List[PowercapError]]:
    """
    Discover all package-level and nested RAPL zones under root.

    Args:
        root: Powercap class directory (e.g. /sys/class/powercap)
        prefix: Zone directory prefix (e.g. "intel-rapl")

    Returns:
        (domains, skipped) where skipped lists the per-entry failures that
        were stepped over. Domains are ordered by package and subdomain index.

    Raises:
        InterfaceAbsent: root does not exist
        PermissionDenied: root exists but cannot be listed
        InterfaceAbsent: root cannot be listed for any other reason
    """
    try:
        top_level = _list_dir(root)
    except FileNotFoundError as e:
        raise InterfaceAbsent(f"Platform doesn't have powercap files at {root}", root) from e
    except PermissionError as e:
        raise PermissionDenied(f"Can't access powercap files at {root}", root) from e
    except NotADirectoryError as e:
        raise InterfaceAbsent(f"Powercap root is not a directory: {root}", root) from e
    except OSError as e:
        raise InterfaceAbsent(f"Failed to list powercap root {root}: {e}", root) from e

    domains: List[EnergyDomain] = []
    skipped: List[PowercapError] = []

    packages = []
    for entry in top_level:
        index = _zone_index(entry.name, prefix)
        if index is not None and len(index) == 1:
            packages.append((index[0], entry))

    for package_id, package_dir in sorted(packages, key=lambda item: item[0]):
        try:
            name = _zone_name(package_dir)
            if _PACKAGE_NAME_RE.match(name):
                name = PACKAGE_DOMAIN
            domains.append(EnergyDomain(package_id, name, package_dir, index=package_id))
        except PowercapError as e:
            logger.warning(f"Skipping zone {package_dir.name}: {e}")
            skipped.append(e)

        domains.extend(_enumerate_subdomains(package_id, package_dir, prefix, skipped))

    return domains, skipped


def _enumerate_subdomains(
    package_id: int,
    package_dir: Path,
    prefix: str,
    skipped: List[PowercapError],
) -> List[EnergyDomain]:
    try:
        children = _list_dir(package_dir)
    except OSError as e:
        error = _translate_os_error(e, package_dir)
        logger.warning(f"Skipping subdomains of {package_dir.name}: {error}")
        skipped.append(EnumerationPartialFailure(str(error), package_dir))
        return []

    subzones = []
    for child in children:
        index = _zone_index(child.name, prefix)
        if index is not None and len(index) == 2 and index[0] == package_id:
            subzones.append((index[1], child))

    found: List[EnergyDomain] = []
    seen = set()
    for sub_index, child in sorted(subzones, key=lambda item: item[0]):
        try:
            name = _zone_name(child)
        except PowercapError as e:
            logger.warning(f"Skipping zone {child.name}: {e}")
            skipped.append(e)
            continue

        if name == PACKAGE_DOMAIN or name in seen:
            name = f"{name}-{sub_index}"
        seen.add(name)
        found.append(EnergyDomain(package_id, name, child, index=sub_index))

    return found
