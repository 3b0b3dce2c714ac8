"""Shared fixtures: a fake powercap tree under tmp_path."""
from pathlib import Path

import pytest


MAX_RANGE_32 = 4_294_967_295


class FakePowercap:
    """Build and mutate a sysfs-like intel-rapl hierarchy."""

    def __init__(self, root: Path):
        self.root = root

    def zone_dir(self, package: int, sub=None) -> Path:
        if sub is None:
            return self.root / f"intel-rapl:{package}"
        return self.root / f"intel-rapl:{package}" / f"intel-rapl:{package}:{sub}"

    def add_zone(self, package: int, name: str, energy: int, sub=None,
                 max_range=MAX_RANGE_32) -> Path:
        zone = self.zone_dir(package, sub)
        zone.mkdir(parents=True, exist_ok=True)
        (zone / "name").write_text(f"{name}\n", encoding="utf-8")
        (zone / "energy_uj").write_text(f"{energy}\n", encoding="utf-8")
        if max_range is not None:
            (zone / "max_energy_range_uj").write_text(f"{max_range}\n", encoding="utf-8")
        return zone

    def set_energy(self, package: int, value, sub=None):
        (self.zone_dir(package, sub) / "energy_uj").write_text(f"{value}\n", encoding="utf-8")


@pytest.fixture
def powercap(tmp_path: Path) -> FakePowercap:
    root = tmp_path / "powercap"
    root.mkdir()
    return FakePowercap(root)


@pytest.fixture
def standard_powercap(powercap: FakePowercap) -> FakePowercap:
    """One package with core and dram subdomains, plus a psys zone."""
    powercap.add_zone(0, "package-0", 1_000)
    powercap.add_zone(0, "core", 400, sub=0)
    powercap.add_zone(0, "dram", 200, sub=1)
    powercap.add_zone(1, "psys", 5_000)
    return powercap


@pytest.fixture
def rapl_config(powercap: FakePowercap) -> dict:
    return {"collector": "rapl", "rapl": {"powercap_root": str(powercap.root)}}


@pytest.fixture
def deny_reads(monkeypatch: pytest.MonkeyPatch):
    """Make reads of the given paths raise PermissionError."""
    import collectors.powercap as powercap_module

    denied = set()
    original = powercap_module._read_text

    def fake_read_text(path: Path) -> str:
        if path in denied:
            raise PermissionError(13, "Permission denied", str(path))
        return original(path)

    monkeypatch.setattr(powercap_module, "_read_text", fake_read_text)
    return denied
