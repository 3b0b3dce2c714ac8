"""Tests for powercap zone enumeration and counter reads."""
from pathlib import Path

import pytest

from collectors.powercap import (
    DomainKey,
    EnumerationPartialFailure,
    InterfaceAbsent,
    MalformedReading,
    PermissionDenied,
    enumerate_domains,
    read_counter,
)


def keys(domains):
    return [str(domain.key) for domain in domains]


def test_enumerates_packages_and_subdomains(standard_powercap):
    domains, skipped = enumerate_domains(standard_powercap.root)

    assert keys(domains) == ["pkg0-package", "pkg0-core", "pkg0-dram", "pkg1-psys"]
    assert skipped == []

    package = domains[0]
    assert package.is_package
    assert package.energy_path == standard_powercap.zone_dir(0) / "energy_uj"
    assert package.max_range_path == standard_powercap.zone_dir(0) / "max_energy_range_uj"
    assert domains[2].index == 1


def test_enumeration_is_idempotent(standard_powercap):
    first, _ = enumerate_domains(standard_powercap.root)
    second, _ = enumerate_domains(standard_powercap.root)

    assert {d.key for d in first} == {d.key for d in second}
    assert first == second


def test_ignores_unrelated_entries(powercap):
    powercap.add_zone(0, "package-0", 10)
    (powercap.root / "intel-rapl").mkdir()
    (powercap.root / "dtpm").mkdir()
    (powercap.root / "intel-rapl:bogus").mkdir()

    domains, skipped = enumerate_domains(powercap.root)

    assert keys(domains) == ["pkg0-package"]
    assert skipped == []


def test_orders_packages_numerically(powercap):
    for package in (10, 2, 1):
        powercap.add_zone(package, f"package-{package}", 1)

    domains, _ = enumerate_domains(powercap.root)

    assert [d.package_id for d in domains] == [1, 2, 10]


def test_duplicate_subdomain_names_are_disambiguated(powercap):
    powercap.add_zone(0, "package-0", 1)
    powercap.add_zone(0, "dram", 1, sub=0)
    powercap.add_zone(0, "dram", 1, sub=1)

    domains, _ = enumerate_domains(powercap.root)

    assert keys(domains) == ["pkg0-package", "pkg0-dram", "pkg0-dram-1"]


def test_custom_zone_prefix(powercap):
    zone = powercap.root / "intel-rapl-mmio:0"
    zone.mkdir()
    (zone / "name").write_text("package-0", encoding="utf-8")
    (zone / "energy_uj").write_text("5", encoding="utf-8")

    domains, _ = enumerate_domains(powercap.root, prefix="intel-rapl-mmio")

    assert keys(domains) == ["pkg0-package"]


def test_missing_root_is_interface_absent(tmp_path: Path):
    with pytest.raises(InterfaceAbsent):
        enumerate_domains(tmp_path / "missing")


def test_unlistable_root_is_permission_denied(powercap, monkeypatch):
    import collectors.powercap as powercap_module

    original = powercap_module._list_dir

    def fake_list_dir(path):
        if path == powercap.root:
            raise PermissionError(13, "Permission denied", str(path))
        return original(path)

    monkeypatch.setattr(powercap_module, "_list_dir", fake_list_dir)

    with pytest.raises(PermissionDenied):
        enumerate_domains(powercap.root)


def test_unreadable_subdomain_is_skipped(standard_powercap, deny_reads):
    deny_reads.add(standard_powercap.zone_dir(0, sub=0) / "name")

    domains, skipped = enumerate_domains(standard_powercap.root)

    assert keys(domains) == ["pkg0-package", "pkg0-dram", "pkg1-psys"]
    assert len(skipped) == 1
    assert isinstance(skipped[0], PermissionDenied)


def test_unreadable_package_name_keeps_subdomains(standard_powercap, deny_reads):
    deny_reads.add(standard_powercap.zone_dir(0) / "name")

    domains, skipped = enumerate_domains(standard_powercap.root)

    assert keys(domains) == ["pkg0-core", "pkg0-dram", "pkg1-psys"]
    assert len(skipped) == 1


def test_empty_zone_name_is_skipped(powercap):
    powercap.add_zone(0, "package-0", 1)
    powercap.add_zone(0, "", 1, sub=0)

    domains, skipped = enumerate_domains(powercap.root)

    assert keys(domains) == ["pkg0-package"]
    assert isinstance(skipped[0], EnumerationPartialFailure)


def test_domain_key_rendering():
    assert str(DomainKey(0, "package")) == "pkg0-package"
    assert DomainKey(0, "core") != DomainKey(1, "core")


def test_read_counter(tmp_path: Path):
    counter = tmp_path / "energy_uj"
    counter.write_text("123456\n", encoding="utf-8")

    assert read_counter(counter) == 123456


@pytest.mark.parametrize("content", ["not-a-number", "", "-5", "1.5"])
def test_read_counter_rejects_malformed(tmp_path: Path, content):
    counter = tmp_path / "energy_uj"
    counter.write_text(content, encoding="utf-8")

    with pytest.raises(MalformedReading):
        read_counter(counter)


def test_read_counter_missing_file(tmp_path: Path):
    with pytest.raises(InterfaceAbsent):
        read_counter(tmp_path / "energy_uj")


def test_read_counter_permission_denied(tmp_path: Path, deny_reads):
    counter = tmp_path / "energy_uj"
    counter.write_text("1", encoding="utf-8")
    deny_reads.add(counter)

    with pytest.raises(PermissionDenied):
        read_counter(counter)


def test_undecodable_zone_name_is_skipped(standard_powercap):
    (standard_powercap.zone_dir(0, sub=1) / "name").write_bytes(b"\xff\xfe\n")

    domains, skipped = enumerate_domains(standard_powercap.root)

    assert keys(domains) == ["pkg0-package", "pkg0-core", "pkg1-psys"]
    assert isinstance(skipped[0], EnumerationPartialFailure)


def test_unlistable_package_keeps_package_counter(standard_powercap, monkeypatch):
    import collectors.powercap as powercap_module

    original = powercap_module._list_dir
    package_dir = standard_powercap.zone_dir(0)

    def fake_list_dir(path):
        if path == package_dir:
            raise PermissionError(13, "Permission denied", str(path))
        return original(path)

    monkeypatch.setattr(powercap_module, "_list_dir", fake_list_dir)

    domains, skipped = enumerate_domains(standard_powercap.root)

    assert keys(domains) == ["pkg0-package", "pkg1-psys"]
    assert len(skipped) == 1
    assert isinstance(skipped[0], EnumerationPartialFailure)


def test_root_io_error_is_interface_absent(powercap, monkeypatch):
    import errno

    import collectors.powercap as powercap_module

    def fake_list_dir(path):
        raise OSError(errno.EIO, "Input/output error", str(path))

    monkeypatch.setattr(powercap_module, "_list_dir", fake_list_dir)

    with pytest.raises(InterfaceAbsent):
        enumerate_domains(powercap.root)


def test_read_counter_rejects_undecodable_bytes(tmp_path: Path):
    counter = tmp_path / "energy_uj"
    counter.write_bytes(b"\xff\xfe\n")

    with pytest.raises(MalformedReading):
        read_counter(counter)
