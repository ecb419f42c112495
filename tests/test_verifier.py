"""Tests for dSYM identity verification."""
import pytest

from qcs import dsym_tools
from qcs.errors import UUIDMismatchError
from qcs.verifier import matches_uuid, uuid_from_image, verify_image


EXPECTED = "6A1B2C3D-0000-1111-2222-333344445555"


@pytest.fixture
def dwarf_file(tmp_path):
    path = tmp_path / "Example"
    path.write_bytes(b"\xcf\xfa\xed\xfe")
    return path


@pytest.fixture
def fake_tools(monkeypatch):
    """Replace lipo / dwarfdump with in-memory answers."""
    state = {"archs": ["x86_64"], "uuid": EXPECTED.lower()}

    monkeypatch.setattr(
        dsym_tools,
        "has_architecture",
        lambda path, arch, timeout=None: arch in state["archs"],
    )
    monkeypatch.setattr(
        dsym_tools,
        "read_uuid",
        lambda path, arch, timeout=None: state["uuid"],
    )
    return state


def test_matching_uuid_is_case_insensitive(dwarf_file, fake_tools):
    """Equal UUIDs differing only in case match."""
    assert matches_uuid(dwarf_file, EXPECTED, "x86_64") is True
    assert verify_image(dwarf_file, EXPECTED, "x86_64") == EXPECTED.lower()


def test_missing_file_is_no_match(tmp_path, fake_tools):
    assert uuid_from_image(tmp_path / "nope", "x86_64") is None
    assert matches_uuid(tmp_path / "nope", EXPECTED, "x86_64") is False


def test_missing_arch_slice_is_no_match(dwarf_file, fake_tools):
    fake_tools["archs"] = ["i386"]
    assert uuid_from_image(dwarf_file, "x86_64") is None
    assert matches_uuid(dwarf_file, EXPECTED, "x86_64") is False


def test_mismatch_reports_both_uuids(dwarf_file, fake_tools):
    """The error names the expected and the actual UUID."""
    fake_tools["uuid"] = "FFFFFFFF-0000-1111-2222-333344445555"
    with pytest.raises(UUIDMismatchError) as excinfo:
        verify_image(dwarf_file, EXPECTED, "x86_64")
    err = excinfo.value
    assert err.expected == EXPECTED
    assert err.actual == "FFFFFFFF-0000-1111-2222-333344445555"
    assert EXPECTED in str(err)
    assert "FFFFFFFF-0000-1111-2222-333344445555" in str(err)


def test_unreadable_uuid_is_fatal(dwarf_file, fake_tools):
    fake_tools["uuid"] = None
    with pytest.raises(UUIDMismatchError) as excinfo:
        verify_image(dwarf_file, EXPECTED, "x86_64")
    assert excinfo.value.actual is None
    assert EXPECTED in str(excinfo.value)
