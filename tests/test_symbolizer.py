"""Tests for batched atos symbolication."""
from qcs import dsym_tools
from qcs.backtrace import Frame, ImageRecord
from qcs.symbolizer import build_lookup_groups, clean_symbol_line, symbolize_frames


APP = ImageRecord(
    bundle_id="com.example.App",
    uuid="6A1B2C3D-0000-1111-2222-333344445555",
    arch="x86_64",
    symbol_path="/x/Example.dSYM/Contents/Resources/DWARF/Example",
    load_address="0x100000000",
)
IMAGES = {"com.example.App": APP}


def _frame(address, desc):
    key = f"{address} {desc}"
    return Frame(key=key, address=address, bundle="com.example.App")


def _frames(*frames):
    return {f.key: f for f in frames}


class FakeAtos:
    """Records atos calls and answers from a fixed address -> line table."""

    def __init__(self, table):
        self.table = table
        self.calls = []

    def __call__(self, symbol_path, arch, load_address, addresses, timeout=None):
        self.calls.append((symbol_path, arch, load_address, list(addresses)))
        return [self.table.get(a, a) for a in addresses]


def test_clean_symbol_line():
    """The '(in binary)' part is removed; address echoes are rejected."""
    assert (
        clean_symbol_line("-[AppDelegate applicationDidFinishLaunching:] (in Example) (AppDelegate.m:42)")
        == "-[AppDelegate applicationDidFinishLaunching:] (AppDelegate.m:42)"
    )
    assert clean_symbol_line("0x0000000100001000") is None
    assert clean_symbol_line("4096") is None
    assert clean_symbol_line("") is None


def test_clean_symbol_line_keeps_inner_whitespace():
    """Only the line ending and the '(in binary)' part are removed."""
    assert clean_symbol_line("  start (in Example) + 52 \n") == "  start + 52 "
    assert clean_symbol_line("   \n") is None


def test_alignment_follows_request_order(monkeypatch):
    """Line i of the output is applied to address i of the request."""
    second = _frame("0x0000000100001200", "0x100000000 + 4608")
    first = _frame("0x0000000100001000", "0x100000000 + 4096")
    fake = FakeAtos({
        "0x0000000100001000": "first_func (in Example) (a.m:1)",
        "0x0000000100001200": "second_func (in Example) (b.m:2)",
    })
    monkeypatch.setattr(dsym_tools, "run_atos", fake)

    resolved = symbolize_frames(_frames(second, first), IMAGES)

    assert resolved[first.key].symbol == "first_func (a.m:1)"
    assert resolved[second.key].symbol == "second_func (b.m:2)"
    assert fake.calls == [(
        APP.symbol_path,
        "x86_64",
        "0x100000000",
        ["0x0000000100001200", "0x0000000100001000"],
    )]


def test_duplicate_addresses_resolved_once(monkeypatch):
    """Frames sharing an address share a single lookup."""
    a = _frame("0x0000000100001000", "0x100000000 + 4096")
    b = _frame("0x0000000100001000", "main + 16")
    fake = FakeAtos({"0x0000000100001000": "main (in Example) (main.m:5)"})
    monkeypatch.setattr(dsym_tools, "run_atos", fake)

    groups = build_lookup_groups(_frames(a, b), IMAGES)
    assert len(groups) == 1
    assert groups[0].addresses == ["0x0000000100001000"]

    resolved = symbolize_frames(_frames(a, b), IMAGES)
    assert len(fake.calls) == 1
    assert fake.calls[0][3] == ["0x0000000100001000"]
    assert resolved[a.key].symbol == resolved[b.key].symbol == "main (main.m:5)"


def test_unresolved_frames_are_dropped(monkeypatch, caplog):
    """Address echoes leave the frame out of the result."""
    good = _frame("0x0000000100001000", "0x100000000 + 4096")
    bad = _frame("0x0000000100009999", "0x100000000 + 39321")
    monkeypatch.setattr(dsym_tools, "run_atos", FakeAtos({good.address: "main (in Example)"}))

    resolved = symbolize_frames(_frames(good, bad), IMAGES)
    assert list(resolved) == [good.key]
    assert resolved[good.key].address == good.address
    assert "Unable to symbolicate" not in caplog.text


def test_zero_references_warns(monkeypatch, caplog):
    """A binary that resolves nothing is warned about, not fatal."""
    frame = _frame("0x0000000100001000", "0x100000000 + 4096")
    monkeypatch.setattr(dsym_tools, "run_atos", FakeAtos({}))

    with caplog.at_level("WARNING"):
        resolved = symbolize_frames(_frames(frame), IMAGES)
    assert resolved == {}
    assert "Unable to symbolicate from required binary" in caplog.text


def test_line_count_mismatch_rejects_batch(monkeypatch, caplog):
    """Output that cannot be paired positionally is not used at all."""
    a = _frame("0x0000000100001000", "x")
    b = _frame("0x0000000100001200", "y")
    monkeypatch.setattr(
        dsym_tools,
        "run_atos",
        lambda *args, **kwargs: ["only_one (in Example)"],
    )
    with caplog.at_level("WARNING"):
        resolved = symbolize_frames(_frames(a, b), IMAGES)
    assert resolved == {}
    assert "ignoring its output" in caplog.text


def test_frames_of_unknown_images_skipped(monkeypatch):
    other = Frame(key="0x1 foo", address="0x1", bundle="com.apple.AppKit")
    fake = FakeAtos({})
    monkeypatch.setattr(dsym_tools, "run_atos", fake)

    assert build_lookup_groups(_frames(other), IMAGES) == []
    assert symbolize_frames(_frames(other), IMAGES) == {}
    assert fake.calls == []


def test_groups_per_symbol_file(monkeypatch):
    """Each symbol file gets its own atos call."""
    plugin = ImageRecord(
        bundle_id="com.example.PlugIn",
        uuid="00000000-0000-0000-0000-000000000001",
        arch="x86_64",
        symbol_path="/x/PlugIn.dSYM/Contents/Resources/DWARF/PlugIn",
        load_address="0x200000000",
    )
    images = {"com.example.App": APP, "com.example.PlugIn": plugin}
    app_frame = _frame("0x0000000100001000", "a")
    plugin_frame = Frame(key="0x0000000200000010 b", address="0x0000000200000010", bundle="com.example.PlugIn")
    fake = FakeAtos({
        app_frame.address: "app_func (in Example)",
        plugin_frame.address: "plugin_func (in PlugIn)",
    })
    monkeypatch.setattr(dsym_tools, "run_atos", fake)

    resolved = symbolize_frames(_frames(app_frame, plugin_frame), images, workers=2)

    assert sorted(call[0] for call in fake.calls) == sorted([APP.symbol_path, plugin.symbol_path])
    assert resolved[app_frame.key].symbol == "app_func"
    assert resolved[plugin_frame.key].symbol == "plugin_func"
