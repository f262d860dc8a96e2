import json

import pytest
from hypothesis import given, settings, strategies as st

from wipebridge.events import (
    DriveListEvent,
    ErrorEvent,
    InfoEvent,
    ProgressEvent,
    StartEvent,
    SystemInfo,
    UnknownEvent,
    classify,
)
from wipebridge.parser import EventParser, parse_all

# ---------------------------------------------------------------------------
# Basic extraction
# ---------------------------------------------------------------------------

def test_single_complete_object():
    parser = EventParser()
    events = parser.feed(b'{"type":"info","message":"hello"}\n')
    assert events == [InfoEvent("hello")]
    assert parser.pending == ""

def test_object_split_across_chunks_emits_once_after_second_chunk():
    payload = {
        "type": "progress", "pass": 1, "total_passes": 3, "bytes_written": 1024,
        "total_bytes": 4096, "percent": 25.0, "bytes_per_second": 512.0,
        "padding": "x" * 600,
    }
    raw = (json.dumps(payload) + "\n").encode()
    parser = EventParser()
    assert parser.feed(raw[:512]) == []
    events = parser.feed(raw[512:])
    assert len(events) == 1
    assert isinstance(events[0], ProgressEvent)
    assert events[0].pass_number == 1
    assert events[0].percent == 25.0

def test_multiple_objects_in_one_chunk_keep_order():
    raw = b'{"type":"info","message":"a"}{"type":"info","message":"b"}\n{"type":"error","message":"c"}'
    assert EventParser().feed(raw) == [InfoEvent("a"), InfoEvent("b"), ErrorEvent("c")]

def test_braces_inside_strings_do_not_change_depth():
    event = {"type": "info", "message": "weird } value { with }} braces"}
    raw = json.dumps(event).encode()
    parser = EventParser()
    assert parser.feed(raw[:20]) == []
    assert parser.feed(raw[20:]) == [InfoEvent(event["message"])]

def test_escaped_quotes_inside_strings():
    message = 'say "}" and \\ then {'
    raw = json.dumps({"type": "error", "message": message}).encode()
    assert EventParser().feed(raw) == [ErrorEvent(message)]

def test_pretty_printed_object_over_several_lines():
    raw = json.dumps({"type": "start", "algorithm": "dod5220", "total_passes": 3,
                      "file_size_bytes": 10, "buffer_size_kb": 1024}, indent=2)
    parser = EventParser()
    out = []
    for line in raw.splitlines(keepends=True):
        out.extend(parser.feed(line.encode()))
    assert out == [StartEvent("dod5220", 3, 10, 1024)]

def test_non_json_noise_between_objects_is_ignored():
    raw = b'starting up\n{"type":"info","message":"x"}\nsome log line\n{"type":"info","message":"y"}\n'
    assert EventParser().feed(raw) == [InfoEvent("x"), InfoEvent("y")]

def test_malformed_object_is_skipped_and_stream_continues(caplog):
    raw = b'{"type":"info","message":}\n{"type":"info","message":"ok"}\n'
    with caplog.at_level("WARNING", logger="wipebridge.parser"):
        events = EventParser().feed(raw)
    assert events == [InfoEvent("ok")]
    assert "Failed to parse JSON event" in caplog.text

@pytest.mark.parametrize("bad", [
    b'{"type":"drive_list","drives":[1]}',
    b'{"type":"drive_list","drives":"sda"}',
    b'{"os_name":"Linux","os_version":"6","architecture":"x86_64","cpu_info":"fast"}',
    b'{"os_name":"Linux","os_version":"6","architecture":"x86_64","storage_devices":[null]}',
])
def test_wrongly_shaped_event_is_skipped(bad, caplog):
    with caplog.at_level("WARNING", logger="wipebridge.parser"):
        events = EventParser().feed(bad + b'\n{"type":"info","message":"after"}\n')
    assert events == [InfoEvent("after")]
    assert "Failed to parse JSON event" in caplog.text

def test_utf8_character_split_across_chunks():
    raw = json.dumps({"type": "info", "message": "überschreiben ✓"}, ensure_ascii=False).encode("utf-8")
    split = raw.index("✓".encode("utf-8")) + 1
    parser = EventParser()
    assert parser.feed(raw[:split]) == []
    assert parser.feed(raw[split:]) == [InfoEvent("überschreiben ✓")]

def test_flush_drops_incomplete_object():
    parser = EventParser()
    parser.feed(b'{"type":"info","message":"never fini')
    assert parser.flush() == []
    assert parser.pending == ""

def test_reset_clears_buffer():
    parser = EventParser()
    parser.feed(b'{"type":"info",')
    parser.reset()
    assert parser.feed(b'{"type":"info","message":"fresh"}') == [InfoEvent("fresh")]

# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

def test_system_info_is_recognised_without_discriminator():
    raw = json.dumps({
        "os_name": "Linux", "os_version": "6.1", "architecture": "x86_64",
        "hostname": "box", "cpu_info": {"logical_cores": 8, "model_name": "cpu"},
        "storage_devices": [{"name": "sda", "device_path": "/dev/sda", "size_bytes": 10}],
    })
    (event,) = parse_all(raw)
    assert isinstance(event, SystemInfo)
    assert event.cpu_info.logical_cores == 8
    assert event.storage_devices[0].device_path == "/dev/sda"

def test_drive_list_is_classified():
    raw = json.dumps({"type": "drive_list", "drives": [
        {"path": "/dev/sdb", "drive_type": "disk", "size_bytes": None, "size_gb": 0, "description": "USB"},
    ]})
    (event,) = parse_all(raw)
    assert isinstance(event, DriveListEvent)
    assert event.drives[0].path == "/dev/sdb"
    assert event.drives[0].size_bytes is None

def test_unknown_discriminator_is_kept():
    (event,) = parse_all('{"type":"verify","ok":true}')
    assert isinstance(event, UnknownEvent)
    assert event.type == "verify"
    assert event.data["ok"] is True

def test_parse_all_accepts_captured_bytes():
    raw = b'{"type":"info","message":"1"}\r\n{"type":"complete","total_time_seconds":1.5,"average_throughput_mb_s":20}\r\n'
    events = parse_all(raw)
    assert [e.type for e in events] == ["info", "complete"]

# ---------------------------------------------------------------------------
# Fuzz: chunking never changes the result
# ---------------------------------------------------------------------------

_text = st.text(alphabet=st.characters(blacklist_categories=("Cs",)), max_size=30)

_event_dicts = st.one_of(
    _text.map(lambda m: {"type": "info", "message": m}),
    _text.map(lambda m: {"type": "error", "message": m}),
    st.builds(
        lambda p, t, w, pct: {
            "type": "progress", "pass": p, "total_passes": t, "bytes_written": w,
            "total_bytes": w * 2, "percent": pct, "bytes_per_second": 1.0,
        },
        st.integers(1, 35), st.integers(1, 35), st.integers(0, 2**40),
        st.floats(0, 100, allow_nan=False),
    ),
)

@pytest.mark.fuzz
@settings(max_examples=200)
@given(st.lists(_event_dicts, max_size=8), st.data())
def test_chunk_boundaries_do_not_matter_fuzz(payloads, data):
    raw = "".join(json.dumps(p, ensure_ascii=False) + "\n" for p in payloads).encode("utf-8")
    cuts = sorted(data.draw(st.lists(st.integers(0, len(raw)), max_size=12)))
    chunks = [raw[a:b] for a, b in zip([0] + cuts, cuts + [len(raw)])]

    parser = EventParser()
    events = []
    for chunk in chunks:
        events.extend(parser.feed(chunk))
    events.extend(parser.flush())

    assert events == [classify(p) for p in payloads]
