import pytest

from wipebridge.events import (
    CompleteEvent,
    DemoFileCreatedEvent,
    DemoFileCreatingEvent,
    DriveInfo,
    InfoEvent,
    PassCompleteEvent,
    PassStartEvent,
    ProgressEvent,
    SystemInfo,
    UnknownEvent,
    classify,
    filter_drives_by_type,
    is_system_info,
    sort_drives,
)

DRIVES = [
    DriveInfo("/dev/sdb1", "part", 100, 0.0, "data"),
    DriveInfo("/dev/sdb", "disk", 200, 0.0, "USB stick"),
    DriveInfo("/dev/sda", "disk", 300, 0.0, "SSD"),
]

# ---------------------------------------------------------------------------
# Drive helpers
# ---------------------------------------------------------------------------

def test_filter_drives_by_type():
    assert [d.path for d in filter_drives_by_type(DRIVES, "disk")] == ["/dev/sdb", "/dev/sda"]
    assert [d.path for d in filter_drives_by_type(DRIVES, "part")] == ["/dev/sdb1"]
    assert filter_drives_by_type(DRIVES) == DRIVES

def test_sort_drives_puts_disks_first():
    assert [d.path for d in sort_drives(DRIVES)] == ["/dev/sda", "/dev/sdb", "/dev/sdb1"]

def test_drive_info_tolerates_missing_fields():
    drive = DriveInfo.from_dict({"path": "/dev/sdc"})
    assert drive.drive_type == "disk"
    assert drive.size_bytes is None
    assert drive.size_gb == 0.0

# ---------------------------------------------------------------------------
# classify
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("payload,expected", [
    ({"type": "pass_start", "pass": 2, "total_passes": 3, "pattern": "0xFF"}, PassStartEvent(2, 3, "0xFF")),
    ({"type": "pass_complete", "pass": 3, "total_passes": 3}, PassCompleteEvent(3, 3)),
    ({"type": "progress", "pass": 1, "total_passes": 1, "bytes_written": 5, "total_bytes": 10,
      "percent": 50, "bytes_per_second": 2.5}, ProgressEvent(1, 1, 5, 10, 50.0, 2.5)),
    ({"type": "complete", "total_time_seconds": 3, "average_throughput_mb_s": 1.5}, CompleteEvent(3.0, 1.5)),
    ({"type": "demo_file_creating", "bytes_written": 1, "total_bytes": 4, "percent": 25.0},
     DemoFileCreatingEvent(1, 4, 25.0)),
    ({"type": "demo_file_created", "path": "/tmp/secure_wipe_demo.bin", "size_mb": 10},
     DemoFileCreatedEvent("/tmp/secure_wipe_demo.bin", 10.0)),
])
def test_wire_fields_map_to_event_fields(payload, expected):
    assert classify(payload) == expected

def test_system_info_needs_all_three_keys():
    assert is_system_info({"os_name": "Linux", "os_version": "6", "architecture": "arm64"})
    assert not is_system_info({"os_name": "Linux", "os_version": "6"})
    assert isinstance(classify({"type": "info", "os_name": "Linux"}), InfoEvent)

def test_system_info_reads_gui_flag():
    info = SystemInfo.from_dict({"os_name": "Windows", "os_version": "11", "architecture": "x86_64",
                                 "supportsGuiPrompts": True})
    assert info.supports_gui_prompts is True
    assert info.storage_devices == ()

def test_missing_discriminator_is_unknown():
    event = classify({"hello": "world"})
    assert isinstance(event, UnknownEvent)
    assert event.type == "None"

def test_non_object_payload_is_rejected():
    with pytest.raises(TypeError):
        classify(["not", "an", "object"])

def test_wrongly_typed_field_raises():
    with pytest.raises(ValueError):
        classify({"type": "progress", "pass": "first"})

@pytest.mark.parametrize("payload", [
    {"type": "drive_list", "drives": ["/dev/sda"]},
    {"os_name": "Linux", "os_version": "6", "architecture": "x86_64", "cpu_info": [4]},
])
def test_nested_non_objects_raise_type_error(payload):
    with pytest.raises(TypeError, match="must be a JSON object"):
        classify(payload)
