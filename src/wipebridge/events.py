"""
wipebridge.events
-----------------

Typed events emitted by the secure-wipe binary in ``--json`` mode.

Every stdout object carries a ``type`` discriminator, except the response to
the system-information query, which is a flat object recognised by the
simultaneous presence of ``os_name``, ``os_version`` and ``architecture``.

Events are frozen dataclasses; ``classify(payload)`` turns a decoded JSON
object into the matching variant.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional, Union

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

SYSTEM_INFO_KEYS = ("os_name", "os_version", "architecture")


# --- Drive listing ----------------------------------------------------------

def _require_mapping(data, what: str) -> Mapping[str, Any]:
    if not isinstance(data, Mapping):
        raise TypeError(f"{what} must be a JSON object, got {type(data).__name__}")
    return data


@dataclass(frozen=True)
class DriveInfo:
    path: str
    drive_type: str
    size_bytes: Optional[int]
    size_gb: float
    description: str

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "DriveInfo":
        data = _require_mapping(data, "drive")
        return cls(
            path=str(data.get("path", "")),
            drive_type=str(data.get("drive_type", "disk")),
            size_bytes=data.get("size_bytes"),
            size_gb=float(data.get("size_gb") or 0.0),
            description=str(data.get("description", "")),
        )


def filter_drives_by_type(drives: Iterable[DriveInfo], drive_type: str = "all") -> list[DriveInfo]:
    """Keep only drives of ``drive_type`` ("disk", "part" or "all")."""
    if drive_type == "all":
        return list(drives)
    return [d for d in drives if d.drive_type == drive_type]


def sort_drives(drives: Iterable[DriveInfo]) -> list[DriveInfo]:
    """Disks before partitions, then by path."""
    return sorted(drives, key=lambda d: (d.drive_type != "disk", d.path))


# --- System information -----------------------------------------------------

@dataclass(frozen=True)
class CpuInfo:
    logical_cores: int = 0
    physical_cores: int = 0
    model_name: str = ""
    frequency_mhz: int = 0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CpuInfo":
        data = _require_mapping(data, "cpu_info")
        return cls(
            logical_cores=int(data.get("logical_cores") or 0),
            physical_cores=int(data.get("physical_cores") or 0),
            model_name=str(data.get("model_name", "")),
            frequency_mhz=int(data.get("frequency_mhz") or 0),
        )


@dataclass(frozen=True)
class StorageDevice:
    name: str = ""
    device_path: str = ""
    size_bytes: int = 0
    device_type: str = ""
    mount_point: str = ""
    file_system: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "StorageDevice":
        data = _require_mapping(data, "storage device")
        return cls(
            name=str(data.get("name", "")),
            device_path=str(data.get("device_path", "")),
            size_bytes=int(data.get("size_bytes") or 0),
            device_type=str(data.get("device_type", "")),
            mount_point=str(data.get("mount_point", "")),
            file_system=str(data.get("file_system", "")),
        )


@dataclass(frozen=True)
class SystemInfo:
    """Flat system description returned by ``secure-wipe-bin --json -s``."""
    os_name: str
    os_version: str
    architecture: str
    hostname: str = ""
    username: str = ""
    total_memory_bytes: int = 0
    available_memory_bytes: int = 0
    cpu_info: CpuInfo = field(default_factory=CpuInfo)
    storage_devices: tuple[StorageDevice, ...] = ()
    supports_gui_prompts: Optional[bool] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SystemInfo":
        return cls(
            os_name=str(data["os_name"]),
            os_version=str(data["os_version"]),
            architecture=str(data["architecture"]),
            hostname=str(data.get("hostname", "")),
            username=str(data.get("username", "")),
            total_memory_bytes=int(data.get("total_memory_bytes") or 0),
            available_memory_bytes=int(data.get("available_memory_bytes") or 0),
            cpu_info=CpuInfo.from_dict(data.get("cpu_info") or {}),
            storage_devices=tuple(StorageDevice.from_dict(d) for d in data.get("storage_devices") or ()),
            supports_gui_prompts=data.get("supportsGuiPrompts"),
        )


# --- Progress stream events -------------------------------------------------

@dataclass(frozen=True)
class StartEvent:
    algorithm: str
    total_passes: int
    file_size_bytes: int
    buffer_size_kb: int
    type: str = field(default="start", init=False)


@dataclass(frozen=True)
class PassStartEvent:
    pass_number: int
    total_passes: int
    pattern: str
    type: str = field(default="pass_start", init=False)


@dataclass(frozen=True)
class ProgressEvent:
    pass_number: int
    total_passes: int
    bytes_written: int
    total_bytes: int
    percent: float
    bytes_per_second: float
    type: str = field(default="progress", init=False)


@dataclass(frozen=True)
class PassCompleteEvent:
    pass_number: int
    total_passes: int
    type: str = field(default="pass_complete", init=False)


@dataclass(frozen=True)
class CompleteEvent:
    total_time_seconds: float
    average_throughput_mb_s: float
    type: str = field(default="complete", init=False)


@dataclass(frozen=True)
class DemoFileCreatingEvent:
    bytes_written: int
    total_bytes: int
    percent: float
    type: str = field(default="demo_file_creating", init=False)


@dataclass(frozen=True)
class DemoFileCreatedEvent:
    path: str
    size_mb: float
    type: str = field(default="demo_file_created", init=False)


@dataclass(frozen=True)
class InfoEvent:
    message: str
    type: str = field(default="info", init=False)


@dataclass(frozen=True)
class ErrorEvent:
    message: str
    type: str = field(default="error", init=False)


@dataclass(frozen=True)
class DriveListEvent:
    drives: tuple[DriveInfo, ...]
    type: str = field(default="drive_list", init=False)


@dataclass(frozen=True)
class UnknownEvent:
    """Object with a discriminator this version does not know about."""
    type: str
    data: Mapping[str, Any]


WipeEvent = Union[
    StartEvent,
    PassStartEvent,
    ProgressEvent,
    PassCompleteEvent,
    CompleteEvent,
    DemoFileCreatingEvent,
    DemoFileCreatedEvent,
    InfoEvent,
    ErrorEvent,
    DriveListEvent,
    SystemInfo,
    UnknownEvent,
]


# --- Classification ---------------------------------------------------------

def is_system_info(payload: Mapping[str, Any]) -> bool:
    return all(payload.get(key) for key in SYSTEM_INFO_KEYS)


def _start(d):
    return StartEvent(
        algorithm=str(d.get("algorithm", "")),
        total_passes=int(d.get("total_passes") or 0),
        file_size_bytes=int(d.get("file_size_bytes") or 0),
        buffer_size_kb=int(d.get("buffer_size_kb") or 0),
    )


def _pass_start(d):
    return PassStartEvent(int(d.get("pass") or 0), int(d.get("total_passes") or 0), str(d.get("pattern", "")))


def _progress(d):
    return ProgressEvent(
        pass_number=int(d.get("pass") or 0),
        total_passes=int(d.get("total_passes") or 0),
        bytes_written=int(d.get("bytes_written") or 0),
        total_bytes=int(d.get("total_bytes") or 0),
        percent=float(d.get("percent") or 0.0),
        bytes_per_second=float(d.get("bytes_per_second") or 0.0),
    )


def _pass_complete(d):
    return PassCompleteEvent(int(d.get("pass") or 0), int(d.get("total_passes") or 0))


def _complete(d):
    return CompleteEvent(float(d.get("total_time_seconds") or 0.0), float(d.get("average_throughput_mb_s") or 0.0))


def _demo_creating(d):
    return DemoFileCreatingEvent(
        int(d.get("bytes_written") or 0), int(d.get("total_bytes") or 0), float(d.get("percent") or 0.0)
    )


def _demo_created(d):
    return DemoFileCreatedEvent(str(d.get("path", "")), float(d.get("size_mb") or 0.0))


def _drive_list(d):
    return DriveListEvent(tuple(DriveInfo.from_dict(x) for x in d.get("drives") or ()))


_BUILDERS = {
    "start": _start,
    "pass_start": _pass_start,
    "progress": _progress,
    "pass_complete": _pass_complete,
    "complete": _complete,
    "demo_file_creating": _demo_creating,
    "demo_file_created": _demo_created,
    "info": lambda d: InfoEvent(str(d.get("message", ""))),
    "error": lambda d: ErrorEvent(str(d.get("message", ""))),
    "drive_list": _drive_list,
}


def classify(payload: Mapping[str, Any]) -> WipeEvent:
    """
    Build the typed event for a decoded JSON object.

    Raises:
        TypeError / ValueError / KeyError: if a known variant carries fields
        of the wrong shape. The parser treats this like malformed JSON.
    """
    if not isinstance(payload, Mapping):
        raise TypeError(f"expected a JSON object, got {type(payload).__name__}")
    if is_system_info(payload):
        return SystemInfo.from_dict(payload)
    kind = payload.get("type")
    builder = _BUILDERS.get(kind)
    if builder is None:
        logger.debug("Unrecognised event type %r", kind)
        return UnknownEvent(type=str(kind), data=dict(payload))
    return builder(payload)
