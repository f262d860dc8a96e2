"""
wipebridge: supervise the secure-wipe binary, stream its JSON progress events
and handle privilege escalation for protected targets.
"""

from .config import OrchestratorConfig
from .errors import ElevationError, OperationInProgressError, ValidationError, WipeBridgeError
from .events import (
    CompleteEvent,
    CpuInfo,
    DemoFileCreatedEvent,
    DemoFileCreatingEvent,
    DriveInfo,
    DriveListEvent,
    ErrorEvent,
    InfoEvent,
    PassCompleteEvent,
    PassStartEvent,
    ProgressEvent,
    StartEvent,
    StorageDevice,
    SystemInfo,
    UnknownEvent,
    filter_drives_by_type,
    sort_drives,
)
from .elevation import ElevatedSpawner, EscalationResult
from .orchestrator import BinaryStatus, OperationResult, OperationState, WipeOrchestrator
from .parser import EventParser, parse_all
from .privileges import (
    BinaryAccess,
    PlatformProfile,
    PrivilegeResolver,
    PrivilegeStatus,
    get_elevation_description,
)
from .request import ElevationOptions, WipeAlgorithm, WipeRequest, algorithm_info
from .validation import TargetCheck, TargetProblem, is_block_device, validate_target

__all__ = ["WipeOrchestrator",
                "OperationResult",
                "OperationState",
                "BinaryStatus",
                "OrchestratorConfig",
                "WipeRequest",
                "WipeAlgorithm",
                "ElevationOptions",
                "algorithm_info",
                "EventParser",
                "parse_all",
                "PrivilegeResolver",
                "PrivilegeStatus",
                "PlatformProfile",
                "BinaryAccess",
                "get_elevation_description",
                "ElevatedSpawner",
                "EscalationResult",
                "validate_target",
                "is_block_device",
                "TargetCheck",
                "TargetProblem",
                "WipeBridgeError",
                "ValidationError",
                "OperationInProgressError",
                "ElevationError",
                ]

__all__.extend([
    "StartEvent", "PassStartEvent", "ProgressEvent", "PassCompleteEvent", "CompleteEvent",
    "DemoFileCreatingEvent", "DemoFileCreatedEvent", "InfoEvent", "ErrorEvent", "DriveListEvent",
    "DriveInfo", "SystemInfo", "CpuInfo", "StorageDevice", "UnknownEvent",
    "filter_drives_by_type", "sort_drives",
])
__version__ = "1.0.0"
__license__ = "MIT"
