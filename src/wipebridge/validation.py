"""
wipebridge.validation
---------------------

Checks run before any process is spawned.

Main API:
    - validate_target(target, elevated=None) -> TargetCheck
    - validate_request(request, elevated=None) -> WipeAlgorithm
    - is_block_device(target)
    - validate_buffer_size / validate_passes / validate_demo_size

Notes:
 - Block devices are recognised lexically (``/dev/...``, ``\\\\.\\PhysicalDriveN``,
   ``\\\\.\\X:``); they are never probed on the filesystem.
 - Block devices skip the existence and regular-file checks, but are still
   matched against the protected path list and require elevated rights.
 - validate_target is a pure predicate and does not raise for string input.
"""

from __future__ import annotations

import os
import re
import stat
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .errors import ValidationError
from .privileges import is_elevated
from .request import WipeAlgorithm, WipeRequest

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

PROTECTED_PATHS = (
    "/",
    "/boot",
    "/etc",
    "/usr",
    "/bin",
    "/sbin",
    "/lib",
    "C:\\",
    "C:\\Windows",
    "C:\\Program Files",
    "C:\\Users",
)

MAX_PASSES = 100
MIN_BUFFER_KB = 1
MAX_BUFFER_KB = 1024 * 1024
MIN_DEMO_MB = 1
MAX_DEMO_MB = 10240

_WIN_VOLUME = re.compile(r"^\\\\\.\\[A-Za-z]:$")
_WIN_PHYSICAL = "\\\\.\\PhysicalDrive"


class TargetProblem(str, Enum):
    TRAVERSAL = "contains traversal sequence"
    NULL_BYTE = "contains embedded null byte"
    NOT_ABSOLUTE = "not absolute"
    NOT_FOUND = "does not exist"
    NOT_REGULAR_FILE = "is not a regular file"
    PROTECTED = "is a protected system path"
    INSUFFICIENT_PRIVILEGES = "insufficient privileges"


@dataclass(frozen=True)
class TargetCheck:
    valid: bool
    problem: Optional[TargetProblem] = None
    message: Optional[str] = None

    def __bool__(self) -> bool:
        return self.valid


_OK = TargetCheck(True)


def _fail(problem: TargetProblem, message: str) -> TargetCheck:
    return TargetCheck(False, problem, message)


def is_block_device(target: str) -> bool:
    if target.startswith("/dev/"):
        return True
    return target.startswith(_WIN_PHYSICAL) or bool(_WIN_VOLUME.match(target))


def protected_root(target: str) -> Optional[str]:
    """Return the protected path that ``target`` equals or lives under, if any."""
    resolved = os.path.normcase(os.path.abspath(target))
    for root in PROTECTED_PATHS:
        norm = os.path.normcase(root)
        if resolved == norm or resolved.startswith(norm + os.sep):
            return root
    return None


def whole_disk_warning(target: str) -> Optional[str]:
    """Warn when a device path names a whole disk rather than a partition."""
    if "PhysicalDrive" in target or (target.startswith("/dev/") and not re.search(r"\d+$", target)):
        return ("You are attempting to wipe an entire disk. "
                "This will destroy all data and partitions on the device.")
    return None


def validate_target(target: str, elevated: Optional[bool] = None) -> TargetCheck:
    """
    Decide whether ``target`` may be handed to the binary.

    Args:
        target: file path or device path
        elevated: whether the process that will open the target runs with
            elevated rights. Defaults to the current process.
    """
    if not isinstance(target, str) or not target:
        return _fail(TargetProblem.NOT_ABSOLUTE, "Target path is empty")
    if ".." in target or "~" in target:
        return _fail(TargetProblem.TRAVERSAL, "Path contains potentially dangerous patterns")
    if "\0" in target:
        return _fail(TargetProblem.NULL_BYTE, "Path contains null bytes")

    if is_block_device(target):
        root = protected_root(target)
        if root is not None:
            return _fail(TargetProblem.PROTECTED, f"Attempting to wipe system directory: {root}")
        if elevated is None:
            elevated = is_elevated()
        if not elevated:
            return _fail(TargetProblem.INSUFFICIENT_PRIVILEGES,
                         "Wiping block devices requires administrator/root privileges.")
        return _OK

    if not os.path.isabs(target):
        return _fail(TargetProblem.NOT_ABSOLUTE, "Path must be absolute")
    try:
        st = os.stat(target)
    except FileNotFoundError:
        return _fail(TargetProblem.NOT_FOUND, "File does not exist")
    except OSError as e:
        return _fail(TargetProblem.NOT_FOUND, f"Path validation failed: {e}")
    if not stat.S_ISREG(st.st_mode):
        return _fail(TargetProblem.NOT_REGULAR_FILE, "Path is not a regular file")

    root = protected_root(target)
    if root is not None:
        return _fail(TargetProblem.PROTECTED,
                     f"Attempting to wipe system directory: {root}. This could damage your system.")
    return _OK


# --- Tuning values ---------------------------------------------------------

def _require_int(value, label: str) -> None:
    # bool is an int subclass
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{label} must be an integer, got {value!r}")


def validate_buffer_size(size_kb: int) -> None:
    _require_int(size_kb, "Invalid buffer size: Buffer size")
    if size_kb < MIN_BUFFER_KB:
        raise ValidationError("Invalid buffer size: Buffer size must be at least 1 KB")
    if size_kb > MAX_BUFFER_KB:
        raise ValidationError("Invalid buffer size: Buffer size cannot exceed 1 GB")
    if size_kb > 1024 and size_kb & (size_kb - 1):
        logger.warning("Buffer size should be a power of 2 for optimal performance (got %d KB)", size_kb)


def validate_passes(passes: int) -> None:
    _require_int(passes, "Number of passes")
    if not 1 <= passes <= MAX_PASSES:
        raise ValidationError(f"Number of passes must be between 1 and {MAX_PASSES}")


def validate_demo_size(size_mb: int) -> None:
    _require_int(size_mb, "Invalid demo size: Demo size")
    if size_mb < MIN_DEMO_MB:
        raise ValidationError("Invalid demo size: Demo size must be at least 1 MB")
    if size_mb > MAX_DEMO_MB:
        raise ValidationError("Invalid demo size: Demo size cannot exceed 10 GB")


def validate_request(request: WipeRequest, elevated: Optional[bool] = None) -> WipeAlgorithm:
    """
    Validate every field of ``request``.

    Returns:
        the parsed algorithm

    Raises:
        ValidationError: on the first problem found
    """
    try:
        algorithm = WipeAlgorithm.parse(request.algorithm)
    except ValueError as e:
        raise ValidationError(str(e)) from None

    if request.demo:
        if request.demo_size is not None:
            validate_demo_size(request.demo_size)
    else:
        check = validate_target(request.target, elevated=elevated)
        if not check:
            logger.warning("Target validation failed for %r: %s", request.target, check.message)
            raise ValidationError(f"Invalid target path: {request.target} ({check.message})", check.problem)
        warning = whole_disk_warning(request.target)
        if warning:
            logger.warning("%s Target: %s", warning, request.target)

    if request.buffer_size is not None:
        validate_buffer_size(request.buffer_size)
    if request.passes is not None:
        validate_passes(request.passes)
    return algorithm
