"""
wipebridge.privileges
---------------------

Privilege detection for wipe targets.

- PlatformProfile: per-platform strategy (binary name, elevation mechanism,
  GUI prompt support), selected once via ``PlatformProfile.detect()``
- PrivilegeResolver.check_privileges(target): can the current principal
  write the target, and if not, how would we elevate
- get_elevation_description(method): human readable prompt text

Notes:
 - Results are recomputed on every call; permissions differ per path.
 - Filesystem probe errors mean "elevation needed"; checks never raise for
   a string path.
"""

from __future__ import annotations

import os
import shutil
import stat
import sys
import tempfile
import logging
from dataclasses import dataclass
from typing import Callable, Mapping, Optional

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

METHOD_SUDO = "sudo"
METHOD_PKEXEC = "pkexec"
METHOD_RUNAS = "runas"
METHOD_NONE = "none"

_DESCRIPTIONS = {
    METHOD_SUDO: "Administrator password required (sudo)",
    METHOD_PKEXEC: "Authentication required (PolicyKit)",
    METHOD_RUNAS: "Administrator privileges required (UAC)",
}
_DEFAULT_DESCRIPTION = "Administrator privileges required"


def get_elevation_description(method: Optional[str] = None) -> str:
    return _DESCRIPTIONS.get(method or "", _DEFAULT_DESCRIPTION)


# --- Platform strategies ----------------------------------------------------

class PlatformProfile:
    """Platform specific behaviour; the orchestrator never branches on the OS itself."""

    family = "other"
    binary_name = "secure-wipe-bin"
    # Windows elevation cannot keep pipes attached to the elevated child
    streams_elevated_output = True

    def elevation_method(self) -> str:
        return METHOD_NONE

    def supports_gui_prompts(self, environ: Optional[Mapping[str, str]] = None) -> bool:
        return False

    def __repr__(self) -> str:
        return f"<{type(self).__name__} family={self.family}>"

    @staticmethod
    def detect(platform_name: Optional[str] = None) -> "PlatformProfile":
        name = platform_name or sys.platform
        if name.startswith("linux"):
            return LinuxProfile()
        if name == "darwin":
            return MacProfile()
        if name in ("win32", "cygwin"):
            return WindowsProfile()
        logger.warning("Unsupported platform %s; using generic profile", name)
        return PlatformProfile()


class LinuxProfile(PlatformProfile):
    family = "linux"

    def elevation_method(self) -> str:
        # pkexec shows a desktop dialog; sudo needs a terminal
        if shutil.which("pkexec"):
            return METHOD_PKEXEC
        if shutil.which("sudo"):
            return METHOD_SUDO
        return METHOD_NONE

    def supports_gui_prompts(self, environ=None) -> bool:
        env = os.environ if environ is None else environ
        return bool(env.get("DISPLAY") or env.get("WAYLAND_DISPLAY"))


class MacProfile(PlatformProfile):
    family = "darwin"

    def elevation_method(self) -> str:
        return METHOD_SUDO

    def supports_gui_prompts(self, environ=None) -> bool:
        return True


class WindowsProfile(PlatformProfile):
    family = "win32"
    binary_name = "secure-wipe-bin.exe"
    streams_elevated_output = False

    def elevation_method(self) -> str:
        return METHOD_RUNAS

    def supports_gui_prompts(self, environ=None) -> bool:
        return True


# --- Identity ---------------------------------------------------------------

def is_elevated() -> bool:
    """Return True if the current process runs as root / administrator."""
    if os.name == "nt":
        try:
            import ctypes
            return bool(ctypes.windll.shell32.IsUserAnAdmin())
        except Exception:
            return False
    return os.geteuid() == 0


def current_user() -> str:
    if os.name == "nt":
        user = os.environ.get("USERNAME")
    else:
        user = os.environ.get("USER") or os.environ.get("LOGNAME")
    if user:
        return user
    try:
        import psutil
        return psutil.Process().username()
    except Exception as e:
        logger.debug("Could not determine current user: %s", e)
    return "unknown"


# --- Results ----------------------------------------------------------------

@dataclass(frozen=True)
class PrivilegeStatus:
    current_user: str
    is_elevated: bool
    has_privileges: bool
    needs_elevation: bool
    platform: str
    method: str = METHOD_NONE


@dataclass(frozen=True)
class BinaryAccess:
    can_execute: bool
    needs_elevation: bool
    error: Optional[str] = None


# --- Resolver ---------------------------------------------------------------

def target_requires_privileges(path: str) -> bool:
    """
    Probe write access for ``path``.

    Directories: create and remove a marker file. Files and devices: probe
    the parent directory. Any OSError means privileges are required.
    """
    try:
        st = os.stat(path)
    except (OSError, ValueError):
        return True

    if stat.S_ISDIR(st.st_mode):
        try:
            fd, marker = tempfile.mkstemp(prefix=".secure-wipe-test-", dir=path)
        except OSError:
            return True
        try:
            os.close(fd)
            os.remove(marker)
        except OSError as e:
            logger.warning("Failed to remove privilege probe %s: %s", marker, e)
        return False

    parent = os.path.dirname(os.path.abspath(path))
    if parent == path:
        return True
    return target_requires_privileges(parent)


class PrivilegeResolver:
    """Answers "can we touch this target, and how do we elevate if not"."""

    def __init__(
        self,
        profile: Optional[PlatformProfile] = None,
        *,
        elevated: Optional[Callable[[], bool]] = None,
    ):
        self.profile = profile or PlatformProfile.detect()
        self._elevated = elevated or is_elevated

    def is_elevated(self) -> bool:
        return self._elevated()

    def elevation_method(self) -> str:
        return self.profile.elevation_method()

    def check_privileges(self, target: Optional[str] = None) -> PrivilegeStatus:
        user = current_user()
        elevated = self.is_elevated()
        if elevated:
            return PrivilegeStatus(user, True, True, False, self.profile.family)

        if target:
            needs = target_requires_privileges(target)
        else:
            # sanitization is assumed to be privileged by default
            needs = True
        method = self.elevation_method() if needs else METHOD_NONE
        logger.debug("Privilege check for %r: needs_elevation=%s method=%s", target, needs, method)
        return PrivilegeStatus(user, False, False, needs, self.profile.family, method)

    def supports_gui_prompts(self) -> bool:
        return self.profile.supports_gui_prompts()

    def get_elevation_description(self, target: Optional[str] = None) -> str:
        return get_elevation_description(self.check_privileges(target).method)

    def validate_binary_access(self, binary_path: str) -> BinaryAccess:
        resolved = binary_path if os.path.dirname(binary_path) else (shutil.which(binary_path) or binary_path)
        if not os.path.isfile(resolved):
            return BinaryAccess(False, False, f"Binary not found: {binary_path}")
        if os.name != "nt" and not os.access(resolved, os.X_OK):
            return BinaryAccess(False, False, f"Binary is not executable: {resolved}")
        return BinaryAccess(True, self.check_privileges().needs_elevation)
