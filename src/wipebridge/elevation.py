"""
wipebridge.elevation
--------------------

Re-launch the secure-wipe command with escalated rights.

Two execution shapes:

- streaming (Linux, macOS): ``pkexec BIN ARGS`` or ``sudo BIN ARGS`` run as a
  real child whose stdout/stderr stay piped to the orchestrator, so progress
  events arrive live.
- blocking (Windows): PowerShell ``Start-Process -Verb RunAs -Wait`` around
  ``cmd.exe /c`` with output redirected to temporary files. UAC cannot hand
  pipes to the elevated process, so the whole output is read after the run
  finishes and parsed in one pass. Events for this path arrive in a single
  burst; this asymmetry is kept on purpose.

Escalation failures (no mechanism, mechanism binary missing, prompt dismissed
or denied) are reported separately from failures of the wipe itself.
"""

from __future__ import annotations

import os
import shutil
import subprocess
import tempfile
import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence

from .errors import ElevationError
from .privileges import METHOD_NONE, METHOD_PKEXEC, METHOD_RUNAS, METHOD_SUDO, PlatformProfile
from .request import ElevationOptions

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

NO_METHOD_MESSAGE = "No privilege escalation method available on this platform"

# pkexec exit codes
_PKEXEC_DISMISSED = 126
_PKEXEC_DENIED = 127

_SUDO_FAILURE_MARKERS = (
    "a password is required",
    "a terminal is required",
    "incorrect password",
    "is not in the sudoers file",
)
_UAC_DECLINED_MARKERS = ("canceled by the user", "cancelled by the user")


@dataclass(frozen=True)
class EscalationResult:
    success: bool
    method: str
    stdout: str = ""
    stderr: str = ""
    returncode: Optional[int] = None
    error: Optional[str] = None
    declined: bool = False


@dataclass
class ElevatedCommand:
    """A prepared elevated invocation; run it with ``utils.open_process``."""
    argv: list[str]
    method: str
    streaming: bool
    env: Optional[dict] = None
    stdout_path: Optional[str] = None
    stderr_path: Optional[str] = None
    _collected: bool = field(default=False, repr=False)

    def check_exit(self, returncode: Optional[int], stderr: str) -> Optional[ElevationError]:
        """
        Map a streaming-shape exit to an escalation failure, if it was one.

        Returns None when the wrapped binary actually ran.
        """
        if self.method == METHOD_PKEXEC:
            if returncode == _PKEXEC_DISMISSED:
                return ElevationError("Authentication dismissed by user", self.method, declined=True)
            if returncode == _PKEXEC_DENIED:
                return ElevationError("Authentication denied", self.method, declined=True)
        elif self.method == METHOD_SUDO and returncode not in (0, None):
            lowered = stderr.lower()
            if any(marker in lowered for marker in _SUDO_FAILURE_MARKERS):
                return ElevationError(f"sudo refused to elevate: {stderr.strip()}", self.method)
        return None

    def collect(self, returncode: Optional[int], launcher_stderr: str = "") -> EscalationResult:
        """Read the captured output of a blocking-shape run and remove the temp files."""
        stdout = _read_and_remove(self.stdout_path)
        stderr = _read_and_remove(self.stderr_path)
        self._collected = True

        lowered = launcher_stderr.lower()
        if any(marker in lowered for marker in _UAC_DECLINED_MARKERS):
            return EscalationResult(False, self.method, stdout, stderr, returncode,
                                    "User declined the elevation prompt", declined=True)
        if stdout is None and stderr is None and returncode != 0:
            message = launcher_stderr.strip() or f"Elevated launcher exited with code {returncode}"
            return EscalationResult(False, self.method, "", "", returncode, message)
        return EscalationResult(True, self.method, stdout or "", stderr or "", returncode)

    def discard(self) -> None:
        if not self._collected:
            _read_and_remove(self.stdout_path)
            _read_and_remove(self.stderr_path)
            self._collected = True


def _read_and_remove(path: Optional[str]) -> Optional[str]:
    if not path:
        return None
    try:
        with open(path, "rb") as f:
            data = f.read()
    except OSError:
        return None
    finally:
        try:
            os.remove(path)
        except OSError:
            pass
    # an empty file means the elevated command never ran
    if not data:
        return None
    return data.decode("utf-8", errors="replace")


def _ps_quote(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def _detect_powershell() -> Optional[str]:
    for exe in ("powershell.exe", "pwsh.exe", "powershell", "pwsh"):
        path = shutil.which(exe)
        if path:
            return path
    return None


class ElevatedSpawner:
    """Builds elevated invocations for the platform's mechanism."""

    def __init__(self, profile: Optional[PlatformProfile] = None):
        self.profile = profile or PlatformProfile.detect()

    @property
    def streaming(self) -> bool:
        return self.profile.streams_elevated_output

    def method(self) -> str:
        return self.profile.elevation_method()

    def prepare(
        self,
        binary: str,
        args: Sequence[str],
        options: Optional[ElevationOptions] = None,
    ) -> ElevatedCommand:
        """
        Raises:
            ElevationError: no mechanism available or its binary is missing
        """
        options = options or ElevationOptions()
        method = self.method()
        if method == METHOD_NONE:
            raise ElevationError(NO_METHOD_MESSAGE, method)

        if method == METHOD_PKEXEC:
            tool = shutil.which("pkexec")
            if not tool:
                raise ElevationError("pkexec not found", method)
            env = {"DISPLAY": os.environ.get("DISPLAY") or ":0"}
            return ElevatedCommand([tool, binary, *args], method, True, env=env)

        if method == METHOD_SUDO:
            tool = shutil.which("sudo")
            if not tool:
                raise ElevationError("sudo not found", method)
            # sudo expands %-escapes in the prompt; %p is the user it authenticates
            prompt = f"[{options.name.replace('%', '%%')}] administrator password for %p: "
            return ElevatedCommand([tool, "-p", prompt, "--", binary, *args], method, True)

        if method == METHOD_RUNAS:
            return self._prepare_runas(binary, args, options)

        raise ElevationError(f"Unsupported elevation method: {method}", method)

    def _prepare_runas(self, binary: str, args: Sequence[str], options: ElevationOptions) -> ElevatedCommand:
        ps = _detect_powershell()
        if not ps:
            raise ElevationError("PowerShell not found; cannot show the UAC prompt", METHOD_RUNAS)

        out_fd, out_path = tempfile.mkstemp(prefix=".secure-wipe-out-", suffix=".log")
        err_fd, err_path = tempfile.mkstemp(prefix=".secure-wipe-err-", suffix=".log")
        os.close(out_fd)
        os.close(err_fd)

        inner = subprocess.list2cmdline([binary, *args])
        # cmd strips the outermost quote pair after /c
        cmd_line = f'/c "{inner} 1> "{out_path}" 2> "{err_path}""'
        window = "Hidden" if options.windows_hide else "Normal"
        script = (
            "$ErrorActionPreference = 'Stop'; "
            f"$p = Start-Process -FilePath 'cmd.exe' -ArgumentList {_ps_quote(cmd_line)} "
            f"-Verb RunAs -Wait -PassThru -WindowStyle {window}; "
            "exit $p.ExitCode"
        )
        argv = [ps, "-NoProfile", "-NonInteractive", "-ExecutionPolicy", "Bypass", "-Command", script]
        logger.debug("Prepared UAC invocation for %s (%s)", binary, options.name)
        return ElevatedCommand(argv, METHOD_RUNAS, False, stdout_path=out_path, stderr_path=err_path)
