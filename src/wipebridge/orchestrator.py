"""
wipebridge.orchestrator
-----------------------

Supervises the secure-wipe binary.

Main API (``WipeOrchestrator``):
    - wipe(request, sink=None)
    - wipe_with_elevation(request, sink=None)
    - list_drives(sink=None), get_system_info(sink=None)
    - cancel(), is_active(), state
    - subscribe(callback) -> unsubscribe
    - check_binary(), find_binary(), binary_info(), validate_binary_access()
    - check_privileges(target), get_elevation_description(target), supports_gui_prompts()

Every operation call blocks its calling thread until the child exits and
returns a single ``OperationResult``; run it on a worker thread and call
``cancel()`` from elsewhere to stop it. Events are delivered to the sink as
soon as stdout produces them.

Notes:
 - At most one child process is owned at a time. Starting a second operation
   while one is in flight raises ``OperationInProgressError`` before anything
   is spawned.
 - Invalid requests raise ``ValidationError``. Everything that happens after
   validation (spawn errors, escalation failures, error events, timeouts,
   cancellation) is reported in the returned result.
 - Exceptions raised by a sink or subscriber are logged and ignored.
 - Once cancelled, an operation always resolves as a failure, and further
   output from the dying child is not forwarded.
"""

from __future__ import annotations

import codecs
import dataclasses
import os
import shutil
import sys
import tempfile
import threading
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Sequence

import psutil

from .config import OrchestratorConfig
from .elevation import ElevatedCommand, ElevatedSpawner
from .errors import ElevationError, OperationInProgressError
from .events import DriveListEvent, ErrorEvent, InfoEvent, SystemInfo, WipeEvent
from .parser import EventParser
from .privileges import BinaryAccess, PlatformProfile, PrivilegeResolver, PrivilegeStatus, current_user
from .request import WipeRequest
from .utils import audit_entry, open_process
from .validation import validate_request

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

audit_log = logging.getLogger("wipebridge.audit")
audit_log.addHandler(logging.NullHandler())

EventSink = Callable[[WipeEvent], None]

CANCEL_MESSAGE = "Operation cancelled by user"
SUPPORTED_PLATFORMS = ("win32", "linux")
_READ_SIZE = 4096


class OperationState(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    SPAWNING = "spawning"
    RUNNING = "running"
    COMPLETING = "completing"
    CANCELLING = "cancelling"
    TIMING_OUT = "timing_out"


@dataclass(frozen=True)
class OperationResult:
    success: bool
    error: Optional[str] = None
    exit_code: Optional[int] = None
    cancelled: bool = False
    timed_out: bool = False
    privileges_requested: bool = False
    privilege_method: Optional[str] = None
    privilege_error: Optional[str] = None
    payload: Any = None


@dataclass(frozen=True)
class BinaryStatus:
    exists: bool
    path: str
    platform: str
    is_executable: Optional[bool] = None
    error: Optional[str] = None


class _ProcessHandle:
    """The one live child process and everything bound to its lifetime."""

    def __init__(self, process, sink: Optional[EventSink], parse_stdout: bool = True):
        self.process = process
        self.parser = EventParser()
        self.sink = sink
        self.parse_stdout = parse_stdout
        self.lock = threading.RLock()
        self.cancelled = False
        self.timed_out = False
        self.error_seen = False
        self.last_error: Optional[str] = None
        self.payload: Any = None
        self.stderr_parts: list[str] = []
        self.timer: Optional[threading.Timer] = None

    @property
    def stderr_text(self) -> str:
        return "".join(self.stderr_parts).strip()


def _signal_process(process, force: bool = False) -> None:
    """SIGTERM (or SIGKILL) the child and anything it started, best effort."""
    if process.poll() is not None:
        return
    try:
        children = psutil.Process(process.pid).children(recursive=True)
    except psutil.Error as e:
        logger.debug("Could not list children of pid %s: %s", process.pid, e)
        children = []
    for child in children:
        try:
            child.kill() if force else child.terminate()
        except psutil.Error as e:
            logger.debug("Could not signal child %s: %s", child.pid, e)
    try:
        process.kill() if force else process.terminate()
    except OSError as e:
        logger.debug("Could not signal pid %s: %s", process.pid, e)


class WipeOrchestrator:
    """Owns at most one secure-wipe child process at a time."""

    def __init__(
        self,
        config: Optional[OrchestratorConfig] = None,
        *,
        profile: Optional[PlatformProfile] = None,
        resolver: Optional[PrivilegeResolver] = None,
        spawner: Optional[ElevatedSpawner] = None,
    ):
        self.config = config or OrchestratorConfig.from_env()
        self.profile = profile or PlatformProfile.detect()
        self.resolver = resolver or PrivilegeResolver(self.profile)
        self.spawner = spawner or ElevatedSpawner(self.profile)
        self._binary_path = self.config.binary_path or self._default_binary_path()
        self._lock = threading.RLock()
        self._handle: Optional[_ProcessHandle] = None
        self._state = OperationState.IDLE
        self._op: Optional[object] = None
        self._subscribers: list[EventSink] = []

    # --- State ---------------------------------------------------------------
    @property
    def state(self) -> OperationState:
        return self._state

    def is_active(self) -> bool:
        return self._handle is not None

    def _claim(self) -> object:
        with self._lock:
            if self._state is not OperationState.IDLE or self._handle is not None:
                raise OperationInProgressError("Another secure-wipe operation is already running")
            token = object()
            self._op = token
            self._state = OperationState.VALIDATING
            return token

    def _transition(self, op: object, state: OperationState) -> None:
        with self._lock:
            if self._op is op:
                self._state = state

    def _release(self, op: object) -> None:
        with self._lock:
            if self._op is op:
                self._op = None
                self._handle = None
                self._state = OperationState.IDLE

    # --- Subscriptions ---------------------------------------------------------
    def subscribe(self, callback: EventSink) -> Callable[[], None]:
        """Receive every event of every operation. Returns an unsubscribe function."""
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                try:
                    self._subscribers.remove(callback)
                except ValueError:
                    pass

        return unsubscribe

    def _deliver(self, sink: Optional[EventSink], event: WipeEvent) -> None:
        with self._lock:
            targets = list(self._subscribers)
        if sink is not None:
            targets.insert(0, sink)
        for target in targets:
            try:
                target(event)
            except Exception:
                logger.exception("Event sink %r raised while handling %s", target, type(event).__name__)

    def _dispatch(self, handle: _ProcessHandle, event: WipeEvent) -> None:
        with handle.lock:
            if handle.cancelled:
                return
            if isinstance(event, ErrorEvent):
                handle.error_seen = True
                handle.last_error = event.message
            elif isinstance(event, DriveListEvent):
                handle.payload = event.drives
            elif isinstance(event, SystemInfo):
                handle.payload = event
            self._deliver(handle.sink, event)

    # --- Command line ----------------------------------------------------------
    def build_args(self, request: WipeRequest, elevated: Optional[bool] = None) -> list[str]:
        """
        Validate ``request`` and build the binary's argument vector.

        Raises:
            ValidationError
        """
        algorithm = validate_request(request, elevated=elevated)
        args = ["--json", "--force", "--algorithm", algorithm.value]
        if request.demo:
            args.append("--demo")
            if request.demo_size is not None:
                args.extend(["--demo-size", str(request.demo_size)])
        else:
            args.extend(["--target", request.target])
        if request.buffer_size is not None:
            args.extend(["--buffer-size", str(request.buffer_size)])
        if request.passes is not None:
            args.extend(["--passes", str(request.passes)])
        return args

    # --- Operations ------------------------------------------------------------
    def wipe(self, request: WipeRequest, sink: Optional[EventSink] = None) -> OperationResult:
        """Run a wipe with the current process's rights."""
        op = self._claim()
        try:
            args = self.build_args(request)
        except BaseException:
            self._release(op)
            raise
        return self._run(op, "wipe", request, [self._binary_path, *args], sink)

    def wipe_with_elevation(self, request: WipeRequest, sink: Optional[EventSink] = None) -> OperationResult:
        """
        Run a wipe, escalating privileges when the target needs them and the
        request allows it.
        """
        op = self._claim()
        try:
            probe = tempfile.gettempdir() if request.demo else request.target
            status = self.resolver.check_privileges(probe)
            escalate = status.needs_elevation and request.request_privileges and not status.has_privileges
            args = self.build_args(request, elevated=True if escalate else None)
        except BaseException:
            self._release(op)
            raise

        if not escalate:
            return self._run(op, "wipe", request, [self._binary_path, *args], sink)

        try:
            command = self.spawner.prepare(self._binary_path, args, request.elevation)
        except ElevationError as e:
            self._release(op)
            logger.warning("Privilege escalation unavailable: %s", e)
            return OperationResult(
                False, error=str(e), privileges_requested=True,
                privilege_method=e.method or status.method, privilege_error=str(e),
            )
        logger.info("Starting elevated wipe via %s", command.method)
        return self._run(op, "wipe-elevated", request, command.argv, sink, command=command)

    def list_drives(self, sink: Optional[EventSink] = None) -> OperationResult:
        """Payload: tuple of DriveInfo."""
        op = self._claim()
        result = self._run(op, "list-drives", None, [self._binary_path, "--json", "--list-drives"], sink)
        if result.success and result.payload is None:
            result = dataclasses.replace(result, payload=())
        return result

    def get_system_info(self, sink: Optional[EventSink] = None) -> OperationResult:
        """Payload: SystemInfo with ``supports_gui_prompts`` filled in."""
        op = self._claim()
        result = self._run(op, "system-info", None, [self._binary_path, "--json", "-s"], sink)
        if not result.success:
            return result
        if not isinstance(result.payload, SystemInfo):
            return dataclasses.replace(result, success=False, error="No system info received", payload=None)
        info = dataclasses.replace(result.payload, supports_gui_prompts=self.supports_gui_prompts())
        return dataclasses.replace(result, payload=info)

    def cancel(self) -> None:
        """Stop the active operation; a no-op when nothing is running."""
        with self._lock:
            handle = self._handle
            if handle is None:
                return
            self._state = OperationState.CANCELLING
            self._handle = None
            self._op = None

        logger.info("Cancelling secure wipe operation")
        with handle.lock:
            handle.cancelled = True
            self._deliver(handle.sink, InfoEvent(CANCEL_MESSAGE))
        _signal_process(handle.process)

        def force_kill() -> None:
            if handle.process.poll() is None:
                logger.warning("Force killing secure wipe process %s", handle.process.pid)
                _signal_process(handle.process, force=True)

        killer = threading.Timer(self.config.kill_grace, force_kill)
        killer.daemon = True
        killer.start()

        with self._lock:
            if self._op is None and self._state is OperationState.CANCELLING:
                self._state = OperationState.IDLE

    # --- Execution -------------------------------------------------------------
    def _run(
        self,
        op: object,
        operation: str,
        request: Optional[WipeRequest],
        argv: Sequence[str],
        sink: Optional[EventSink],
        command: Optional[ElevatedCommand] = None,
    ) -> OperationResult:
        target = request.effective_target if request else "-"
        algorithm = None
        if request is not None:
            algorithm = getattr(request.algorithm, "value", request.algorithm)
        audit_log.info(audit_entry(operation, target, algorithm, "started", user=current_user()))

        result = self._execute(op, argv, sink, command)

        if result.cancelled:
            outcome = "cancelled"
        elif result.success:
            outcome = "success"
        else:
            outcome = f"failure: {result.error}"
        audit_log.info(audit_entry(operation, target, algorithm, outcome, user=current_user()))
        return result

    def _execute(
        self,
        op: object,
        argv: Sequence[str],
        sink: Optional[EventSink],
        command: Optional[ElevatedCommand],
    ) -> OperationResult:
        elevated = command is not None
        streaming = command is None or command.streaming
        method = command.method if command else None

        self._transition(op, OperationState.SPAWNING)
        logger.debug("Spawning: %s", " ".join(argv))
        try:
            process = open_process(argv, env=command.env if command else None)
        except OSError as e:
            self._release(op)
            if command is not None:
                command.discard()
                message = f"Elevated process error: {e}"
                return OperationResult(False, error=message, privileges_requested=True,
                                       privilege_method=method, privilege_error=str(e))
            return OperationResult(False, error=f"Failed to start secure-wipe process: {e}")

        handle = _ProcessHandle(process, sink, parse_stdout=streaming)
        with self._lock:
            if self._op is op:
                self._handle = handle
                self._state = OperationState.RUNNING

        handle.timer = threading.Timer(self.config.timeout, self._on_timeout, (op, handle))
        handle.timer.daemon = True
        handle.timer.start()
        try:
            self._pump(handle)
        except BaseException:
            logger.exception("Supervision of pid %s failed; killing it", process.pid)
            _signal_process(process, force=True)
            if command is not None:
                command.discard()
            raise
        finally:
            handle.timer.cancel()
            self._transition(op, OperationState.COMPLETING)
            self._release(op)

        code = process.returncode
        extra = dict(privileges_requested=elevated, privilege_method=method)

        if handle.cancelled:
            if command is not None:
                command.discard()
            return OperationResult(False, error=CANCEL_MESSAGE, exit_code=code, cancelled=True, **extra)
        if handle.timed_out:
            if command is not None:
                command.discard()
            return OperationResult(False, error=f"Operation timed out after {self.config.timeout:g} seconds",
                                   exit_code=code, timed_out=True, **extra)

        if command is not None and not streaming:
            launcher_err = handle.stderr_text
            escalation = command.collect(code, launcher_err)
            if not escalation.success:
                return OperationResult(False, error=escalation.error, exit_code=code,
                                       privilege_error=escalation.error, **extra)
            # one burst: the elevated run has already finished
            for event in handle.parser.feed(escalation.stdout) + handle.parser.flush():
                self._dispatch(handle, event)
            handle.stderr_parts = [escalation.stderr]
        elif command is not None:
            failure = command.check_exit(code, handle.stderr_text)
            if failure is not None:
                return OperationResult(False, error=str(failure), exit_code=code,
                                       privilege_error=str(failure), **extra)

        handle.parser.reset()
        if code == 0 and not handle.error_seen:
            return OperationResult(True, exit_code=code, payload=handle.payload, **extra)

        message = handle.last_error or f"Process exited with code {code}"
        if handle.stderr_text:
            message += "\n" + handle.stderr_text
        return OperationResult(False, error=message, exit_code=code, payload=handle.payload, **extra)

    def _pump(self, handle: _ProcessHandle) -> None:
        process = handle.process
        reader = threading.Thread(target=self._drain_stderr, args=(handle,), daemon=True)
        reader.start()
        while True:
            chunk = process.stdout.read(_READ_SIZE)
            if not chunk:
                break
            if not handle.parse_stdout:
                logger.debug("Elevation launcher output: %r", chunk)
                continue
            for event in handle.parser.feed(chunk):
                self._dispatch(handle, event)
        if handle.parse_stdout:
            for event in handle.parser.flush():
                self._dispatch(handle, event)
        process.wait()
        reader.join()
        process.stdout.close()
        process.stderr.close()

    @staticmethod
    def _drain_stderr(handle: _ProcessHandle) -> None:
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        stream = handle.process.stderr
        while True:
            chunk = stream.read(_READ_SIZE)
            if not chunk:
                break
            text = decoder.decode(chunk)
            if text.strip():
                logger.warning("Secure wipe stderr: %s", text.strip())
            handle.stderr_parts.append(text)
        handle.stderr_parts.append(decoder.decode(b"", final=True))

    def _on_timeout(self, op: object, handle: _ProcessHandle) -> None:
        if handle.process.poll() is not None or handle.cancelled:
            return
        logger.warning("Operation timed out after %gs; killing pid %s", self.config.timeout, handle.process.pid)
        handle.timed_out = True
        self._transition(op, OperationState.TIMING_OUT)
        _signal_process(handle.process, force=True)

    # --- Binary ----------------------------------------------------------------
    @property
    def binary_path(self) -> str:
        return self._binary_path

    @binary_path.setter
    def binary_path(self, path: str) -> None:
        self._binary_path = path

    def _search_roots(self) -> list[str]:
        roots = list(self.config.search_roots)
        if getattr(sys, "frozen", False):
            roots.append(os.path.dirname(sys.executable))
        roots.append(os.getcwd())
        return roots

    def _default_binary_path(self) -> str:
        name = self.profile.binary_name
        candidates = []
        for root in self._search_roots():
            candidates.append(os.path.join(root, "assets", name))
            candidates.append(os.path.join(root, "assets", "bin", name))
            candidates.append(os.path.join(root, "bin", name))
        for path in candidates:
            if os.path.isfile(path):
                logger.info("Found secure-wipe binary at: %s", path)
                return path
        on_path = shutil.which(name)
        if on_path:
            return on_path
        logger.warning("secure-wipe binary not found in %s; falling back to PATH lookup", candidates)
        return name

    def check_binary(self) -> BinaryStatus:
        platform = self.profile.family
        path = self._binary_path
        try:
            os.stat(path)
        except OSError as e:
            return BinaryStatus(False, path, platform, error=str(e))
        exists = os.path.isfile(path)
        is_executable = True
        if platform != "win32" and exists:
            is_executable = os.access(path, os.X_OK)
        return BinaryStatus(exists, path, platform, is_executable)

    def find_binary(self) -> bool:
        """Re-run discovery; True when the binary found is usable."""
        self._binary_path = self._default_binary_path()
        status = self.check_binary()
        return status.exists and status.is_executable is not False

    def binary_info(self) -> dict:
        return {
            "binary_path": self._binary_path,
            "platform": self.profile.family,
            "supported_platforms": list(SUPPORTED_PLATFORMS),
            "binary_status": self.check_binary(),
        }

    # --- Privileges ------------------------------------------------------------
    def check_privileges(self, target: Optional[str] = None) -> PrivilegeStatus:
        return self.resolver.check_privileges(target)

    def get_elevation_description(self, target: Optional[str] = None) -> str:
        return self.resolver.get_elevation_description(target)

    def supports_gui_prompts(self) -> bool:
        return self.resolver.supports_gui_prompts()

    def validate_binary_access(self) -> BinaryAccess:
        return self.resolver.validate_binary_access(self._binary_path)
