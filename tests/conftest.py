import os
import sys
import time
import textwrap

import pytest

from wipebridge.config import OrchestratorConfig
from wipebridge.orchestrator import WipeOrchestrator
from wipebridge.privileges import LinuxProfile, PrivilegeResolver

posix_only = pytest.mark.skipif(os.name == "nt", reason="fake binaries are POSIX scripts")


def write_script(path, body: str):
    """Write an executable Python script using the running interpreter."""
    path.write_text(f"#!{sys.executable}\n" + textwrap.dedent(body))
    path.chmod(0o755)
    return str(path)


def wait_for(predicate, timeout: float = 5.0, interval: float = 0.01) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture
def make_binary(tmp_path):
    counter = {"n": 0}

    def _make(body: str) -> str:
        counter["n"] += 1
        return write_script(tmp_path / f"secure-wipe-bin-{counter['n']}", body)

    return _make


@pytest.fixture
def make_orchestrator(monkeypatch):
    monkeypatch.delenv("WIPEBRIDGE_BINARY", raising=False)
    monkeypatch.delenv("WIPEBRIDGE_TIMEOUT", raising=False)

    def _make(binary: str = "/nonexistent/secure-wipe-bin", timeout: float = 30.0, **kwargs):
        config = OrchestratorConfig(binary_path=binary, timeout=timeout, kill_grace=0.5)
        profile = kwargs.pop("profile", LinuxProfile())
        resolver = kwargs.pop("resolver", PrivilegeResolver(profile, elevated=lambda: False))
        return WipeOrchestrator(config, profile=profile, resolver=resolver, **kwargs)

    return _make


class Recorder:
    """Event sink that keeps everything it receives."""

    def __init__(self):
        self.events = []

    def __call__(self, event):
        self.events.append(event)

    @property
    def types(self):
        return [e.type for e in self.events]


@pytest.fixture
def recorder():
    return Recorder()
