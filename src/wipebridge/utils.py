"""
wipebridge.utils

Process spawning and audit helpers shared by the orchestrator and the
elevated spawner.
"""

from __future__ import annotations

import os
import subprocess
from datetime import datetime, timezone
from typing import Mapping, Optional, Sequence

# Keep a console window from flashing up when spawned from a GUI on Windows
CREATE_NO_WINDOW = 0x08000000 if os.name == "nt" else 0


def open_process(argv: Sequence[str], env: Optional[Mapping[str, str]] = None) -> subprocess.Popen:
    """
    Start ``argv`` with piped, unbuffered stdout/stderr.

    ``bufsize=0`` gives raw pipes so each read returns as soon as the child
    has written something.
    """
    return subprocess.Popen(
        list(argv),
        stdin=subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        bufsize=0,
        env={**os.environ, **env} if env else None,
        creationflags=CREATE_NO_WINDOW,
    )


def audit_entry(
    operation: str,
    target: str,
    algorithm: Optional[str] = None,
    result: Optional[str] = None,
    user: Optional[str] = None,
) -> str:
    """Single-line audit record for an operation."""
    timestamp = datetime.now(timezone.utc).isoformat()
    user = user or os.environ.get("USER") or os.environ.get("USERNAME") or "unknown"
    line = f"[{timestamp}] PID:{os.getpid()} USER:{user} OPERATION:{operation} TARGET:{target}"
    if algorithm:
        line += f" ALGORITHM:{algorithm}"
    if result:
        line += f" RESULT:{result}"
    return line
