"""
wipebridge.config
-----------------

Orchestrator settings.

Environment overrides (read by ``OrchestratorConfig.from_env``):
    WIPEBRIDGE_BINARY       path to secure-wipe-bin
    WIPEBRIDGE_TIMEOUT      operation timeout in seconds
    WIPEBRIDGE_KILL_GRACE   seconds between SIGTERM and SIGKILL on cancel
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

DEFAULT_TIMEOUT = 300.0
DEFAULT_KILL_GRACE = 2.0

ENV_BINARY = "WIPEBRIDGE_BINARY"
ENV_TIMEOUT = "WIPEBRIDGE_TIMEOUT"
ENV_KILL_GRACE = "WIPEBRIDGE_KILL_GRACE"


def _positive_float(name: str, raw: str) -> float:
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {raw!r}")
    return value


@dataclass
class OrchestratorConfig:
    binary_path: Optional[str] = None
    timeout: float = DEFAULT_TIMEOUT
    kill_grace: float = DEFAULT_KILL_GRACE
    # directories searched for assets/<binary> and assets/bin/<binary>
    search_roots: tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if self.timeout <= 0:
            raise ValueError("timeout must be positive")
        if self.kill_grace < 0:
            raise ValueError("kill_grace must not be negative")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides) -> "OrchestratorConfig":
        env = os.environ if environ is None else environ
        values: dict = {}
        if env.get(ENV_BINARY):
            values["binary_path"] = env[ENV_BINARY]
        if env.get(ENV_TIMEOUT):
            values["timeout"] = _positive_float(ENV_TIMEOUT, env[ENV_TIMEOUT])
        if env.get(ENV_KILL_GRACE):
            values["kill_grace"] = _positive_float(ENV_KILL_GRACE, env[ENV_KILL_GRACE])
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
