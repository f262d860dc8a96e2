"""
wipebridge.request
------------------

Request types handed to the orchestrator.

- WipeAlgorithm: the fixed set of algorithms the binary understands
- algorithm_info(): display name, default pass count and description
- WipeRequest: one sanitization run (real target or demo mode)
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass, field
from enum import Enum
from typing import NamedTuple, Optional, Union


class WipeAlgorithm(str, Enum):
    RANDOM = "random"
    ZEROS = "zeros"
    ONES = "ones"
    DOD5220 = "dod5220"
    GUTMANN = "gutmann"

    @classmethod
    def parse(cls, value: Union[str, "WipeAlgorithm"]) -> "WipeAlgorithm":
        """Raises ValueError for anything outside the enumeration."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise ValueError(f"Invalid algorithm: {value}") from None


class AlgorithmInfo(NamedTuple):
    name: str
    passes: int
    description: str


_ALGORITHM_INFO = {
    WipeAlgorithm.DOD5220: AlgorithmInfo(
        "DoD 5220.22-M", 3, "US Department of Defense standard - 3 passes with specific patterns"
    ),
    WipeAlgorithm.GUTMANN: AlgorithmInfo(
        "Gutmann Method", 35, "Peter Gutmann's 35-pass method - most secure but slowest"
    ),
    WipeAlgorithm.RANDOM: AlgorithmInfo(
        "Random Data", 1, "Single pass with cryptographically secure random data"
    ),
    WipeAlgorithm.ZEROS: AlgorithmInfo("Zero Fill", 1, "Single pass overwriting with zeros"),
    WipeAlgorithm.ONES: AlgorithmInfo("One Fill", 1, "Single pass overwriting with ones (0xFF)"),
}


def algorithm_info(algorithm: Union[str, WipeAlgorithm]) -> AlgorithmInfo:
    try:
        return _ALGORITHM_INFO[WipeAlgorithm.parse(algorithm)]
    except ValueError:
        return AlgorithmInfo("Unknown", 0, "Unknown algorithm")


def _random_name(length: int = 12) -> str:
    alphabet = "abcdefghijklmnopqrstuvwxyz0123456789"
    return "".join(secrets.choice(alphabet) for _ in range(length))


def generate_demo_name() -> str:
    return f"secure_wipe_demo_{_random_name()}.bin"


@dataclass(frozen=True)
class ElevationOptions:
    """Options shown by the elevation prompt."""
    name: str = "Secure Wipe"
    windows_hide: bool = True


@dataclass(frozen=True)
class WipeRequest:
    """
    One sanitization run.

    In demo mode ``target`` is ignored: the binary creates its own scratch
    file of ``demo_size`` MB, and ``demo_name`` holds a generated name used
    to identify the run in logs and audit lines.
    """
    target: str = ""
    algorithm: Union[str, WipeAlgorithm] = WipeAlgorithm.RANDOM
    passes: Optional[int] = None
    buffer_size: Optional[int] = None
    demo: bool = False
    demo_size: Optional[int] = None
    request_privileges: bool = True
    elevation: ElevationOptions = field(default_factory=ElevationOptions)
    demo_name: str = field(default_factory=generate_demo_name)

    @property
    def effective_target(self) -> str:
        return self.demo_name if self.demo else self.target
