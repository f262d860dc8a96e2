"""
wipebridge.errors
-----------------

Exception hierarchy for caller errors detected before a process is spawned.

Runtime failures of the wrapped binary (spawn errors, error events, timeouts,
cancellation, declined elevation prompts) are not raised; they are returned
as :class:`wipebridge.orchestrator.OperationResult` values.
"""

from __future__ import annotations

from typing import Optional


class WipeBridgeError(Exception):
    """Base exception for wipebridge errors."""


class ValidationError(WipeBridgeError, ValueError):
    """Raised when a request is rejected before any process is spawned."""

    def __init__(self, message: str, problem=None):
        super().__init__(message)
        self.problem = problem


class OperationInProgressError(WipeBridgeError):
    """Raised when an operation is started while another one holds the process handle."""


class ElevationError(WipeBridgeError):
    """Privileges were needed but could not be obtained."""

    def __init__(self, message: str, method: Optional[str] = None, declined: bool = False):
        super().__init__(message)
        self.method = method
        self.declined = declined
