"""Error taxonomy for the monitor engine.

None of these ever escapes a single check cycle. Probe failures are normally
carried as ``Failed`` outcome values; the exception classes exist for the
places where a failure has to travel up the stack (config validation, storage
writes) before the cycle boundary turns it into a DOWN heartbeat or a log line.
"""
from typing import Any, Dict, Optional


class UptimerError(Exception):
    """Base class for every engine error."""

    category = "UptimerError"

    def __init__(
        self,
        message: str,
        monitor_id: Optional[int] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.message = message
        self.monitor_id = monitor_id
        self.cause = cause

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.category,
            "message": self.message,
            "monitor_id": self.monitor_id,
            "cause": str(self.cause) if self.cause else None,
        }

    def __str__(self) -> str:
        if self.monitor_id is not None:
            return f"{self.category} (monitor {self.monitor_id}): {self.message}"
        return f"{self.category}: {self.message}"


class ConfigError(UptimerError):
    """Malformed monitor configuration, detected before any network call."""

    category = "ConfigError"


class ProbeError(UptimerError):
    """Transport-level failure: timeout, DNS, connection refused, TLS."""

    category = "ProbeError"


class AssertionFailure(UptimerError):
    """A response arrived but broke the status/timing/content-type rules."""

    category = "AssertionFailure"


class StorageError(UptimerError):
    """Persisting a status change or heartbeat failed."""

    category = "StorageError"
