"""Pydantic schemas for monitor configuration and heartbeats."""
from .monitor import (
    AssertionConfig,
    AuthMethod,
    MonitorConfig,
    MonitorCreate,
    MonitorState,
    MonitorType,
)
from .heartbeat import HeartbeatData

__all__ = [
    "AssertionConfig",
    "AuthMethod",
    "MonitorConfig",
    "MonitorCreate",
    "MonitorState",
    "MonitorType",
    "HeartbeatData",
]
