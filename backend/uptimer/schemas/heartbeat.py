"""Heartbeat schema - the persisted shape of one check cycle."""
from pydantic import BaseModel, Field

from .monitor import MonitorState


class HeartbeatData(BaseModel):
    """One immutable heartbeat, ready to be written."""
    monitor_id: int
    status: MonitorState
    code: int = 0
    message: str = ""
    timestamp: int = Field(..., description="UTC epoch milliseconds")
    request_headers: str = "{}"
    response_headers: str = "{}"
    request_body: str = ""
    response_body: str = ""
    response_time: int = 0

    class Config:
        frozen = True
        from_attributes = True
