"""Heartbeat recorder - writes one immutable row per check cycle."""
import json
import logging
from datetime import datetime, timezone
from typing import Optional

from ..errors import StorageError
from ..schemas import HeartbeatData, MonitorConfig, MonitorState
from .probe import Failed, ProbeOutcome

logger = logging.getLogger(__name__)


def epoch_ms(at: datetime) -> int:
    """UTC epoch milliseconds; naive datetimes are taken as UTC."""
    if at.tzinfo is None:
        at = at.replace(tzinfo=timezone.utc)
    return int(at.timestamp() * 1000)


def build_heartbeat(
    outcome: ProbeOutcome,
    monitor: MonitorConfig,
    status: MonitorState,
    timestamp_ms: int,
) -> HeartbeatData:
    """Map a probe outcome onto the heartbeat schema."""
    if isinstance(outcome, Failed):
        return HeartbeatData(
            monitor_id=monitor.id,
            status=status,
            code=0,
            message=outcome.reason,
            timestamp=timestamp_ms,
            request_headers=json.dumps(outcome.request_headers),
            response_headers="{}",
            request_body=outcome.request_body,
            response_body="",
            response_time=outcome.elapsed_ms,
        )
    return HeartbeatData(
        monitor_id=monitor.id,
        status=status,
        code=outcome.code or 0,
        message=outcome.message,
        timestamp=timestamp_ms,
        request_headers=json.dumps(outcome.request_headers),
        response_headers=json.dumps(outcome.response_headers),
        request_body=outcome.request_body,
        response_body=outcome.response_body,
        response_time=outcome.elapsed_ms,
    )


class HeartbeatRecorder:
    """Appends heartbeats; a storage fault costs the heartbeat, never the cycle."""

    def __init__(self, store):
        self.store = store

    async def record(
        self,
        outcome: ProbeOutcome,
        monitor: MonitorConfig,
        status: MonitorState,
        timestamp_ms: int,
    ) -> Optional[HeartbeatData]:
        heartbeat = build_heartbeat(outcome, monitor, status, timestamp_ms)
        try:
            await self.store.record_heartbeat(heartbeat)
        except StorageError as e:
            logger.error(f"Heartbeat lost for monitor {monitor.id}: {e}")
            return None
        return heartbeat
