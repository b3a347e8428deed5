"""Engine control endpoints used by the API layer and dashboards."""
import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect
from pydantic import BaseModel

from ..errors import ConfigError, StorageError
from ..services.events import EventPublisher, event_publisher
from ..services.scheduler import SchedulerService, scheduler_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/engine", tags=["engine"])
ws_router = APIRouter(tags=["engine"])


class ScheduledMonitors(BaseModel):
    monitor_ids: List[int]
    refreshing_user_ids: List[int]
    in_flight: int


class ControlResult(BaseModel):
    monitor_id: int
    scheduled: bool


class RefreshResult(BaseModel):
    user_id: int
    refresh: bool


def get_scheduler() -> SchedulerService:
    return scheduler_service


def get_publisher() -> EventPublisher:
    return event_publisher


@router.get("/monitors", response_model=ScheduledMonitors)
async def list_scheduled(scheduler: SchedulerService = Depends(get_scheduler)):
    """Monitors that currently have a check job."""
    return ScheduledMonitors(
        monitor_ids=scheduler.scheduled_monitor_ids(),
        refreshing_user_ids=scheduler.refreshing_user_ids(),
        in_flight=scheduler.engine.in_flight,
    )


@router.post("/monitors/{monitor_id}/resume", response_model=ControlResult)
async def resume_monitor(monitor_id: int, scheduler: SchedulerService = Depends(get_scheduler)):
    """Re-arm a monitor after it was created, edited or toggled active."""
    try:
        scheduled = await scheduler.resume_monitor(monitor_id)
    except ConfigError as e:
        raise HTTPException(status_code=422, detail=e.message)
    except StorageError as e:
        logger.error(f"Resume of monitor {monitor_id} failed: {e}")
        raise HTTPException(status_code=503, detail="Storage unavailable")
    if not scheduled:
        raise HTTPException(status_code=404, detail="Monitor not found or inactive")
    return ControlResult(monitor_id=monitor_id, scheduled=scheduled)


@router.post("/monitors/{monitor_id}/stop", response_model=ControlResult)
async def stop_monitor(monitor_id: int, scheduler: SchedulerService = Depends(get_scheduler)):
    """Cancel a monitor's future checks. Safe to call repeatedly."""
    scheduler.stop_monitor(monitor_id)
    return ControlResult(monitor_id=monitor_id, scheduled=False)


@router.post("/refresh/{user_id}", response_model=RefreshResult)
async def toggle_auto_refresh(
    user_id: int,
    enabled: bool = True,
    scheduler: SchedulerService = Depends(get_scheduler),
):
    """Turn the periodic dashboard push for a user on or off."""
    if enabled:
        scheduler.start_auto_refresh(user_id)
    else:
        scheduler.stop_auto_refresh(user_id)
    return RefreshResult(user_id=user_id, refresh=enabled)


@ws_router.websocket("/ws/monitors/{user_id}")
async def monitors_socket(
    websocket: WebSocket,
    user_id: int,
    publisher: EventPublisher = Depends(get_publisher),
):
    """Live monitor list updates for one user."""
    await publisher.connect(user_id, websocket)
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        await publisher.disconnect(user_id, websocket)
