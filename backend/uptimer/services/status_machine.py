"""Status state machine - UP/DOWN tracking with alert hysteresis.

Each monitor id owns one RuntimeMonitorState. The consecutive failure
counter and the alert-armed flag live there and nowhere else, so one
monitor's outage can never trigger or suppress another monitor's alert.
Callers hold ``state.lock`` for the whole check cycle, which makes the
read-modify-write of the previous status sequential per monitor.
"""
import asyncio
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Protocol

from ..errors import StorageError
from ..schemas import MonitorConfig, MonitorState

logger = logging.getLogger(__name__)


class NotificationKind(str, Enum):
    ALERT = "alert"
    RECOVERY = "recovery"


class Notifier(Protocol):
    async def notify(self, monitor: MonitorConfig, kind: NotificationKind) -> None:
        ...


@dataclass
class RuntimeMonitorState:
    """In-memory, per-monitor state. Rebuilt from the monitor row on start."""
    monitor_id: int
    status: MonitorState
    last_changed: Optional[datetime] = None
    consecutive_failures: int = 0
    alert_armed: bool = False
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False, compare=False)


@dataclass(frozen=True)
class StatusTransition:
    """What one cycle decided."""
    monitor_id: int
    previous: MonitorState
    status: MonitorState
    last_changed: Optional[datetime]
    consecutive_failures: int
    alert_armed: bool
    notification: Optional[NotificationKind] = None
    persisted: bool = True

    @property
    def changed(self) -> bool:
        return self.status != self.previous


class StatusStateMachine:
    """Owns every monitor's RuntimeMonitorState and applies cycle results."""

    def __init__(self, store, notifier: Notifier):
        self.store = store
        self.notifier = notifier
        self._states: Dict[int, RuntimeMonitorState] = {}

    def state_for(self, monitor: MonitorConfig) -> RuntimeMonitorState:
        """Get the monitor's state, seeding it from the stored row the first time."""
        state = self._states.get(monitor.id)
        if state is None:
            state = RuntimeMonitorState(
                monitor_id=monitor.id,
                status=MonitorState(monitor.status),
                last_changed=monitor.last_changed,
            )
            self._states[monitor.id] = state
        return state

    def get_state(self, monitor_id: int) -> Optional[RuntimeMonitorState]:
        return self._states.get(monitor_id)

    def discard(self, monitor_id: int):
        self._states.pop(monitor_id, None)

    @property
    def tracked_ids(self) -> List[int]:
        return sorted(self._states)

    @staticmethod
    def decide(
        state: RuntimeMonitorState,
        monitor: MonitorConfig,
        passed: bool,
        at: datetime,
    ) -> StatusTransition:
        """Compute the next status, lastChanged and alert decision. No side effects."""
        new_status = MonitorState.UP if passed else MonitorState.DOWN
        last_changed = at if new_status != state.status else state.last_changed

        failures = state.consecutive_failures
        armed = state.alert_armed
        notification = None

        if passed:
            if armed:
                notification = NotificationKind.RECOVERY
                armed = False
                failures = 0
        else:
            failures += 1
            # Counter restarts after each alert, so a sustained outage alerts once per run
            if monitor.alert_threshold > 0 and failures >= monitor.alert_threshold:
                notification = NotificationKind.ALERT
                armed = True
                failures = 0

        return StatusTransition(
            monitor_id=monitor.id,
            previous=state.status,
            status=new_status,
            last_changed=last_changed,
            consecutive_failures=failures,
            alert_armed=armed,
            notification=notification,
        )

    async def process(
        self,
        monitor: MonitorConfig,
        state: RuntimeMonitorState,
        passed: bool,
        at: datetime,
    ) -> StatusTransition:
        """Decide and persist status/lastChanged.

        The returned transition carries the notification to send; callers
        hand it to ``notify`` once the heartbeat is recorded.
        """
        transition = self.decide(state, monitor, passed, at)
        state.consecutive_failures = transition.consecutive_failures
        state.alert_armed = transition.alert_armed

        try:
            await self.store.update_monitor_status(monitor.id, transition.status, transition.last_changed)
        except StorageError as e:
            # Keep the old status so the next cycle retries the flip
            logger.error(f"Status update lost for monitor {monitor.id}: {e}")
            transition = replace(transition, persisted=False)
        else:
            state.status = transition.status
            state.last_changed = transition.last_changed

        if transition.changed and transition.persisted:
            logger.info(f"Monitor {monitor.name} ({monitor.id}): {transition.previous.name} -> {transition.status.name}")

        return transition

    async def notify(self, monitor: MonitorConfig, transition: StatusTransition):
        """Send the transition's alert or recovery, if any. Never raises."""
        kind = transition.notification
        if kind is None:
            return
        if kind == NotificationKind.ALERT:
            logger.warning(f"Alert threshold reached for monitor {monitor.name} ({monitor.id})")
        else:
            logger.info(f"Monitor {monitor.name} ({monitor.id}) recovered")
        try:
            await self.notifier.notify(monitor, kind)
        except Exception as e:
            logger.error(f"Notifier failed for monitor {monitor.id} ({kind.value}): {e}")
