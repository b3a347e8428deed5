"""Monitor engine - runs one check cycle for one monitor.

Cycle pipeline: probe -> assertions -> status state machine -> heartbeat
-> alert/recovery notification, then a refresh push to the owner's clients when the status flipped.
Nothing raised inside a cycle leaves ``run_cycle``.
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional, Set

from ..schemas import HeartbeatData, MonitorConfig
from .assertions import Verdict, evaluate
from .events import EventPublisher, event_publisher
from .heartbeat import HeartbeatRecorder, epoch_ms
from .notifier import AlertNotifier
from .probe import Failed, FailureKind, ProbeExecutor, ProbeOutcome, probe_executor
from .status_machine import StatusStateMachine, StatusTransition
from .store import MonitorStore, monitor_store

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    """Naive UTC, matching how DateTime columns are stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


@dataclass(frozen=True)
class CycleResult:
    outcome: ProbeOutcome
    verdict: Verdict
    transition: StatusTransition
    heartbeat: Optional[HeartbeatData]


class MonitorEngine:
    """Wires probe, evaluator, state machine and recorder into one cycle."""

    def __init__(
        self,
        store: MonitorStore,
        executor: ProbeExecutor,
        state_machine: StatusStateMachine,
        recorder: HeartbeatRecorder,
        publisher: EventPublisher,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.executor = executor
        self.state_machine = state_machine
        self.recorder = recorder
        self.publisher = publisher
        self._clock = clock
        self._in_flight: Set[asyncio.Task] = set()

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    async def run_cycle(self, monitor: MonitorConfig) -> Optional[CycleResult]:
        """Run one full check for a monitor. Returns None if the cycle crashed."""
        task = asyncio.current_task()
        if task is not None:
            self._in_flight.add(task)
        try:
            state = self.state_machine.state_for(monitor)
            async with state.lock:
                outcome = await self._probe(monitor)
                at = self._clock()
                verdict = evaluate(outcome, monitor.assertions)
                if not verdict.passed:
                    logger.debug(f"Monitor {monitor.name} ({monitor.id}) failed: {verdict.reason}")

                transition = await self.state_machine.process(monitor, state, verdict.passed, at)
                heartbeat = await self.recorder.record(outcome, monitor, transition.status, epoch_ms(at))
                await self.state_machine.notify(monitor, transition)

            if transition.changed and transition.persisted:
                await self.publish_user(monitor.user_id)

            logger.debug(f"Monitor {monitor.name}: {transition.status.name}")
            return CycleResult(outcome, verdict, transition, heartbeat)
        except Exception:
            logger.exception(f"Check cycle crashed for monitor {monitor.id}")
            return None
        finally:
            if task is not None:
                self._in_flight.discard(task)

    async def _probe(self, monitor: MonitorConfig) -> ProbeOutcome:
        try:
            return await self.executor.execute(monitor)
        except Exception as e:
            logger.exception(f"Probe raised for monitor {monitor.id}")
            return Failed(FailureKind.PROBE, f"Unexpected probe error: {e}")

    async def publish_user(self, user_id: int):
        """Push the user's active monitors to connected clients."""
        try:
            monitors = await self.store.get_active_monitors_for_user(user_id)
            await self.publisher.publish(user_id, monitors)
        except Exception as e:
            logger.error(f"Could not publish monitors for user {user_id}: {e}")

    async def drain(self, timeout: float) -> int:
        """Wait for in-flight cycles. Returns how many were still running."""
        pending = {t for t in self._in_flight if t is not asyncio.current_task()}
        if not pending:
            return 0
        logger.info(f"Waiting for {len(pending)} in-flight checks")
        _, still_running = await asyncio.wait(pending, timeout=timeout)
        if still_running:
            logger.warning(f"{len(still_running)} checks still running at shutdown")
        return len(still_running)


def build_engine(
    store: Optional[MonitorStore] = None,
    executor: Optional[ProbeExecutor] = None,
    publisher: Optional[EventPublisher] = None,
    notifier=None,
    clock: Callable[[], datetime] = utcnow,
) -> MonitorEngine:
    """Build an engine; defaults to the process-wide collaborators."""
    store = store or monitor_store
    state_machine = StatusStateMachine(store, notifier or AlertNotifier(store))
    return MonitorEngine(
        store=store,
        executor=executor or probe_executor,
        state_machine=state_machine,
        recorder=HeartbeatRecorder(store),
        publisher=publisher or event_publisher,
        clock=clock,
    )


# Global instance
monitor_engine = build_engine()
