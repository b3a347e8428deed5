"""
Unit tests for services/status_machine.py

State transitions, lastChanged bookkeeping and alert hysteresis.
"""

from datetime import datetime, timedelta

import pytest

from uptimer.schemas import MonitorState
from uptimer.services.status_machine import (
    NotificationKind,
    RuntimeMonitorState,
    StatusStateMachine,
)

T0 = datetime(2024, 1, 1, 12, 0, 0)


def tick(n: int) -> datetime:
    return T0 + timedelta(seconds=30 * n)


@pytest.fixture
def machine(fake_store, notifier):
    return StatusStateMachine(fake_store, notifier)


async def run(machine, monitor, results):
    """Feed a sequence of pass/fail results the way run_cycle does; returns the transitions."""
    state = machine.state_for(monitor)
    transitions = []
    for i, passed in enumerate(results, start=1):
        transition = await machine.process(monitor, state, passed, tick(i))
        await machine.notify(monitor, transition)
        transitions.append(transition)
    return transitions


def alert_cycles(transitions):
    return [i for i, t in enumerate(transitions, start=1) if t.notification == NotificationKind.ALERT]


class TestDecide:
    """decide() is pure: same inputs, same transition, no side effects"""

    def test_up_stays_up(self, make_monitor):
        state = RuntimeMonitorState(monitor_id=1, status=MonitorState.UP, last_changed=T0)
        transition = StatusStateMachine.decide(state, make_monitor(), True, tick(1))

        assert transition.status == MonitorState.UP
        assert transition.last_changed == T0
        assert not transition.changed
        assert transition.notification is None

    def test_flip_sets_last_changed(self, make_monitor):
        state = RuntimeMonitorState(monitor_id=1, status=MonitorState.UP, last_changed=T0)
        transition = StatusStateMachine.decide(state, make_monitor(), False, tick(1))

        assert transition.status == MonitorState.DOWN
        assert transition.last_changed == tick(1)
        assert transition.changed

    def test_does_not_mutate_state(self, make_monitor):
        state = RuntimeMonitorState(monitor_id=1, status=MonitorState.UP, consecutive_failures=2)
        StatusStateMachine.decide(state, make_monitor(alert_threshold=3), False, tick(1))

        assert state.consecutive_failures == 2
        assert not state.alert_armed
        assert state.status == MonitorState.UP


class TestProcess:
    @pytest.mark.asyncio
    async def test_persists_every_cycle(self, machine, make_monitor, fake_store):
        monitor = make_monitor()
        await run(machine, monitor, [True, True])

        assert fake_store.status_updates == [
            (1, MonitorState.UP, None),
            (1, MonitorState.UP, None),
        ]

    @pytest.mark.asyncio
    async def test_last_changed_moves_only_on_flip(self, machine, make_monitor, fake_store):
        monitor = make_monitor(last_changed=T0)
        await run(machine, monitor, [True, False, False, True])

        changes = [update[2] for update in fake_store.status_updates]
        assert changes == [T0, tick(2), tick(2), tick(4)]

    @pytest.mark.asyncio
    async def test_seeds_from_stored_status(self, machine, make_monitor):
        """A monitor stored as DOWN that fails again is not a flip"""
        monitor = make_monitor(status=MonitorState.DOWN, last_changed=T0)
        [transition] = await run(machine, monitor, [False])

        assert transition.previous == MonitorState.DOWN
        assert not transition.changed
        assert transition.last_changed == T0

    @pytest.mark.asyncio
    async def test_storage_error_keeps_old_status(self, machine, make_monitor, fake_store):
        monitor = make_monitor()
        fake_store.fail_status_updates = True
        [lost] = await run(machine, monitor, [False])

        assert not lost.persisted
        assert machine.get_state(1).status == MonitorState.UP
        assert machine.get_state(1).consecutive_failures == 1

        fake_store.fail_status_updates = False
        retried = await machine.process(monitor, machine.get_state(1), False, tick(2))
        assert retried.changed
        assert retried.persisted
        assert fake_store.status_updates == [(1, MonitorState.DOWN, tick(2))]


class TestAlertHysteresis:
    """Alerting on runs of consecutive failures"""

    @pytest.mark.asyncio
    async def test_alert_on_third_failure(self, machine, make_monitor, notifier):
        monitor = make_monitor(alert_threshold=3)
        transitions = await run(machine, monitor, [False, False, False])

        assert [t.notification for t in transitions] == [None, None, NotificationKind.ALERT]
        assert notifier.sent == [(1, NotificationKind.ALERT)]
        assert transitions[-1].consecutive_failures == 0
        assert transitions[-1].alert_armed

    @pytest.mark.asyncio
    async def test_sustained_outage_alerts_once_per_threshold_run(self, machine, make_monitor, notifier):
        monitor = make_monitor(alert_threshold=2)
        transitions = await run(machine, monitor, [False] * 6)

        assert alert_cycles(transitions) == [2, 4, 6]
        assert notifier.sent == [(1, NotificationKind.ALERT)] * 3
        assert machine.get_state(1).alert_armed

    @pytest.mark.asyncio
    async def test_repeat_alert_then_single_recovery(self, machine, make_monitor, notifier):
        monitor = make_monitor(alert_threshold=3)
        transitions = await run(machine, monitor, [False] * 7 + [True])

        assert alert_cycles(transitions) == [3, 6]
        assert [kind for _, kind in notifier.sent] == [
            NotificationKind.ALERT,
            NotificationKind.ALERT,
            NotificationKind.RECOVERY,
        ]
        assert transitions[-1].consecutive_failures == 0

    @pytest.mark.asyncio
    async def test_recovery_after_alert(self, machine, make_monitor, notifier):
        monitor = make_monitor(alert_threshold=2)
        transitions = await run(machine, monitor, [False, False, True])

        assert notifier.sent == [(1, NotificationKind.ALERT), (1, NotificationKind.RECOVERY)]
        assert not transitions[-1].alert_armed
        assert transitions[-1].consecutive_failures == 0

    @pytest.mark.asyncio
    async def test_no_recovery_without_alert(self, machine, make_monitor, notifier):
        monitor = make_monitor(alert_threshold=3)
        await run(machine, monitor, [False, True])
        assert notifier.sent == []

    @pytest.mark.asyncio
    async def test_pass_before_alert_keeps_counter(self, machine, make_monitor, notifier):
        """Only an alert or a recovery resets the counter"""
        monitor = make_monitor(alert_threshold=3)
        transitions = await run(machine, monitor, [False, False, True, False])

        assert transitions[2].consecutive_failures == 2
        assert transitions[2].notification is None
        assert alert_cycles(transitions) == [4]
        assert notifier.sent == [(1, NotificationKind.ALERT)]

    @pytest.mark.asyncio
    async def test_rearms_after_recovery(self, machine, make_monitor, notifier):
        monitor = make_monitor(alert_threshold=2)
        await run(machine, monitor, [False, False, True, False, False])

        assert [kind for _, kind in notifier.sent] == [
            NotificationKind.ALERT,
            NotificationKind.RECOVERY,
            NotificationKind.ALERT,
        ]

    @pytest.mark.asyncio
    async def test_zero_threshold_never_alerts(self, machine, make_monitor, notifier):
        monitor = make_monitor(alert_threshold=0)
        await run(machine, monitor, [False] * 5 + [True])
        assert notifier.sent == []

    @pytest.mark.asyncio
    async def test_monitors_do_not_share_counters(self, machine, make_monitor, notifier):
        noisy = make_monitor(id=1, alert_threshold=2)
        quiet = make_monitor(id=2, alert_threshold=2)

        await run(machine, noisy, [False])
        await run(machine, quiet, [False])

        assert notifier.sent == []
        assert machine.get_state(1).consecutive_failures == 1
        assert machine.get_state(2).consecutive_failures == 1

    @pytest.mark.asyncio
    async def test_process_leaves_sending_to_notify(self, machine, make_monitor, notifier):
        monitor = make_monitor(alert_threshold=1)
        transition = await machine.process(monitor, machine.state_for(monitor), False, tick(1))

        assert transition.notification == NotificationKind.ALERT
        assert notifier.sent == []

        await machine.notify(monitor, transition)
        assert notifier.sent == [(1, NotificationKind.ALERT)]

    @pytest.mark.asyncio
    async def test_notifier_failure_is_contained(self, fake_store, make_monitor):
        class BrokenNotifier:
            async def notify(self, monitor, kind):
                raise RuntimeError("smtp down")

        machine = StatusStateMachine(fake_store, BrokenNotifier())
        [transition] = await run(machine, make_monitor(alert_threshold=1), [False])

        assert transition.notification == NotificationKind.ALERT
        assert machine.get_state(1).alert_armed


class TestStateRegistry:
    def test_state_for_is_stable(self, machine, make_monitor):
        monitor = make_monitor()
        assert machine.state_for(monitor) is machine.state_for(monitor)

    def test_discard(self, machine, make_monitor):
        machine.state_for(make_monitor(id=4))
        machine.state_for(make_monitor(id=2))
        assert machine.tracked_ids == [2, 4]

        machine.discard(4)
        machine.discard(4)
        assert machine.tracked_ids == [2]
        assert machine.get_state(4) is None
