"""Services for probing, status tracking, heartbeats, alerting and scheduling."""
from .probe import ProbeExecutor, HttpProbe, TcpProbe, Responded, Failed, FailureKind
from .assertions import evaluate, Verdict
from .status_machine import StatusStateMachine, RuntimeMonitorState, StatusTransition, NotificationKind
from .heartbeat import HeartbeatRecorder
from .store import MonitorStore
from .notifier import AlertNotifier
from .events import EventPublisher
from .engine import MonitorEngine, build_engine
from .scheduler import SchedulerService

__all__ = [
    "ProbeExecutor",
    "HttpProbe",
    "TcpProbe",
    "Responded",
    "Failed",
    "FailureKind",
    "evaluate",
    "Verdict",
    "StatusStateMachine",
    "RuntimeMonitorState",
    "StatusTransition",
    "NotificationKind",
    "HeartbeatRecorder",
    "MonitorStore",
    "AlertNotifier",
    "EventPublisher",
    "MonitorEngine",
    "build_engine",
    "SchedulerService",
]
