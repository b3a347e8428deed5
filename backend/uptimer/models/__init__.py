"""Database models."""
from .notification import NotificationGroup
from .monitor import Monitor
from .heartbeat import Heartbeat
from .alert import Alert

__all__ = ["NotificationGroup", "Monitor", "Heartbeat", "Alert"]
