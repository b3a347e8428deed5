"""Notifier - delivers alert and recovery notices by webhook and email."""
import logging
from datetime import datetime
from typing import List, Optional

import httpx

from ..config import settings
from ..errors import StorageError
from ..schemas import MonitorConfig
from .email_sender import EmailConfig, EmailSenderService, email_sender_service
from .status_machine import NotificationKind

logger = logging.getLogger(__name__)

EVENT_LABELS = {
    NotificationKind.ALERT: "DOWN",
    NotificationKind.RECOVERY: "RECOVERED",
}


class AlertNotifier:
    """Sends notices to the monitor's notification group and the global webhook."""

    def __init__(
        self,
        store,
        email_sender: Optional[EmailSenderService] = None,
        webhook_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.store = store
        self.email_sender = email_sender or email_sender_service
        self.webhook_url = webhook_url if webhook_url is not None else settings.webhook_url
        self._transport = transport

    def build_subject(self, monitor: MonitorConfig, kind: NotificationKind) -> str:
        return f"{EVENT_LABELS[kind]} - {monitor.name} - {monitor.type.value}"

    def build_body(self, monitor: MonitorConfig, kind: NotificationKind) -> str:
        label = EVENT_LABELS[kind]
        lines = [
            f"Uptimer {label} Report",
            "=" * 40,
            "",
            f"Monitor: {monitor.name}",
            f"Type: {monitor.type.value}",
            f"Target: {monitor.url}",
            f"Status: {label}",
            f"Time: {datetime.utcnow().strftime('%Y-%m-%d %H:%M:%S UTC')}",
        ]
        if kind == NotificationKind.ALERT:
            lines.append(f"Failed {monitor.alert_threshold} consecutive checks")
        lines += ["", "--", "Uptimer Monitoring System"]
        return "\n".join(lines)

    async def notify(self, monitor: MonitorConfig, kind: NotificationKind) -> None:
        if self.webhook_url:
            await self._send_webhook_alert(monitor, kind)

        recipients = await self.store.get_notification_recipients(monitor)
        if recipients:
            await self._send_email_alert(monitor, kind, recipients)
        elif not self.webhook_url:
            logger.debug(f"No notification channel for monitor {monitor.id}")

    async def _send_webhook_alert(self, monitor: MonitorConfig, kind: NotificationKind):
        payload = {
            "monitor": monitor.name,
            "monitor_id": monitor.id,
            "type": monitor.type.value,
            "target": monitor.url,
            "event": kind.value,
            "timestamp": datetime.utcnow().isoformat() + "Z",
        }
        success = await self._send_webhook(self.webhook_url, payload)
        await self._record(monitor, kind, "webhook", payload, success)

    async def _send_email_alert(self, monitor: MonitorConfig, kind: NotificationKind, recipients: List[str]):
        subject = self.build_subject(monitor, kind)
        body = self.build_body(monitor, kind)
        success = await self.email_sender.send_email(EmailConfig.from_settings(recipients), subject, body)
        await self._record(monitor, kind, "email", {"subject": subject, "to": recipients}, success)

    async def _send_webhook(self, url: str, payload: dict) -> bool:
        """Send a webhook POST request."""
        try:
            async with httpx.AsyncClient(timeout=10, transport=self._transport) as client:
                response = await client.post(url, json=payload)
        except httpx.HTTPError as e:
            logger.error(f"Failed to send webhook: {e}")
            return False
        if response.status_code < 400:
            logger.info(f"Webhook sent: {payload['event']} for {payload['monitor']}")
            return True
        logger.warning(f"Webhook returned {response.status_code}")
        return False

    async def _record(self, monitor: MonitorConfig, kind: NotificationKind, channel: str, payload, success: bool):
        try:
            await self.store.record_alert(monitor.id, kind.value, channel, payload, success)
        except StorageError as e:
            logger.error(f"Could not log {channel} {kind.value} for monitor {monitor.id}: {e}")
