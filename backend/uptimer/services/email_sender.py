"""Email sender service - sends alerts via SMTP."""
import asyncio
import logging
import smtplib
import ssl
from dataclasses import dataclass, field
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import List

from ..config import settings

logger = logging.getLogger(__name__)


@dataclass
class EmailConfig:
    """SMTP configuration for sending emails."""
    host: str
    port: int
    username: str = ""
    password: str = ""
    use_tls: bool = True
    from_address: str = ""
    to_addresses: List[str] = field(default_factory=list)

    @classmethod
    def from_settings(cls, recipients: List[str]) -> "EmailConfig":
        return cls(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            use_tls=settings.smtp_use_tls,
            from_address=settings.alert_email_from,
            to_addresses=recipients,
        )


class EmailSenderService:
    """Service for sending email alerts via SMTP."""

    def _build_message(self, config: EmailConfig, subject: str, body: str) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = config.from_address or config.username
        msg["To"] = ", ".join(config.to_addresses)
        msg.attach(MIMEText(body, "plain"))
        return msg

    def _deliver(self, config: EmailConfig, msg: MIMEMultipart):
        """Blocking SMTP conversation, run in a worker thread."""
        from_addr = config.from_address or config.username
        with smtplib.SMTP(config.host, config.port, timeout=30) as server:
            if config.use_tls:
                server.starttls(context=ssl.create_default_context())
            if config.username and config.password:
                server.login(config.username, config.password)
            server.sendmail(from_addr, config.to_addresses, msg.as_string())

    async def send_email(self, config: EmailConfig, subject: str, body: str) -> bool:
        """Send an email. Returns True on success, False on failure."""
        if not config.host or not config.to_addresses:
            logger.warning("Email not configured - missing host or recipients")
            return False

        logger.info(f"Sending email to {len(config.to_addresses)} recipient(s) via {config.host}:{config.port}: {subject}")
        msg = self._build_message(config, subject, body)
        try:
            await asyncio.to_thread(self._deliver, config, msg)
        except smtplib.SMTPAuthenticationError as e:
            logger.error(f"SMTP authentication failed for user '{config.username}': {e}")
            return False
        except smtplib.SMTPRecipientsRefused as e:
            logger.error(f"Recipients refused by server: {e}")
            return False
        except smtplib.SMTPException as e:
            logger.error(f"SMTP error: {type(e).__name__}: {e}")
            return False
        except OSError as e:
            logger.error(f"Failed to connect to SMTP server {config.host}:{config.port}: {e}")
            return False

        logger.info(f"Email sent: {subject}")
        return True


# Global instance
email_sender_service = EmailSenderService()
