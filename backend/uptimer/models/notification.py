"""NotificationGroup model - who gets alerted for a monitor."""
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.orm import relationship

from ..database import Base


class NotificationGroup(Base):
    """Named list of alert recipients owned by a user."""

    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=False, index=True)
    group_name = Column(String, nullable=False)
    emails = Column(String, nullable=False, default="")  # Comma-separated
    created_at = Column(DateTime, default=datetime.utcnow)

    monitors = relationship("Monitor", back_populates="notification")

    @property
    def recipients(self) -> list[str]:
        return [addr.strip() for addr in (self.emails or "").split(",") if addr.strip()]
