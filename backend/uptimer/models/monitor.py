"""Monitor model - endpoints being polled."""
from datetime import datetime
from sqlalchemy import Boolean, Column, Integer, SmallInteger, String, Text, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship

from ..database import Base


class Monitor(Base):
    """A monitored endpoint - http, tcp, mongodb or redis."""

    __tablename__ = "monitors"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=False, index=True)
    notification_id = Column(Integer, ForeignKey("notifications.id"), nullable=True)
    name = Column(String, nullable=False)
    type = Column(String, nullable=False)  # http, tcp, mongodb, redis
    url = Column(String, nullable=False)  # URL or host
    port = Column(Integer, nullable=True)  # tcp, mongodb, redis
    frequency = Column(Integer, nullable=False, default=30)  # seconds
    active = Column(Boolean, nullable=False, default=True)
    status = Column(SmallInteger, nullable=False, default=0)  # 0=up, 1=down
    last_changed = Column(DateTime, nullable=True)
    alert_threshold = Column(Integer, nullable=False, default=1)

    # Request shape
    method = Column(String, nullable=True)
    headers = Column(Text, nullable=True)  # JSON map
    body = Column(Text, nullable=True)
    http_auth_method = Column(String, nullable=True)  # none, basic, token
    basic_auth_user = Column(Text, nullable=True)
    basic_auth_pass = Column(Text, nullable=True)
    bearer_token = Column(Text, nullable=True)
    timeout = Column(Integer, nullable=False, default=10)  # seconds
    redirects = Column(Integer, nullable=False, default=0)

    # Assertions
    status_codes = Column(JSON, nullable=True)  # [200, 201]
    max_response_ms = Column(Integer, nullable=True)
    content_types = Column(JSON, nullable=True)  # ["application/json"]

    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    notification = relationship("NotificationGroup", back_populates="monitors")
    alerts = relationship("Alert", back_populates="monitor", cascade="all, delete-orphan")
