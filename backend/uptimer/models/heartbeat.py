"""Heartbeat model - one immutable row per executed check cycle."""
from sqlalchemy import BigInteger, Column, Integer, SmallInteger, String, Text, ForeignKey

from ..database import Base


class Heartbeat(Base):
    """Outcome of a single probe. Never updated after insert."""

    __tablename__ = "heartbeats"

    id = Column(Integer, primary_key=True, autoincrement=True)
    # No ORM cascade: heartbeats are purged explicitly before a monitor is deleted
    monitor_id = Column(Integer, ForeignKey("monitors.id"), nullable=False, index=True)
    status = Column(SmallInteger, nullable=False)  # 0=up, 1=down
    code = Column(Integer, nullable=False, default=0)
    message = Column(String, nullable=False, default="")
    timestamp = Column(BigInteger, nullable=False, index=True)  # UTC epoch ms
    request_headers = Column(Text, nullable=False, default="{}")
    response_headers = Column(Text, nullable=False, default="{}")
    request_body = Column(Text, nullable=False, default="")
    response_body = Column(Text, nullable=False, default="")
    response_time = Column(Integer, nullable=False, default=0)  # ms
