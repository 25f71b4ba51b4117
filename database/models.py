"""
============================================================================
UPTIMEKIT - DATABASE MODELS
============================================================================
SQLAlchemy ORM models for the monitor registry, the heartbeat history
and tracked TLS certificates.
============================================================================
"""

from typing import Any, Dict

from sqlalchemy import (
    Column, Integer, String, DateTime, Text,
    ForeignKey, Index,
)
from sqlalchemy.orm import relationship, declarative_base

from utils.helpers import StringHelper, TimeHelper


# ============================================================================
# BASE MODEL CONFIGURATION
# ============================================================================

Base = declarative_base()


def _isoformat(value):
    return TimeHelper.ensure_utc(value).isoformat() if value else None


# ============================================================================
# MONITOR MODEL
# ============================================================================

class Monitor(Base):
    """
    A configured endpoint: what to probe, how and how often.

    ``name`` is unique case-insensitively; that rule is enforced by
    MonitorRepository since SQLite and PostgreSQL disagree on collation.
    """
    __tablename__ = "monitors"

    id = Column(Integer, primary_key=True, autoincrement=True)

    name = Column(String(100), nullable=True, index=True)
    type = Column(String(16), nullable=False)
    url = Column(Text, nullable=False)
    port = Column(Integer, nullable=True)
    interval = Column(Integer, nullable=False, default=60)

    webhook_url = Column(Text, nullable=True)
    group_name = Column(String(100), nullable=True, index=True)

    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=TimeHelper.get_utc_now,
    )

    # Relationships (rows are removed by ON DELETE CASCADE)
    heartbeats = relationship(
        "Heartbeat",
        back_populates="monitor",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="raise",
    )
    certificate = relationship(
        "SslCertificate",
        back_populates="monitor",
        uselist=False,
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="raise",
    )

    @property
    def display_name(self) -> str:
        return StringHelper.display_name(self.name, self.url)

    def to_dict(self) -> Dict[str, Any]:
        """Convert monitor to dictionary"""
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "url": self.url,
            "port": self.port,
            "interval": self.interval,
            "webhook_url": self.webhook_url,
            "group_name": self.group_name,
            "created_at": _isoformat(self.created_at),
        }

    def __repr__(self):
        return f"<Monitor(id={self.id}, type={self.type}, url={self.url})>"


# ============================================================================
# HEARTBEAT MODEL
# ============================================================================

class Heartbeat(Base):
    """
    One immutable probe outcome. Rows are only ever inserted.
    """
    __tablename__ = "heartbeats"

    id = Column(Integer, primary_key=True, autoincrement=True)

    monitor_id = Column(
        Integer,
        ForeignKey("monitors.id", ondelete="CASCADE"),
        nullable=False,
    )

    status = Column(String(8), nullable=False)
    latency = Column(Integer, nullable=False, default=0)
    timestamp = Column(
        DateTime(timezone=True),
        nullable=False,
        default=TimeHelper.get_utc_now,
    )

    monitor = relationship("Monitor", back_populates="heartbeats")

    # Indexes
    __table_args__ = (
        Index("idx_heartbeat_monitor_time", "monitor_id", "timestamp"),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "monitor_id": self.monitor_id,
            "status": self.status,
            "latency": self.latency,
            "timestamp": _isoformat(self.timestamp),
        }

    def __repr__(self):
        return (
            f"<Heartbeat(monitor_id={self.monitor_id}, status={self.status}, "
            f"latency={self.latency})>"
        )


# ============================================================================
# SSL CERTIFICATE MODEL
# ============================================================================

class SslCertificate(Base):
    """
    Last inspected TLS certificate of an https monitor (one row per monitor).
    """
    __tablename__ = "ssl_certificates"

    id = Column(Integer, primary_key=True, autoincrement=True)

    monitor_id = Column(
        Integer,
        ForeignKey("monitors.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )

    issuer = Column(Text, nullable=True)
    subject = Column(Text, nullable=True)
    valid_from = Column(DateTime(timezone=True), nullable=True)
    valid_to = Column(DateTime(timezone=True), nullable=True)
    days_remaining = Column(Integer, nullable=True)
    serial_number = Column(String(128), nullable=True)
    fingerprint = Column(String(128), nullable=True)
    last_checked = Column(
        DateTime(timezone=True),
        nullable=False,
        default=TimeHelper.get_utc_now,
    )

    monitor = relationship("Monitor", back_populates="certificate")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "monitor_id": self.monitor_id,
            "issuer": self.issuer,
            "subject": self.subject,
            "valid_from": _isoformat(self.valid_from),
            "valid_to": _isoformat(self.valid_to),
            "days_remaining": self.days_remaining,
            "serial_number": self.serial_number,
            "fingerprint": self.fingerprint,
            "last_checked": _isoformat(self.last_checked),
        }

    def __repr__(self):
        return f"<SslCertificate(monitor_id={self.monitor_id}, days_remaining={self.days_remaining})>"
