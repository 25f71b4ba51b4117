"""
Database Package for UptimeKit

Provides database connectivity, models, and repository patterns
for data persistence using SQLAlchemy with async support.
"""

from database.manager import (
    DatabaseManager,
    BaseRepository,
    MonitorRepository,
    HeartbeatRepository,
    SslCertificateRepository,
)

from database.models import (
    Base,
    Monitor,
    Heartbeat,
    SslCertificate,
)

__all__ = [
    # Manager
    "DatabaseManager",

    # Models
    "Base",
    "Monitor",
    "Heartbeat",
    "SslCertificate",

    # Repositories
    "BaseRepository",
    "MonitorRepository",
    "HeartbeatRepository",
    "SslCertificateRepository",
]
