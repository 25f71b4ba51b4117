"""
============================================================================
UPTIMEKIT - DATABASE MANAGER
============================================================================
Engine and session management plus the repositories used by the daemon:

* MonitorRepository      - the monitor registry and group management
* HeartbeatRepository    - append-only heartbeat history
* SslCertificateRepository - last inspected certificate per monitor
============================================================================
"""

import asyncio
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, List, Optional

from sqlalchemy.ext.asyncio import (
    create_async_engine,
    AsyncSession,
    AsyncEngine,
    async_sessionmaker
)
from sqlalchemy import event, text, select, delete, update, func, or_
from sqlalchemy.pool import NullPool
from sqlalchemy.exc import SQLAlchemyError

from config.constants import HeartbeatStatus, MonitorType, UNGROUPED
from config.settings import Settings
from database.models import Base, Monitor, Heartbeat, SslCertificate
from exceptions import (
    DatabaseConnectionError,
    DatabaseDuplicateError,
    DatabaseNotFoundError,
    DatabaseQueryError,
    PersistenceWriteError,
    RegistryReadError,
    ValidationException,
)
from utils.helpers import TimeHelper
from utils.logger import get_logger
from utils.validators import MonitorValidator


logger = get_logger(__name__)


# ============================================================================
# DATABASE MANAGER CLASS
# ============================================================================

class DatabaseManager:
    """
    Owns the async engine and session factory.
    Creates the schema on initialization.
    """

    def __init__(self, settings: Settings):
        """
        Initialize database manager.

        Args:
            settings: Application settings instance
        """
        self.settings = settings
        self.engine: Optional[AsyncEngine] = None
        self.session_factory: Optional[async_sessionmaker] = None
        self._is_initialized = False
        self._lock = asyncio.Lock()

        db_settings = settings.database
        self.database_url = db_settings.url
        self.is_sqlite = db_settings.is_sqlite
        self.echo = db_settings.echo

        logger.info(f"DatabaseManager initialized with URL: {self._mask_password(self.database_url)}")

    @staticmethod
    def _mask_password(url: str) -> str:
        """
        Mask password in database URL for logging.

        Args:
            url: Database URL

        Returns:
            Masked URL
        """
        if "://" not in url:
            return url

        protocol, rest = url.split("://", 1)
        if "@" not in rest:
            return url

        credentials, host_part = rest.split("@", 1)
        if ":" in credentials:
            user, _ = credentials.split(":", 1)
            return f"{protocol}://{user}:****@{host_part}"

        return url

    def _get_engine_kwargs(self) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {"echo": self.echo}

        # One connection per session for SQLite so every session sees the PRAGMAs
        if self.is_sqlite:
            kwargs["poolclass"] = NullPool
            kwargs["connect_args"] = {"timeout": 30}
        else:
            db_settings = self.settings.database
            kwargs["pool_size"] = db_settings.pool_size
            kwargs["max_overflow"] = db_settings.max_overflow
            kwargs["pool_timeout"] = db_settings.pool_timeout
            kwargs["pool_recycle"] = db_settings.pool_recycle
            kwargs["pool_pre_ping"] = True

        return kwargs

    async def initialize(self) -> None:
        """
        Initialize database engine and session factory.
        Creates all tables if they don't exist.

        Raises:
            DatabaseConnectionError: If the store cannot be opened
        """
        async with self._lock:
            if self._is_initialized:
                logger.warning("Database already initialized")
                return

            try:
                self.engine = create_async_engine(
                    self.database_url,
                    **self._get_engine_kwargs()
                )

                # Must be registered before the first connection is opened
                self._register_event_listeners()

                self.session_factory = async_sessionmaker(
                    self.engine,
                    class_=AsyncSession,
                    expire_on_commit=False,
                    autoflush=False,
                )

                await self.create_tables()

                self._is_initialized = True
                logger.info("Database initialized successfully")

            except (SQLAlchemyError, OSError) as e:
                logger.error(f"Failed to initialize database: {e}")
                if self.engine:
                    await self.engine.dispose()
                    self.engine = None
                raise DatabaseConnectionError(
                    f"Failed to initialize database: {e}",
                    url=self._mask_password(self.database_url),
                    cause=e,
                )

    def _register_event_listeners(self) -> None:
        """Register SQLAlchemy event listeners for connection management."""
        is_sqlite = self.is_sqlite

        @event.listens_for(self.engine.sync_engine, "connect")
        def receive_connect(dbapi_conn, connection_record):
            """Handle new database connections."""
            if is_sqlite:
                cursor = dbapi_conn.cursor()
                cursor.execute("PRAGMA foreign_keys=ON")
                cursor.execute("PRAGMA journal_mode=WAL")
                cursor.close()
            logger.debug("New database connection established")

    async def create_tables(self) -> None:
        """
        Create all database tables.
        """
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created successfully")

    async def drop_tables(self) -> None:
        """
        Drop all database tables.
        WARNING: This will delete all data!
        """
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        logger.warning("All database tables dropped")

    async def reset(self) -> None:
        """Drop and recreate every table."""
        if not self._is_initialized:
            await self.initialize()

        try:
            await self.drop_tables()
            await self.create_tables()
        except SQLAlchemyError as e:
            raise DatabaseQueryError(f"Failed to reset database: {e}", operation="reset", cause=e)

        logger.warning("Database reset: all monitors and history removed")

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Provide a transactional scope for database operations.

        Yields:
            AsyncSession instance

        Example:
            async with db_manager.session() as session:
                monitor = await session.get(Monitor, monitor_id)
        """
        if not self._is_initialized:
            await self.initialize()

        session = self.session_factory()
        try:
            yield session
            await session.commit()
        except Exception as e:
            await session.rollback()
            logger.debug(f"Session rolled back: {e}")
            raise
        finally:
            await session.close()

    async def check_connection(self) -> bool:
        """
        Check if database connection is alive.

        Returns:
            True if connection is alive, False otherwise
        """
        try:
            async with self.session() as session:
                await session.execute(text("SELECT 1"))
            return True
        except (SQLAlchemyError, DatabaseConnectionError, OSError) as e:
            logger.error(f"Database connection check failed: {e}")
            return False

    async def close(self) -> None:
        """
        Close database connections and cleanup resources.
        """
        if self.engine:
            await self.engine.dispose()
            self.engine = None
            logger.info("Database connections closed")
        self._is_initialized = False


# ============================================================================
# DATABASE REPOSITORY BASE CLASS
# ============================================================================

class BaseRepository:
    """
    Base repository class for database operations.
    Database faults surface as DatabaseQueryError.
    """

    def __init__(self, db_manager: DatabaseManager):
        """
        Initialize repository.

        Args:
            db_manager: DatabaseManager instance
        """
        self.db = db_manager
        self.logger = get_logger(self.__class__.__name__)

    async def get_by_id(self, model_class, record_id: int):
        """
        Get record by ID.

        Args:
            model_class: SQLAlchemy model class
            record_id: Record ID

        Returns:
            Model instance or None
        """
        try:
            async with self.db.session() as session:
                return await session.get(model_class, record_id)
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting {model_class.__name__} by ID {record_id}: {e}")
            raise DatabaseQueryError(
                f"Failed to load {model_class.__name__} {record_id}",
                operation="get",
                table=model_class.__tablename__,
                cause=e,
            )


# ============================================================================
# MONITOR REPOSITORY
# ============================================================================

class MonitorRepository(BaseRepository):
    """
    The monitor registry.

    Monitor names and group names compare case-insensitively.
    """

    UPDATABLE_FIELDS = ("name", "type", "url", "port", "interval", "webhook_url", "group_name")

    @property
    def min_interval(self) -> int:
        return self.db.settings.monitoring.min_interval

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def list_monitors(self) -> List[Monitor]:
        """
        Point-in-time snapshot of the registry ordered by id.

        Raises:
            RegistryReadError: If the registry cannot be read
        """
        try:
            async with self.db.session() as session:
                result = await session.execute(select(Monitor).order_by(Monitor.id))
                return list(result.scalars().all())
        except (SQLAlchemyError, DatabaseConnectionError, OSError) as e:
            self.logger.error(f"[Registry] Failed to list monitors: {e}")
            raise RegistryReadError(cause=e)

    async def get_monitor(self, monitor_id: int) -> Optional[Monitor]:
        return await self.get_by_id(Monitor, monitor_id)

    async def get_by_id_or_name(self, value: Any) -> Optional[Monitor]:
        """
        Resolve a user-supplied reference to a monitor.

        Lookup order: numeric id, exact name, exact url (both
        case-insensitive), then a substring of name or url.
        """
        needle = str(value if value is not None else "").strip()
        if not needle:
            return None

        if needle.isdigit():
            monitor = await self.get_monitor(int(needle))
            if monitor:
                return monitor

        lowered = needle.lower()
        pattern = f"%{self._escape_like(lowered)}%"

        queries = [
            select(Monitor).where(func.lower(Monitor.name) == lowered),
            select(Monitor).where(func.lower(Monitor.url) == lowered),
            select(Monitor).where(
                or_(
                    func.lower(Monitor.name).like(pattern, escape="\\"),
                    func.lower(Monitor.url).like(pattern, escape="\\"),
                )
            ),
        ]

        try:
            async with self.db.session() as session:
                for query in queries:
                    result = await session.execute(query.order_by(Monitor.id).limit(1))
                    monitor = result.scalar_one_or_none()
                    if monitor:
                        return monitor
        except SQLAlchemyError as e:
            raise DatabaseQueryError("Failed to look up monitor", operation="lookup", table="monitors", cause=e)

        return None

    @staticmethod
    def _escape_like(value: str) -> str:
        return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")

    async def _name_taken(self, session: AsyncSession, name: str, exclude_id: Optional[int] = None) -> bool:
        query = select(Monitor.id).where(func.lower(Monitor.name) == name.lower())
        if exclude_id is not None:
            query = query.where(Monitor.id != exclude_id)
        result = await session.execute(query.limit(1))
        return result.first() is not None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def add_monitor(
        self,
        monitor_type: Any,
        url: str,
        interval: Optional[int] = None,
        name: Optional[str] = None,
        webhook_url: Optional[str] = None,
        group_name: Optional[str] = None,
        port: Optional[int] = None,
    ) -> Monitor:
        """
        Validate and register a new monitor.

        Raises:
            ValidationException: On a bad type, target or interval
            DatabaseDuplicateError: If the name is already used
        """
        if interval is None:
            interval = self.db.settings.monitoring.default_interval

        parsed_type = MonitorValidator.validate_type(monitor_type)
        monitor = Monitor(
            type=parsed_type.value,
            url=MonitorValidator.validate_target(parsed_type, url),
            interval=MonitorValidator.validate_interval(interval, self.min_interval),
            name=MonitorValidator.validate_name(name),
            webhook_url=MonitorValidator.validate_webhook(webhook_url),
            group_name=MonitorValidator.validate_group(group_name),
            port=port,
        )

        try:
            async with self.db.session() as session:
                if monitor.name and await self._name_taken(session, monitor.name):
                    raise DatabaseDuplicateError(
                        f"Monitor with name '{monitor.name}' already exists.",
                        entity_type="Monitor",
                        field="name",
                        value=monitor.name,
                    )
                session.add(monitor)
                await session.flush()
                await session.refresh(monitor)
        except SQLAlchemyError as e:
            self.logger.error(f"Error creating monitor: {e}")
            raise DatabaseQueryError("Failed to create monitor", operation="insert", table="monitors", cause=e)

        self.logger.info(f"[Registry] Added {monitor.type} monitor #{monitor.id} -> {monitor.url}")
        return monitor

    async def update_monitor(self, monitor_id: int, **fields: Any) -> Monitor:
        """
        Partially update a monitor.

        Only keys present in ``fields`` change. Passing ``None`` clears an
        optional column (name, webhook_url, group_name, port).

        Raises:
            DatabaseNotFoundError: If the monitor does not exist
            DatabaseDuplicateError: If the new name belongs to another monitor
        """
        unknown = set(fields) - set(self.UPDATABLE_FIELDS)
        if unknown:
            raise ValidationException(
                f"Cannot update field(s): {', '.join(sorted(unknown))}",
                field=sorted(unknown)[0],
            )

        try:
            async with self.db.session() as session:
                monitor = await session.get(Monitor, monitor_id)
                if monitor is None:
                    raise DatabaseNotFoundError(
                        f"Monitor {monitor_id} does not exist.",
                        entity_type="Monitor",
                        entity_id=monitor_id,
                    )

                monitor_type = MonitorType.parse(monitor.type)
                if "type" in fields:
                    monitor_type = MonitorValidator.validate_type(fields["type"])
                    monitor.type = monitor_type.value

                if "url" in fields or "type" in fields:
                    monitor.url = MonitorValidator.validate_target(
                        monitor_type, fields.get("url", monitor.url)
                    )

                if "interval" in fields:
                    monitor.interval = MonitorValidator.validate_interval(
                        fields["interval"], self.min_interval
                    )

                if "name" in fields:
                    name = MonitorValidator.validate_name(fields["name"])
                    if name and await self._name_taken(session, name, exclude_id=monitor_id):
                        raise DatabaseDuplicateError(
                            f"Monitor with name '{name}' already exists.",
                            entity_type="Monitor",
                            field="name",
                            value=name,
                        )
                    monitor.name = name

                if "webhook_url" in fields:
                    monitor.webhook_url = MonitorValidator.validate_webhook(fields["webhook_url"])

                if "group_name" in fields:
                    monitor.group_name = MonitorValidator.validate_group(fields["group_name"])

                if "port" in fields:
                    monitor.port = fields["port"]

                await session.flush()
                await session.refresh(monitor)
        except SQLAlchemyError as e:
            self.logger.error(f"Error updating monitor {monitor_id}: {e}")
            raise DatabaseQueryError("Failed to update monitor", operation="update", table="monitors", cause=e)

        self.logger.info(f"[Registry] Updated monitor #{monitor_id}: {', '.join(sorted(fields)) or 'no changes'}")
        return monitor

    async def delete_monitor(self, monitor_id: int) -> bool:
        """
        Delete a monitor with its heartbeats and certificate.

        Returns:
            True if a monitor was deleted
        """
        try:
            async with self.db.session() as session:
                deleted = await self._delete_where(session, Monitor.id == monitor_id)
        except SQLAlchemyError as e:
            self.logger.error(f"Error deleting monitor {monitor_id}: {e}")
            raise DatabaseQueryError("Failed to delete monitor", operation="delete", table="monitors", cause=e)

        if deleted:
            self.logger.info(f"[Registry] Deleted monitor #{monitor_id}")
        return deleted > 0

    @staticmethod
    async def _delete_where(session: AsyncSession, condition) -> int:
        """
        Delete monitors matching ``condition`` and everything they own.

        Child rows are removed explicitly as well so databases created
        without enforced foreign keys stay consistent.
        """
        ids = list((await session.execute(select(Monitor.id).where(condition))).scalars().all())
        if not ids:
            return 0

        await session.execute(delete(Heartbeat).where(Heartbeat.monitor_id.in_(ids)))
        await session.execute(delete(SslCertificate).where(SslCertificate.monitor_id.in_(ids)))
        await session.execute(delete(Monitor).where(Monitor.id.in_(ids)))
        return len(ids)

    # ------------------------------------------------------------------
    # Groups
    # ------------------------------------------------------------------

    @staticmethod
    def _group_matches(group_name: str):
        return func.lower(Monitor.group_name) == group_name.lower()

    async def get_groups(self) -> List[Dict[str, Any]]:
        """
        Non-empty groups with their monitor counts, alphabetically.

        Returns:
            List of ``{"group_name": str, "count": int}``
        """
        query = (
            select(Monitor.group_name, func.count(Monitor.id))
            .where(Monitor.group_name.is_not(None), Monitor.group_name != "")
            .group_by(Monitor.group_name)
            .order_by(func.lower(Monitor.group_name), Monitor.group_name)
        )
        try:
            async with self.db.session() as session:
                rows = (await session.execute(query)).all()
        except SQLAlchemyError as e:
            raise DatabaseQueryError("Failed to list groups", operation="groups", table="monitors", cause=e)

        return [{"group_name": group, "count": count} for group, count in rows]

    async def group_exists(self, group_name: Optional[str]) -> bool:
        if not group_name or not group_name.strip():
            return False

        try:
            async with self.db.session() as session:
                result = await session.execute(
                    select(Monitor.id).where(self._group_matches(group_name.strip())).limit(1)
                )
                return result.first() is not None
        except SQLAlchemyError as e:
            raise DatabaseQueryError("Failed to check group", operation="group_exists", table="monitors", cause=e)

    async def rename_group(self, old_name: str, new_name: str) -> int:
        """
        Rename a group.

        A rename that only changes letter case is allowed.

        Returns:
            Number of monitors moved

        Raises:
            DatabaseNotFoundError: If ``old_name`` does not exist
            DatabaseDuplicateError: If ``new_name`` is another existing group
        """
        new_name = MonitorValidator.validate_group(new_name)
        if not new_name:
            raise ValidationException("New group name cannot be empty.", field="group_name")

        if not await self.group_exists(old_name):
            raise DatabaseNotFoundError(
                f"Group '{old_name}' does not exist.",
                entity_type="Group",
                entity_id=old_name,
            )

        old_name = old_name.strip()
        if new_name.lower() != old_name.lower() and await self.group_exists(new_name):
            raise DatabaseDuplicateError(
                f"Group '{new_name}' already exists.",
                entity_type="Group",
                field="group_name",
                value=new_name,
            )

        try:
            async with self.db.session() as session:
                result = await session.execute(
                    update(Monitor)
                    .where(self._group_matches(old_name))
                    .values(group_name=new_name)
                    .execution_options(synchronize_session=False)
                )
                changed = result.rowcount
        except SQLAlchemyError as e:
            raise DatabaseQueryError("Failed to rename group", operation="rename_group", table="monitors", cause=e)

        self.logger.info(f"[Registry] Renamed group '{old_name}' to '{new_name}' ({changed} monitors)")
        return changed

    async def delete_group(self, group_name: str, delete_monitors: bool = False) -> int:
        """
        Remove a group.

        Args:
            group_name: Group to remove (case-insensitive)
            delete_monitors: Delete the member monitors and their history
                instead of ungrouping them

        Returns:
            Number of monitors affected
        """
        if not await self.group_exists(group_name):
            raise DatabaseNotFoundError(
                f"Group '{group_name}' does not exist.",
                entity_type="Group",
                entity_id=group_name,
            )

        group_name = group_name.strip()
        try:
            async with self.db.session() as session:
                if delete_monitors:
                    changed = await self._delete_where(session, self._group_matches(group_name))
                else:
                    result = await session.execute(
                        update(Monitor)
                        .where(self._group_matches(group_name))
                        .values(group_name=None)
                        .execution_options(synchronize_session=False)
                    )
                    changed = result.rowcount
        except SQLAlchemyError as e:
            raise DatabaseQueryError("Failed to delete group", operation="delete_group", table="monitors", cause=e)

        action = "deleted" if delete_monitors else "ungrouped"
        self.logger.info(f"[Registry] Removed group '{group_name}' ({changed} monitors {action})")
        return changed

    async def get_monitors_by_group(self, group_name: Optional[str]) -> List[Monitor]:
        """
        Monitors of a group; ``None`` or ``"ungrouped"`` selects monitors
        without a group.
        """
        if group_name is None or group_name.strip().lower() == UNGROUPED:
            condition = or_(Monitor.group_name.is_(None), Monitor.group_name == "")
        else:
            condition = self._group_matches(group_name.strip())

        try:
            async with self.db.session() as session:
                result = await session.execute(select(Monitor).where(condition).order_by(Monitor.id))
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise DatabaseQueryError("Failed to list group monitors", operation="group_monitors", table="monitors", cause=e)


# ============================================================================
# HEARTBEAT REPOSITORY
# ============================================================================

class HeartbeatRepository(BaseRepository):
    """
    Append-only heartbeat history.

    Appends are serialized per monitor; different monitors never wait
    on each other.
    """

    def __init__(self, db_manager: DatabaseManager):
        super().__init__(db_manager)
        self._locks: Dict[int, asyncio.Lock] = defaultdict(asyncio.Lock)

    def lock_for(self, monitor_id: int) -> asyncio.Lock:
        return self._locks[monitor_id]

    def release(self, monitor_id: int) -> None:
        """Drop the write lock of a monitor that left the registry."""
        lock = self._locks.get(monitor_id)
        if lock is not None and not lock.locked():
            del self._locks[monitor_id]

    async def append(self, monitor_id: int, status: Any, latency: int) -> Heartbeat:
        """
        Store one heartbeat.

        Raises:
            PersistenceWriteError: If the row could not be written
        """
        heartbeat = Heartbeat(
            monitor_id=monitor_id,
            status=HeartbeatStatus(status).value,
            latency=max(0, int(latency or 0)),
            timestamp=TimeHelper.get_utc_now(),
        )

        async with self.lock_for(monitor_id):
            try:
                async with self.db.session() as session:
                    session.add(heartbeat)
                    await session.flush()
            except (SQLAlchemyError, DatabaseConnectionError, OSError) as e:
                raise PersistenceWriteError(
                    f"Failed to persist heartbeat for monitor {monitor_id}: {e}",
                    monitor_id=monitor_id,
                    cause=e,
                )

        return heartbeat

    async def read(self, monitor_id: int, limit: Optional[int] = None) -> List[Heartbeat]:
        """
        Heartbeats of a monitor, newest first.

        Args:
            monitor_id: Monitor ID
            limit: Maximum number of rows, unbounded when None
        """
        query = (
            select(Heartbeat)
            .where(Heartbeat.monitor_id == monitor_id)
            .order_by(Heartbeat.timestamp.desc(), Heartbeat.id.desc())
        )
        if limit:
            query = query.limit(limit)

        try:
            async with self.db.session() as session:
                result = await session.execute(query)
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise DatabaseQueryError("Failed to read heartbeats", operation="read", table="heartbeats", cause=e)

    async def latest(self, monitor_id: int) -> Optional[Heartbeat]:
        heartbeats = await self.read(monitor_id, limit=1)
        return heartbeats[0] if heartbeats else None

    async def count_for(self, monitor_id: int) -> int:
        try:
            async with self.db.session() as session:
                result = await session.execute(
                    select(func.count(Heartbeat.id)).where(Heartbeat.monitor_id == monitor_id)
                )
                return result.scalar() or 0
        except SQLAlchemyError as e:
            raise DatabaseQueryError("Failed to count heartbeats", operation="count", table="heartbeats", cause=e)


# ============================================================================
# SSL CERTIFICATE REPOSITORY
# ============================================================================

class SslCertificateRepository(BaseRepository):
    """Last inspected certificate per monitor."""

    async def get(self, monitor_id: int) -> Optional[SslCertificate]:
        try:
            async with self.db.session() as session:
                result = await session.execute(
                    select(SslCertificate).where(SslCertificate.monitor_id == monitor_id)
                )
                return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise DatabaseQueryError("Failed to load certificate", operation="get", table="ssl_certificates", cause=e)

    async def upsert(self, monitor_id: int, **fields: Any) -> SslCertificate:
        """
        Insert or replace the certificate row of a monitor.
        ``last_checked`` is set to now.
        """
        try:
            async with self.db.session() as session:
                result = await session.execute(
                    select(SslCertificate).where(SslCertificate.monitor_id == monitor_id)
                )
                certificate = result.scalar_one_or_none()
                if certificate is None:
                    certificate = SslCertificate(monitor_id=monitor_id)
                    session.add(certificate)

                for key, value in fields.items():
                    setattr(certificate, key, value)
                certificate.last_checked = TimeHelper.get_utc_now()

                await session.flush()
                await session.refresh(certificate)
                return certificate
        except SQLAlchemyError as e:
            raise DatabaseQueryError("Failed to store certificate", operation="upsert", table="ssl_certificates", cause=e)


# ============================================================================
# END OF DATABASE MANAGER MODULE
# ============================================================================
