"""
SQLite-backed local store for APOD entries and the access log.

Uses SQLAlchemy ORM. The store owns persisted records and access events:
entries are inserted once per date (enforced by a unique constraint) and
never updated; access events are append-only and only ever read back as
aggregate statistics.
"""

import datetime as dt
import logging
import threading
from pathlib import Path
from typing import Callable, List, Optional, Union

from sqlalchemy import (
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    create_engine,
    event,
    func,
    select,
)
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker

from ..models.apod_data import AccessEvent, ApodRecord, ApodWithStats, MediaType

logger = logging.getLogger(__name__)

StatsListener = Callable[[List[ApodWithStats]], None]


class Base(DeclarativeBase):
    pass


class ApodEntity(Base):
    """ORM row for a cached APOD entry."""

    __tablename__ = "apod"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False, unique=True, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    explanation: Mapped[str] = mapped_column(Text, nullable=False, default="")
    media_type: Mapped[str] = mapped_column(String(16), nullable=False)
    url: Mapped[str] = mapped_column(String(2048), nullable=False)
    hd_url: Mapped[Optional[str]] = mapped_column(String(2048), nullable=True)
    copyright: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    @classmethod
    def from_record(cls, record: ApodRecord) -> "ApodEntity":
        return cls(
            date=record.date,
            title=record.title,
            explanation=record.explanation,
            media_type=record.media_type.value,
            url=record.url,
            hd_url=record.hd_url,
            copyright=record.copyright,
        )

    def to_record(self) -> ApodRecord:
        return ApodRecord(
            id=self.id,
            date=self.date,
            title=self.title,
            explanation=self.explanation,
            media_type=MediaType.from_api(self.media_type),
            url=self.url,
            hd_url=self.hd_url,
            copyright=self.copyright,
        )


class AccessEntity(Base):
    """ORM row for a single access event."""

    __tablename__ = "access"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    apod_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("apod.id", ondelete="CASCADE"), nullable=False, index=True
    )
    timestamp: Mapped[dt.datetime] = mapped_column(DateTime, nullable=False)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class ApodDatabase:
    """
    Local store for APOD entries and access events.

    All methods are synchronous and thread-safe at the session level: every
    call opens its own short-lived session. Callers on an event loop should
    dispatch them to a worker pool.
    """

    def __init__(self, database_path: Union[str, Path]):
        """
        Initialize the database, creating tables if needed.

        Args:
            database_path: SQLite file path, or ``":memory:"``
        """
        self.database_path = str(database_path)
        engine_kwargs: dict = {"echo": False, "connect_args": {"check_same_thread": False}}
        if self.database_path != ":memory:":
            Path(self.database_path).expanduser().parent.mkdir(parents=True, exist_ok=True)
            url = f"sqlite:///{Path(self.database_path).expanduser()}"
        else:
            # In-memory databases live on a single shared connection
            url = "sqlite://"
            engine_kwargs["poolclass"] = StaticPool

        self.engine: Engine = create_engine(url, **engine_kwargs)
        event.listen(self.engine, "connect", _enable_sqlite_foreign_keys)
        Base.metadata.create_all(self.engine)

        self._session_factory = sessionmaker(bind=self.engine, expire_on_commit=False)
        self._listeners: List[StatsListener] = []
        self._listeners_lock = threading.Lock()
        logger.info(f"APOD database ready at {self.database_path}")

    def select_by_date(self, apod_date: dt.date) -> Optional[ApodRecord]:
        """Get the cached entry for a date, or None."""
        with self._session_factory() as session:
            entity = session.scalars(
                select(ApodEntity).where(ApodEntity.date == apod_date)
            ).first()
            return entity.to_record() if entity is not None else None

    def select_by_id(self, apod_id: int) -> Optional[ApodRecord]:
        """Get a cached entry by its store id, or None."""
        with self._session_factory() as session:
            entity = session.get(ApodEntity, apod_id)
            return entity.to_record() if entity is not None else None

    def insert(self, record: ApodRecord) -> int:
        """
        Insert a new entry.

        Returns:
            int: Generated id

        Raises:
            sqlalchemy.exc.IntegrityError: If an entry for the date already exists
        """
        with self._session_factory() as session:
            entity = ApodEntity.from_record(record)
            session.add(entity)
            session.commit()
            record_id = entity.id

        logger.debug(f"Inserted APOD {record.date} with id {record_id}")
        self._notify_listeners()
        return record_id

    def insert_access(self, access: AccessEvent) -> int:
        """
        Append an access event.

        Returns:
            int: Generated id
        """
        with self._session_factory() as session:
            entity = AccessEntity(apod_id=access.apod_id, timestamp=access.timestamp)
            session.add(entity)
            session.commit()
            access_id = entity.id

        self._notify_listeners()
        return access_id

    def count_access(self, apod_id: int) -> int:
        """Get the number of access events for an entry."""
        with self._session_factory() as session:
            return session.scalar(
                select(func.count(AccessEntity.id)).where(AccessEntity.apod_id == apod_id)
            ) or 0

    def count(self) -> int:
        """Get the number of cached entries."""
        with self._session_factory() as session:
            return session.scalar(select(func.count(ApodEntity.id))) or 0

    def select_all_with_stats(self) -> List[ApodWithStats]:
        """
        Get every cached entry with its access statistics.

        Returns:
            List[ApodWithStats]: Entries ordered by date, newest first
        """
        statement = (
            select(
                ApodEntity,
                func.count(AccessEntity.id),
                func.min(AccessEntity.timestamp),
                func.max(AccessEntity.timestamp),
            )
            .outerjoin(AccessEntity, AccessEntity.apod_id == ApodEntity.id)
            .group_by(ApodEntity.id)
            .order_by(ApodEntity.date.desc())
        )
        with self._session_factory() as session:
            return [
                ApodWithStats(
                    apod=entity.to_record(),
                    access_count=access_count,
                    first_accessed=first_accessed,
                    last_accessed=last_accessed,
                )
                for entity, access_count, first_accessed, last_accessed in session.execute(statement)
            ]

    def subscribe(self, listener: StatsListener) -> Callable[[], None]:
        """
        Register a listener for the with-stats projection.

        The listener is called with the current projection immediately and
        again after every committed write, on the writing thread.

        Returns:
            Callable[[], None]: Function that removes the listener
        """
        with self._listeners_lock:
            self._listeners.append(listener)
        listener(self.select_all_with_stats())

        def unsubscribe() -> None:
            with self._listeners_lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _notify_listeners(self) -> None:
        with self._listeners_lock:
            listeners = list(self._listeners)
        if not listeners:
            return

        snapshot = self.select_all_with_stats()
        for listener in listeners:
            try:
                listener(snapshot)
            except Exception as e:
                logger.error(f"Stats listener failed: {e}", exc_info=True)

    def close(self) -> None:
        """Dispose of the engine and its connection pool."""
        with self._listeners_lock:
            self._listeners.clear()
        self.engine.dispose()
        logger.debug("APOD database closed")
