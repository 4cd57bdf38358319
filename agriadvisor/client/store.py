"""
Local durable store for the offline client
Offline records, the sync queue view over them and a response cache, in SQLite
"""

import hashlib
import logging
import random
import string
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, Any, List, Optional, AsyncGenerator, Mapping

from sqlalchemy import Column, String, DateTime, Integer, Text, JSON, Index, select, delete, func
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base

from agriadvisor.core.database import ensure_sqlite_directory, sqlite_engine_options
from agriadvisor.core.models import SyncType, to_naive_utc, utcnow

ClientBase = declarative_base()

_ID_ALPHABET = string.digits + string.ascii_lowercase


class SyncState(str, Enum):
    PENDING = "pending"
    SYNCED = "synced"
    FAILED = "failed"


QUEUED_STATES = (SyncState.PENDING.value, SyncState.FAILED.value)


def generate_record_id(record_type: SyncType, now: Optional[datetime] = None) -> str:
    """``<type>_<epoch ms>_<9 base36 chars>``"""
    now = now or utcnow()
    epoch_ms = int((now - datetime(1970, 1, 1)).total_seconds() * 1000)
    suffix = ''.join(random.choices(_ID_ALPHABET, k=9))
    return f"{record_type.value}_{epoch_ms}_{suffix}"


def request_signature(method: str, path: str, params: Optional[Mapping[str, Any]] = None) -> str:
    """Cache key for a request: SHA-256 of method, path and sorted query"""
    query = '&'.join(f"{key}={params[key]}" for key in sorted(params or {}))
    raw = f"{method.upper()} {path}?{query}"
    return hashlib.sha256(raw.encode('utf-8')).hexdigest()


class OfflineRecordDB(ClientBase):
    __tablename__ = 'offline_records'

    id = Column(String(64), primary_key=True)
    type = Column(String(20), nullable=False, index=True)
    payload = Column(JSON, nullable=False)
    created_at = Column(DateTime, nullable=False)
    sync_state = Column(String(10), nullable=False, default=SyncState.PENDING.value)
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    synced_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index('idx_offline_queue', 'sync_state', 'created_at'),
    )


class ResponseCacheDB(ClientBase):
    __tablename__ = 'response_cache'

    key = Column(String(64), primary_key=True)
    value = Column(JSON, nullable=False)
    timestamp = Column(DateTime, nullable=False, index=True)


@dataclass
class OfflineRecord:
    """Detached view of a stored record"""
    id: str
    type: SyncType
    payload: Dict[str, Any]
    created_at: datetime
    sync_state: SyncState = SyncState.PENDING
    attempts: int = 0
    last_error: Optional[str] = None
    synced_at: Optional[datetime] = None

    @classmethod
    def from_db(cls, row: OfflineRecordDB) -> 'OfflineRecord':
        return cls(
            id=row.id,
            type=SyncType(row.type),
            payload=row.payload,
            created_at=row.created_at,
            sync_state=SyncState(row.sync_state),
            attempts=row.attempts or 0,
            last_error=row.last_error,
            synced_at=row.synced_at,
        )

    def to_sync_body(self) -> Dict[str, Any]:
        """Body for the server sync endpoint"""
        return {
            'type': self.type.value,
            'data': self.payload,
            'timestamp': self.created_at.isoformat() + 'Z',
        }


class LocalStore:
    """Async SQLite store owned by one client process"""

    def __init__(self, database_url: str = "sqlite+aiosqlite:///./data/offline.db"):
        self.database_url = database_url
        self.logger = logging.getLogger(__name__)
        ensure_sqlite_directory(database_url)

        self.engine = create_async_engine(database_url, **sqlite_engine_options(database_url))
        self.SessionLocal = async_sessionmaker(bind=self.engine, class_=AsyncSession, expire_on_commit=False)

    async def initialize(self):
        async with self.engine.begin() as conn:
            await conn.run_sync(ClientBase.metadata.create_all)
        self.logger.info(f"Local store ready: {self.database_url}")

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        async with self.SessionLocal() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    # ---- records ----

    async def add_record(self, record_type: SyncType, payload: Dict[str, Any],
                         created_at: Optional[datetime] = None) -> OfflineRecord:
        created_at = to_naive_utc(created_at) if created_at else utcnow()
        row = OfflineRecordDB(
            id=generate_record_id(record_type, created_at),
            type=record_type.value,
            payload=payload,
            created_at=created_at,
            sync_state=SyncState.PENDING.value,
            attempts=0,
        )
        async with self.session() as session:
            session.add(row)
        self.logger.debug(f"Stored offline record {row.id}")
        return OfflineRecord.from_db(row)

    async def get_record(self, record_id: str) -> Optional[OfflineRecord]:
        async with self.session() as session:
            row = await session.get(OfflineRecordDB, record_id)
            return OfflineRecord.from_db(row) if row else None

    async def get_records_by_type(self, record_type: SyncType) -> List[OfflineRecord]:
        async with self.session() as session:
            result = await session.execute(
                select(OfflineRecordDB)
                .where(OfflineRecordDB.type == record_type.value)
                .order_by(OfflineRecordDB.created_at)
            )
            return [OfflineRecord.from_db(row) for row in result.scalars().all()]

    async def pending_records(self) -> List[OfflineRecord]:
        """The sync queue: pending and failed records, oldest first"""
        async with self.session() as session:
            result = await session.execute(
                select(OfflineRecordDB)
                .where(OfflineRecordDB.sync_state.in_(QUEUED_STATES))
                .order_by(OfflineRecordDB.created_at, OfflineRecordDB.id)
            )
            return [OfflineRecord.from_db(row) for row in result.scalars().all()]

    async def failed_records(self) -> List[OfflineRecord]:
        async with self.session() as session:
            result = await session.execute(
                select(OfflineRecordDB)
                .where(OfflineRecordDB.sync_state == SyncState.FAILED.value)
                .order_by(OfflineRecordDB.created_at)
            )
            return [OfflineRecord.from_db(row) for row in result.scalars().all()]

    async def pending_count(self) -> int:
        async with self.session() as session:
            result = await session.execute(
                select(func.count(OfflineRecordDB.id))
                .where(OfflineRecordDB.sync_state.in_(QUEUED_STATES))
            )
            return result.scalar_one()

    async def mark_synced(self, record_id: str) -> bool:
        """Idempotent; returns False only when the record no longer exists"""
        async with self.session() as session:
            row = await session.get(OfflineRecordDB, record_id)
            if row is None:
                return False
            if row.sync_state != SyncState.SYNCED.value:
                row.sync_state = SyncState.SYNCED.value
                row.synced_at = utcnow()
                row.last_error = None
            return True

    async def mark_attempt_failed(self, record_id: str, error: str, failure_threshold: int = 5) -> Optional[SyncState]:
        """Count a failed delivery; flag the record failed once attempts reach the threshold"""
        async with self.session() as session:
            row = await session.get(OfflineRecordDB, record_id)
            if row is None:
                return None
            if row.sync_state == SyncState.SYNCED.value:
                # A concurrent delivery already succeeded
                return SyncState.SYNCED

            row.attempts = (row.attempts or 0) + 1
            row.last_error = error
            if row.attempts >= failure_threshold:
                row.sync_state = SyncState.FAILED.value
            return SyncState(row.sync_state)

    async def mark_retrying(self, record_id: str) -> None:
        """Move a failed record back to pending before another attempt"""
        async with self.session() as session:
            row = await session.get(OfflineRecordDB, record_id)
            if row is not None and row.sync_state == SyncState.FAILED.value:
                row.sync_state = SyncState.PENDING.value

    async def delete_synced_before(self, cutoff: datetime) -> int:
        async with self.session() as session:
            result = await session.execute(
                delete(OfflineRecordDB).where(
                    OfflineRecordDB.sync_state == SyncState.SYNCED.value,
                    OfflineRecordDB.created_at < to_naive_utc(cutoff),
                )
            )
            return result.rowcount or 0

    # ---- response cache ----

    async def cache_put(self, key: str, value: Any) -> None:
        async with self.session() as session:
            entry = await session.get(ResponseCacheDB, key)
            if entry is None:
                session.add(ResponseCacheDB(key=key, value=value, timestamp=utcnow()))
            else:
                entry.value = value
                entry.timestamp = utcnow()

    async def cache_get(self, key: str, max_age: Optional[timedelta] = None) -> Optional[Any]:
        async with self.session() as session:
            entry = await session.get(ResponseCacheDB, key)
            if entry is None:
                return None
            if max_age is not None and entry.timestamp < utcnow() - max_age:
                return None
            return entry.value

    async def evict_cache(self, older_than: timedelta) -> int:
        async with self.session() as session:
            result = await session.execute(
                delete(ResponseCacheDB).where(ResponseCacheDB.timestamp < utcnow() - older_than)
            )
            return result.rowcount or 0

    async def close(self):
        await self.engine.dispose()

