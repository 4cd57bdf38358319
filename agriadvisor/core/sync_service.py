"""
Server-side sync orchestration
Routes synced offline records to reconcilers and reports per-item outcomes
"""

import logging
from datetime import datetime, timedelta
from typing import Dict, Any, List, Optional, Callable

from sqlalchemy import select, delete, func

from agriadvisor.core.database import db_service
from agriadvisor.core.models import (
    CropDiagnosisDB, SyncType, UserDB, isoformat_utc, to_naive_utc, utcnow
)
from agriadvisor.core.reconcilers import ReconcilerRegistry, create_default_registry


class InvalidClearWindowError(ValueError):
    """Raised for an olderThan value outside the configured windows"""


class SyncItem:
    """One validated record as received from a client"""

    def __init__(self, sync_type: SyncType, data: Dict[str, Any], timestamp: datetime):
        self.sync_type = sync_type
        self.data = data
        self.timestamp = timestamp

    def __repr__(self):
        return f"SyncItem(type={self.sync_type.value}, timestamp={self.timestamp.isoformat()})"


class SyncService:
    """Applies client sync submissions against server state"""

    def __init__(self, session_factory: Optional[Callable] = None,
                 registry: Optional[ReconcilerRegistry] = None,
                 retention_days: int = 7,
                 clear_windows: Optional[Dict[str, int]] = None,
                 default_clear_window: str = '30d'):
        self.session_factory = session_factory or db_service.get_session
        self.registry = registry or create_default_registry()
        self.retention_days = retention_days
        self.clear_windows = clear_windows or {'7d': 7, '30d': 30, '90d': 90}
        self.default_clear_window = default_clear_window
        self.logger = logging.getLogger(__name__)

    async def sync_item(self, user_id: str, item: SyncItem) -> Dict[str, Any]:
        """Reconcile a single record; reconciliation errors propagate"""
        async with self.session_factory() as session:
            result = await self.registry.reconcile(
                session, user_id, item.sync_type, item.data, item.timestamp
            )
            user = await session.get(UserDB, user_id)
            if user is not None:
                user.last_sync = utcnow()

        self.logger.info(f"Synced {item.sync_type.value} for user {user_id}: {result.get('action')}")
        return result

    async def sync_batch(self, user_id: str, items: List[SyncItem]) -> Dict[str, Any]:
        """Reconcile each item in its own transaction; one failure never aborts the rest"""
        results = []
        success_count = 0

        for index, item in enumerate(items):
            try:
                async with self.session_factory() as session:
                    result = await self.registry.reconcile(
                        session, user_id, item.sync_type, item.data, item.timestamp
                    )
                results.append({
                    'type': item.sync_type.value,
                    'status': 'success',
                    'result': result,
                })
                success_count += 1
            except Exception as e:
                self.logger.error(
                    f"Batch item {index} ({item.sync_type.value}) failed for user {user_id}: {e}",
                    exc_info=True
                )
                results.append({
                    'type': item.sync_type.value,
                    'status': 'error',
                    'error': str(e),
                })

        await self.touch_last_sync(user_id)

        summary = {
            'total': len(items),
            'success': success_count,
            'errors': len(items) - success_count,
        }
        self.logger.info(f"Batch sync for user {user_id}: {summary}")
        return {'summary': summary, 'results': results}

    async def touch_last_sync(self, user_id: str) -> None:
        async with self.session_factory() as session:
            user = await session.get(UserDB, user_id)
            if user is not None:
                user.last_sync = utcnow()

    async def get_status(self, user_id: str, since: Optional[datetime] = None) -> Dict[str, Any]:
        """Last sync time and the count of the user's diagnoses recorded since a point in time"""
        since = to_naive_utc(since) if since else utcnow() - timedelta(days=self.retention_days)

        async with self.session_factory() as session:
            user = await session.get(UserDB, user_id)
            result = await session.execute(
                select(func.count(CropDiagnosisDB.id)).where(
                    CropDiagnosisDB.user_id == user_id,
                    CropDiagnosisDB.created_at >= since,
                )
            )
            diagnoses = result.scalar_one()

        return {
            'lastSync': isoformat_utc(user.last_sync) if user else None,
            'pendingItems': {'diagnoses': diagnoses},
            'serverTime': isoformat_utc(utcnow()),
        }

    def resolve_clear_window(self, older_than: Optional[str]) -> int:
        window = older_than or self.default_clear_window
        if window not in self.clear_windows:
            allowed = ', '.join(self.clear_windows)
            raise InvalidClearWindowError(f"olderThan must be one of: {allowed}")
        return self.clear_windows[window]

    async def clear_offline_data(self, user_id: str, older_than: Optional[str] = None) -> Dict[str, Any]:
        """Delete the user's offline-origin diagnoses older than the chosen window"""
        days = self.resolve_clear_window(older_than)
        cutoff = utcnow() - timedelta(days=days)

        async with self.session_factory() as session:
            result = await session.execute(
                delete(CropDiagnosisDB).where(
                    CropDiagnosisDB.user_id == user_id,
                    CropDiagnosisDB.is_offline.is_(True),
                    CropDiagnosisDB.created_at < cutoff,
                )
            )
            deleted_count = result.rowcount or 0

        self.logger.info(f"Cleared {deleted_count} offline diagnoses older than {days}d for user {user_id}")
        return {'deletedCount': deleted_count, 'cutoffDate': isoformat_utc(cutoff)}
