"""
Per-type reconcilers for synced offline records
Each reconciler is idempotent on its own dedup key and returns a structured outcome
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import Dict, Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from agriadvisor.core.models import (
    AnalyticsLogDB, CropDiagnosisDB, SyncType, UserDB, isoformat_utc, to_naive_utc
)

logger = logging.getLogger(__name__)


class ReconciliationError(Exception):
    """Business-logic failure for a single sync item"""


class SyncAction(str, Enum):
    CREATED = "created"
    SKIPPED = "skipped"
    UPDATED = "updated"
    LOGGED = "logged"
    NO_CHANGES = "no_changes"


class Reconciler(ABC):
    """Applies one synced record of a given type to server state"""

    sync_type: SyncType

    @abstractmethod
    async def reconcile(self, session: AsyncSession, user_id: str,
                        data: Dict[str, Any], timestamp: datetime) -> Dict[str, Any]:
        """Apply the record and return its outcome"""


class DiagnosisReconciler(Reconciler):
    """Insert offline diagnoses once per (user, timestamp, disease)"""

    sync_type = SyncType.DIAGNOSIS

    async def reconcile(self, session, user_id, data, timestamp):
        result = data.get('result') or {}
        if not isinstance(result, dict) or not result.get('disease'):
            raise ReconciliationError("Diagnosis result must include a disease")

        disease = result['disease']
        event_time = to_naive_utc(timestamp)

        existing = await self._find_existing(session, user_id, event_time, disease)
        if existing is not None:
            return self._skipped(existing)

        diagnosis = CropDiagnosisDB.from_result(
            user_id=user_id,
            result=result,
            crop=data.get('crop'),
            location=data.get('location'),
            weather=data.get('weather'),
            created_at=event_time,
            is_offline=True,
        )
        session.add(diagnosis)

        try:
            await session.flush()
        except IntegrityError:
            # A concurrent replay of the same record won the insert
            await session.rollback()
            existing = await self._find_existing(session, user_id, event_time, disease)
            if existing is None:
                raise
            return self._skipped(existing)

        logger.info(f"Created offline diagnosis {diagnosis.id} ({disease}) for user {user_id}")
        return {'action': SyncAction.CREATED.value, 'id': diagnosis.id}

    @staticmethod
    async def _find_existing(session: AsyncSession, user_id: str, event_time: datetime,
                             disease: str) -> Optional[CropDiagnosisDB]:
        result = await session.execute(
            select(CropDiagnosisDB).where(
                CropDiagnosisDB.user_id == user_id,
                CropDiagnosisDB.created_at == event_time,
                CropDiagnosisDB.disease == disease,
            )
        )
        return result.scalars().first()

    @staticmethod
    def _skipped(existing: CropDiagnosisDB) -> Dict[str, Any]:
        return {
            'action': SyncAction.SKIPPED.value,
            'reason': 'Diagnosis already exists',
            'id': existing.id,
        }


class AnalyticsReconciler(Reconciler):
    """Append-only logging of analytics records; no dedup"""

    logged_fields: Dict[str, Any] = {}

    def extract(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return {field: data.get(field, default) for field, default in self.logged_fields.items()}

    async def reconcile(self, session, user_id, data, timestamp):
        event_time = to_naive_utc(timestamp)
        logged = self.extract(data)

        session.add(AnalyticsLogDB(
            user_id=user_id,
            record_type=self.sync_type.value,
            event_time=event_time,
            data=logged,
        ))
        await session.flush()

        return {
            'action': SyncAction.LOGGED.value,
            'timestamp': isoformat_utc(event_time),
            'data': logged,
        }


class IrrigationReconciler(AnalyticsReconciler):
    sync_type = SyncType.IRRIGATION
    logged_fields = {'crop': None, 'recommendation': None, 'weather': None}


class MarketReconciler(AnalyticsReconciler):
    sync_type = SyncType.MARKET

    def extract(self, data):
        return {
            'queries': data.get('queries') or [],
            'interactions': data.get('interactions') or [],
        }


class ProfileLocation(BaseModel):
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    address: Optional[str] = None


class UserDataUpdate(BaseModel):
    """The only profile fields a synced user_data record may change"""
    model_config = ConfigDict(extra='ignore', populate_by_name=True)

    preferences: Optional[Dict[str, Any]] = None
    farm_details: Optional[Dict[str, Any]] = Field(default=None, alias='farmDetails')
    location: Optional[ProfileLocation] = None


class UserDataReconciler(Reconciler):
    """Whitelist-merge profile fields onto the stored user"""

    sync_type = SyncType.USER_DATA

    async def reconcile(self, session, user_id, data, timestamp):
        user = await session.get(UserDB, user_id)
        if user is None:
            raise ReconciliationError("User not found")

        try:
            update = UserDataUpdate.model_validate(data)
        except ValidationError as e:
            raise ReconciliationError(f"Invalid profile update: {e.errors()[0]['msg']}")

        fields: List[str] = []
        if 'preferences' in update.model_fields_set:
            user.preferences = update.preferences
            fields.append('preferences')
        if 'farm_details' in update.model_fields_set:
            user.farm_details = update.farm_details
            fields.append('farmDetails')
        if 'location' in update.model_fields_set:
            user.apply_location(update.location.model_dump() if update.location else None)
            fields.append('location')

        if not fields:
            return {'action': SyncAction.NO_CHANGES.value, 'reason': 'No valid updates found'}

        await session.flush()
        logger.info(f"Updated profile fields {fields} for user {user_id}")
        return {'action': SyncAction.UPDATED.value, 'fields': fields}


class ReconcilerRegistry:
    """Registry routing sync records to their reconciler by type"""

    def __init__(self):
        self._reconcilers: Dict[SyncType, Reconciler] = {}

    def register(self, reconciler: Reconciler):
        self._reconcilers[reconciler.sync_type] = reconciler

    def get(self, sync_type: SyncType) -> Reconciler:
        reconciler = self._reconcilers.get(sync_type)
        if reconciler is None:
            raise ReconciliationError(f"No reconciler registered for type: {sync_type.value}")
        return reconciler

    async def reconcile(self, session: AsyncSession, user_id: str, sync_type: SyncType,
                        data: Dict[str, Any], timestamp: datetime) -> Dict[str, Any]:
        return await self.get(sync_type).reconcile(session, user_id, data, timestamp)


def create_default_registry() -> ReconcilerRegistry:
    registry = ReconcilerRegistry()
    for reconciler in (DiagnosisReconciler(), IrrigationReconciler(),
                       MarketReconciler(), UserDataReconciler()):
        registry.register(reconciler)
    return registry
