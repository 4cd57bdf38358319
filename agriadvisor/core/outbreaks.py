"""
Outbreak clustering service
Groups farmer reports into geofenced clusters and escalates their severity
"""

import logging
from collections import defaultdict
from typing import Dict, Any, List, Optional, Callable

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError

from agriadvisor.core.database import db_service
from agriadvisor.core.models import (
    DiseaseOutbreakDB, OutbreakReportDB, OutbreakSeverity, OutbreakStatus,
    TreatmentRecommendationDB, build_cluster_key, utcnow
)
from agriadvisor.core.notification_engine import KM_PER_DEGREE, OutbreakAlertDispatcher


class OutbreakNotFoundError(Exception):
    """Raised when an outbreak id does not exist"""


class OutbreakService:
    """Merge-or-create outbreak reports and manage outbreak lifecycle"""

    def __init__(self, session_factory: Optional[Callable] = None,
                 dispatcher: Optional[OutbreakAlertDispatcher] = None,
                 cluster_radius_degrees: float = 0.09,
                 default_list_limit: int = 50):
        self.session_factory = session_factory or db_service.get_session
        self.dispatcher = dispatcher
        self.cluster_radius_degrees = cluster_radius_degrees
        self.default_list_limit = default_list_limit
        self.logger = logging.getLogger(__name__)

    async def report_outbreak(self, user_id: str, disease: str, crop: str,
                              location: Dict[str, Any], severity: OutbreakSeverity,
                              affected_area: float = 0.0, images: Optional[List[str]] = None,
                              notes: str = "") -> Dict[str, Any]:
        """Attach a report to a nearby active cluster, or seed a new one"""
        latitude = location['latitude']
        longitude = location['longitude']
        cluster_key = build_cluster_key(disease, crop, latitude, longitude, self.cluster_radius_degrees)

        def new_report() -> OutbreakReportDB:
            return OutbreakReportDB(
                user_id=user_id,
                reported_at=utcnow(),
                severity=severity.value,
                affected_area=affected_area,
                images=images or [],
                notes=notes or "",
            )

        async with self.session_factory() as session:
            outbreak = await self._find_nearby(session, disease, crop, latitude, longitude)
            is_new = outbreak is None

            if is_new:
                outbreak = DiseaseOutbreakDB(
                    disease=disease.strip(),
                    crop=crop.strip(),
                    latitude=latitude,
                    longitude=longitude,
                    address=location['address'],
                    region=location['region'],
                    district=location.get('district'),
                    state=location.get('state'),
                    country=location.get('country') or "India",
                    severity=severity.value,
                    status=OutbreakStatus.ACTIVE.value,
                    affected_area=0.0,
                    confirmed_cases=0,
                    cluster_key=cluster_key,
                    reports=[],
                    treatment_recommendations=[],
                    alerts_sent=[],
                )
                outbreak.add_report(new_report())
                session.add(outbreak)

                try:
                    await session.flush()
                except IntegrityError:
                    # Another report seeded the same cell first; join its cluster
                    await session.rollback()
                    outbreak = await self._find_by_cluster_key(session, cluster_key)
                    if outbreak is None:
                        raise
                    is_new = False
                    self.logger.info(f"Cluster {cluster_key} created concurrently, appending to {outbreak.id}")

            if not is_new:
                outbreak.add_report(new_report())

            await session.flush()
            data = outbreak.to_dict()
            outbreak_id = outbreak.id
            alert = self.dispatcher is not None and self.dispatcher.should_alert(outbreak)

        self.logger.info(
            f"{'Created' if is_new else 'Updated'} outbreak {outbreak_id} "
            f"({data['disease']}/{data['crop']}): {data['confirmedCases']} cases, severity {data['severity']}"
        )

        if alert:
            self.dispatcher.dispatch(outbreak_id)

        return {'outbreak': data, 'is_new': is_new, 'alerts_sent': alert}

    async def _find_nearby(self, session, disease: str, crop: str,
                           latitude: float, longitude: float) -> Optional[DiseaseOutbreakDB]:
        delta = self.cluster_radius_degrees
        result = await session.execute(
            select(DiseaseOutbreakDB).where(
                func.lower(DiseaseOutbreakDB.disease) == disease.strip().lower(),
                func.lower(DiseaseOutbreakDB.crop) == crop.strip().lower(),
                DiseaseOutbreakDB.latitude.between(latitude - delta, latitude + delta),
                DiseaseOutbreakDB.longitude.between(longitude - delta, longitude + delta),
                DiseaseOutbreakDB.status != OutbreakStatus.RESOLVED.value,
            ).order_by(DiseaseOutbreakDB.first_reported)
        )
        return result.scalars().first()

    @staticmethod
    async def _find_by_cluster_key(session, cluster_key: str) -> Optional[DiseaseOutbreakDB]:
        result = await session.execute(
            select(DiseaseOutbreakDB).where(DiseaseOutbreakDB.cluster_key == cluster_key)
        )
        return result.scalars().first()

    async def list_outbreaks(self, region: Optional[str] = None, disease: Optional[str] = None,
                             crop: Optional[str] = None, severity: Optional[str] = None,
                             status: str = OutbreakStatus.ACTIVE.value,
                             latitude: Optional[float] = None, longitude: Optional[float] = None,
                             radius_km: float = 50, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        query = select(DiseaseOutbreakDB)

        if status != 'all':
            query = query.where(DiseaseOutbreakDB.status == status)
        if region:
            query = query.where(DiseaseOutbreakDB.region.ilike(f"%{region}%"))
        if disease:
            query = query.where(DiseaseOutbreakDB.disease.ilike(f"%{disease}%"))
        if crop:
            query = query.where(DiseaseOutbreakDB.crop.ilike(f"%{crop}%"))
        if severity:
            query = query.where(DiseaseOutbreakDB.severity == severity)

        if latitude is not None and longitude is not None:
            delta = radius_km / KM_PER_DEGREE
            query = query.where(
                DiseaseOutbreakDB.latitude.between(latitude - delta, latitude + delta),
                DiseaseOutbreakDB.longitude.between(longitude - delta, longitude + delta),
            )

        query = query.order_by(DiseaseOutbreakDB.last_updated.desc()).limit(limit or self.default_list_limit)

        async with self.session_factory() as session:
            result = await session.execute(query)
            return [outbreak.to_dict() for outbreak in result.scalars().all()]

    async def regional_stats(self, region: Optional[str] = None) -> Dict[str, Any]:
        """Per-disease breakdown by region plus a per-region summary of open outbreaks"""
        async with self.session_factory() as session:
            result = await session.execute(
                select(DiseaseOutbreakDB).where(
                    DiseaseOutbreakDB.status != OutbreakStatus.RESOLVED.value
                )
            )
            outbreaks = result.scalars().all()

        by_region = defaultdict(list)
        for outbreak in outbreaks:
            by_region[outbreak.region].append(outbreak)

        if region:
            detailed = self._disease_breakdown(by_region.get(region, []))
        else:
            detailed = {name: self._disease_breakdown(items) for name, items in by_region.items()}

        summary = []
        for name, items in by_region.items():
            summary.append({
                'region': name,
                'totalOutbreaks': len(items),
                'criticalOutbreaks': sum(1 for o in items if o.severity == OutbreakSeverity.CRITICAL.value),
                'affectedFarmers': sum(len(o.reports) for o in items),
                'totalAffectedArea': sum(o.affected_area or 0.0 for o in items),
                'diseases': sorted({o.disease for o in items}),
            })
        summary.sort(key=lambda entry: entry['totalOutbreaks'], reverse=True)

        return {'detailed': detailed, 'summary': summary}

    @staticmethod
    def _disease_breakdown(outbreaks: List[DiseaseOutbreakDB]) -> List[Dict[str, Any]]:
        grouped = defaultdict(list)
        for outbreak in outbreaks:
            grouped[outbreak.disease].append(outbreak)

        breakdown = [
            {
                'disease': disease,
                'count': len(items),
                'totalAffectedArea': sum(o.affected_area or 0.0 for o in items),
                'totalReporters': sum(len(o.reports) for o in items),
                'severities': [o.severity for o in items],
            }
            for disease, items in grouped.items()
        ]
        breakdown.sort(key=lambda entry: entry['count'], reverse=True)
        return breakdown

    async def update_status(self, outbreak_id: str, status: OutbreakStatus,
                            updated_by: Optional[str] = None) -> Dict[str, Any]:
        async with self.session_factory() as session:
            outbreak = await session.get(DiseaseOutbreakDB, outbreak_id)
            if outbreak is None:
                raise OutbreakNotFoundError(f"Outbreak {outbreak_id} not found")

            outbreak.update_status(status, updated_by)
            await session.flush()
            data = outbreak.to_dict()

        self.logger.info(f"Outbreak {outbreak_id} status set to {status.value} by {updated_by}")
        return data

    async def add_treatment(self, outbreak_id: str, treatment: Dict[str, Any],
                            recommended_by: Optional[str] = None) -> Dict[str, Any]:
        async with self.session_factory() as session:
            outbreak = await session.get(DiseaseOutbreakDB, outbreak_id)
            if outbreak is None:
                raise OutbreakNotFoundError(f"Outbreak {outbreak_id} not found")

            outbreak.treatment_recommendations.append(TreatmentRecommendationDB(
                treatment=treatment['treatment'],
                dosage=treatment.get('dosage'),
                frequency=treatment.get('frequency'),
                duration=treatment.get('duration'),
                notes=treatment.get('notes'),
                recommended_by=recommended_by,
                recommended_at=utcnow(),
            ))
            outbreak.last_updated = utcnow()
            await session.flush()
            data = outbreak.to_dict()

        return data

