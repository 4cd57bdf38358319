"""
Core data models for AgriAdvisor - SQLAlchemy Integration
Server-side persistence for users, diagnoses, outbreaks and analytics logs
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Any, Optional
import math
import uuid

from sqlalchemy import (
    Column, String, DateTime, Integer, Float, Text, Boolean, JSON, ForeignKey,
    Index, UniqueConstraint
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def utcnow() -> datetime:
    """Naive UTC now, matching the naive DateTime columns"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """Normalize an aware datetime to naive UTC; naive values are assumed UTC"""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def isoformat_utc(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return to_naive_utc(value).isoformat() + 'Z'


class SyncType(str, Enum):
    """Record types accepted by the sync endpoint"""
    DIAGNOSIS = "diagnosis"
    IRRIGATION = "irrigation"
    MARKET = "market"
    USER_DATA = "user_data"


class OutbreakSeverity(str, Enum):
    """Outbreak severity, ordered from least to most severe"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_ORDER.index(self)


_SEVERITY_ORDER = [
    OutbreakSeverity.LOW,
    OutbreakSeverity.MEDIUM,
    OutbreakSeverity.HIGH,
    OutbreakSeverity.CRITICAL,
]


class OutbreakStatus(str, Enum):
    """Outbreak lifecycle status"""
    ACTIVE = "active"
    CONTAINED = "contained"
    RESOLVED = "resolved"


class AlertType(str, Enum):
    """Alert delivery channels recorded against an outbreak"""
    SMS = "sms"
    EMAIL = "email"
    PUSH = "push"
    APP = "app"


# Escalation thresholds: (min confirmed cases, min affected acres, severity)
ESCALATION_THRESHOLDS = [
    (20, 500.0, OutbreakSeverity.CRITICAL),
    (10, 200.0, OutbreakSeverity.HIGH),
    (5, 50.0, OutbreakSeverity.MEDIUM),
]


def derive_severity(confirmed_cases: int, affected_area: float) -> Optional[OutbreakSeverity]:
    """Severity implied by report count and total area, or None below all thresholds"""
    for min_cases, min_area, severity in ESCALATION_THRESHOLDS:
        if confirmed_cases >= min_cases or affected_area >= min_area:
            return severity
    return None


def cluster_cell(latitude: float, longitude: float, cell_degrees: float) -> str:
    return f"{math.floor(latitude / cell_degrees)}:{math.floor(longitude / cell_degrees)}"


def build_cluster_key(disease: str, crop: str, latitude: float, longitude: float,
                      cell_degrees: float = 0.09) -> str:
    """Canonical key for a non-resolved outbreak cluster"""
    return "|".join([
        disease.strip().lower(),
        crop.strip().lower(),
        cluster_cell(latitude, longitude, cell_degrees),
    ])


# SQLAlchemy Models
class UserDB(Base):
    """Farmer profile"""
    __tablename__ = 'users'

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(100), nullable=False)
    email = Column(String(200), nullable=False, unique=True)
    phone = Column(String(30), nullable=True)

    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    address = Column(String(300), nullable=True)

    farm_details = Column(JSON, nullable=True)
    preferences = Column(JSON, nullable=True)

    is_active = Column(Boolean, default=True, nullable=False)
    last_sync = Column(DateTime, nullable=True)
    last_login = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index('idx_users_location', 'latitude', 'longitude'),
    )

    @property
    def location(self) -> Optional[Dict[str, Any]]:
        if self.latitude is None and self.longitude is None and not self.address:
            return None
        return {
            'latitude': self.latitude,
            'longitude': self.longitude,
            'address': self.address,
        }

    def apply_location(self, location: Optional[Dict[str, Any]]) -> None:
        location = location or {}
        self.latitude = location.get('latitude')
        self.longitude = location.get('longitude')
        self.address = location.get('address')

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'phone': self.phone,
            'location': self.location,
            'farmDetails': self.farm_details,
            'preferences': self.preferences,
            'isActive': self.is_active,
            'lastSync': isoformat_utc(self.last_sync),
        }


class CropDiagnosisDB(Base):
    """Disease diagnosis for a crop photo, produced online or synced from offline"""
    __tablename__ = 'crop_diagnoses'

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey('users.id'), nullable=False)

    # Diagnosis result
    disease = Column(String(200), nullable=False, index=True)
    confidence = Column(Float, nullable=True)
    severity = Column(String(10), nullable=True)
    description = Column(Text, nullable=True)
    symptoms = Column(JSON, default=list)
    treatments = Column(JSON, default=list)
    prevention = Column(JSON, default=list)
    organic_treatments = Column(JSON, default=list)

    crop = Column(String(100), nullable=False, default="unknown", index=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    address = Column(String(300), nullable=True)
    weather = Column(JSON, nullable=True)
    image = Column(JSON, nullable=True)

    is_offline = Column(Boolean, default=False, nullable=False)
    processing_time_ms = Column(Integer, nullable=True)
    model_version = Column(String(50), nullable=True)
    feedback = Column(JSON, nullable=True)

    # Event time; for offline records this is the client timestamp
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint('user_id', 'created_at', 'disease', name='uq_diagnosis_dedup'),
        Index('idx_diagnosis_user_created', 'user_id', 'created_at'),
    )

    @classmethod
    def from_result(cls, user_id: str, result: Dict[str, Any], crop: Optional[str],
                    location: Optional[Dict[str, Any]], weather: Optional[Dict[str, Any]],
                    created_at: datetime, is_offline: bool,
                    processing_time_ms: Optional[int] = None,
                    model_version: Optional[str] = None) -> 'CropDiagnosisDB':
        location = location or {}
        return cls(
            id=str(uuid.uuid4()),
            user_id=user_id,
            disease=result['disease'],
            confidence=result.get('confidence'),
            severity=result.get('severity'),
            description=result.get('description'),
            symptoms=result.get('symptoms') or [],
            treatments=result.get('treatments') or [],
            prevention=result.get('prevention') or [],
            organic_treatments=result.get('organicTreatments') or [],
            crop=crop or "unknown",
            latitude=location.get('latitude'),
            longitude=location.get('longitude'),
            address=location.get('address'),
            weather=weather,
            is_offline=is_offline,
            processing_time_ms=processing_time_ms,
            model_version=model_version,
            created_at=to_naive_utc(created_at),
        )

    def add_feedback(self, is_accurate: bool, actual_disease: Optional[str] = None,
                     comments: Optional[str] = None) -> None:
        """Replace any earlier feedback from the farmer"""
        self.feedback = {
            'isAccurate': is_accurate,
            'actualDisease': actual_disease,
            'comments': comments,
            'submittedAt': isoformat_utc(utcnow()),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'user': self.user_id,
            'diagnosis': {
                'disease': self.disease,
                'confidence': self.confidence,
                'severity': self.severity,
                'description': self.description,
                'symptoms': self.symptoms or [],
                'treatments': self.treatments or [],
                'prevention': self.prevention or [],
                'organicTreatments': self.organic_treatments or [],
            },
            'crop': self.crop,
            'location': {
                'latitude': self.latitude,
                'longitude': self.longitude,
                'address': self.address,
            },
            'weather': self.weather,
            'isOffline': self.is_offline,
            'processingTime': self.processing_time_ms,
            'modelVersion': self.model_version,
            'feedback': self.feedback,
            'createdAt': isoformat_utc(self.created_at),
        }


class OutbreakReportDB(Base):
    """Single farmer report attached to an outbreak cluster"""
    __tablename__ = 'outbreak_reports'

    id = Column(Integer, primary_key=True, autoincrement=True)
    outbreak_id = Column(String(36), ForeignKey('disease_outbreaks.id'), nullable=False, index=True)
    user_id = Column(String(36), nullable=False)
    reported_at = Column(DateTime, default=utcnow, nullable=False)
    severity = Column(String(10), nullable=False, default=OutbreakSeverity.MEDIUM.value)
    affected_area = Column(Float, nullable=False, default=0.0)
    images = Column(JSON, default=list)
    notes = Column(Text, default="")

    def to_dict(self) -> Dict[str, Any]:
        return {
            'userId': self.user_id,
            'reportedAt': isoformat_utc(self.reported_at),
            'severity': self.severity,
            'affectedArea': self.affected_area,
            'images': self.images or [],
            'notes': self.notes or "",
        }


class TreatmentRecommendationDB(Base):
    """Treatment recommended against an outbreak"""
    __tablename__ = 'treatment_recommendations'

    id = Column(Integer, primary_key=True, autoincrement=True)
    outbreak_id = Column(String(36), ForeignKey('disease_outbreaks.id'), nullable=False, index=True)
    treatment = Column(Text, nullable=False)
    dosage = Column(String(200), nullable=True)
    frequency = Column(String(200), nullable=True)
    duration = Column(String(200), nullable=True)
    notes = Column(Text, nullable=True)
    recommended_by = Column(String(36), nullable=True)
    recommended_at = Column(DateTime, default=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'treatment': self.treatment,
            'dosage': self.dosage,
            'frequency': self.frequency,
            'duration': self.duration,
            'notes': self.notes,
            'recommendedBy': self.recommended_by,
            'recommendedAt': isoformat_utc(self.recommended_at),
        }


class OutbreakAlertDB(Base):
    """Record of an alert sent to farmers near an outbreak"""
    __tablename__ = 'outbreak_alerts'

    id = Column(Integer, primary_key=True, autoincrement=True)
    outbreak_id = Column(String(36), ForeignKey('disease_outbreaks.id'), nullable=False, index=True)
    alert_type = Column(String(10), nullable=False, default=AlertType.APP.value)
    recipients = Column(Integer, nullable=False, default=0)
    message = Column(Text, nullable=False)
    sent_at = Column(DateTime, default=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'alertType': self.alert_type,
            'recipients': self.recipients,
            'message': self.message,
            'sentAt': isoformat_utc(self.sent_at),
        }


class DiseaseOutbreakDB(Base):
    """Geofenced outbreak cluster keyed by disease, crop and approximate location"""
    __tablename__ = 'disease_outbreaks'

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    disease = Column(String(200), nullable=False)
    crop = Column(String(100), nullable=False)

    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    address = Column(String(300), nullable=False)
    region = Column(String(100), nullable=False, index=True)
    district = Column(String(100), nullable=True)
    state = Column(String(100), nullable=True)
    country = Column(String(100), default="India")

    severity = Column(String(10), nullable=False, default=OutbreakSeverity.MEDIUM.value)
    status = Column(String(10), nullable=False, default=OutbreakStatus.ACTIVE.value)
    affected_area = Column(Float, nullable=False, default=0.0)
    confirmed_cases = Column(Integer, nullable=False, default=0)

    # Set while the cluster is not resolved; unique so concurrent creations collide
    cluster_key = Column(String(300), nullable=True, unique=True)

    prevention_measures = Column(JSON, default=list)
    is_verified = Column(Boolean, default=False)
    verified_by = Column(String(36), nullable=True)
    verified_at = Column(DateTime, nullable=True)

    first_reported = Column(DateTime, default=utcnow)
    last_updated = Column(DateTime, default=utcnow)
    resolved_at = Column(DateTime, nullable=True)
    resolved_by = Column(String(36), nullable=True)
    created_at = Column(DateTime, default=utcnow)

    reports = relationship(
        OutbreakReportDB, lazy="selectin", cascade="all, delete-orphan",
        order_by=OutbreakReportDB.id
    )
    treatment_recommendations = relationship(
        TreatmentRecommendationDB, lazy="selectin", cascade="all, delete-orphan",
        order_by=TreatmentRecommendationDB.id
    )
    alerts_sent = relationship(
        OutbreakAlertDB, lazy="selectin", cascade="all, delete-orphan",
        order_by=OutbreakAlertDB.id
    )

    __table_args__ = (
        Index('idx_outbreak_location', 'latitude', 'longitude'),
        Index('idx_outbreak_disease_crop', 'disease', 'crop'),
        Index('idx_outbreak_region_status', 'region', 'status'),
    )

    @property
    def severity_level(self) -> OutbreakSeverity:
        return OutbreakSeverity(self.severity)

    def add_report(self, report: OutbreakReportDB) -> None:
        """Append a report and re-derive the aggregate fields"""
        self.reports.append(report)
        self.confirmed_cases = len(self.reports)
        self.affected_area = (self.affected_area or 0.0) + (report.affected_area or 0.0)
        self.last_updated = utcnow()
        self.escalate_severity()

    def escalate_severity(self) -> None:
        """Raise severity to the threshold-implied level; never lowers it"""
        derived = derive_severity(self.confirmed_cases, self.affected_area)
        if derived is not None and derived.rank > self.severity_level.rank:
            self.severity = derived.value

    def update_status(self, status: OutbreakStatus, updated_by: Optional[str] = None) -> None:
        self.status = status.value
        self.last_updated = utcnow()

        if status == OutbreakStatus.RESOLVED:
            self.resolved_at = utcnow()
            self.resolved_by = updated_by
            # Frees the cell for a new cluster
            self.cluster_key = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'disease': self.disease,
            'crop': self.crop,
            'location': {
                'latitude': self.latitude,
                'longitude': self.longitude,
                'address': self.address,
                'region': self.region,
                'district': self.district,
                'state': self.state,
                'country': self.country,
            },
            'reportedBy': [report.to_dict() for report in self.reports],
            'severity': self.severity,
            'status': self.status,
            'affectedArea': self.affected_area,
            'confirmedCases': self.confirmed_cases,
            'treatmentRecommendations': [t.to_dict() for t in self.treatment_recommendations],
            'preventionMeasures': self.prevention_measures or [],
            'alertsSent': [a.to_dict() for a in self.alerts_sent],
            'isVerified': self.is_verified,
            'firstReported': isoformat_utc(self.first_reported),
            'lastUpdated': isoformat_utc(self.last_updated),
            'resolvedAt': isoformat_utc(self.resolved_at),
        }


class AnalyticsLogDB(Base):
    """Append-only analytics entries for irrigation and market sync records"""
    __tablename__ = 'analytics_log'

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), nullable=False, index=True)
    record_type = Column(String(20), nullable=False, index=True)
    event_time = Column(DateTime, nullable=False)
    data = Column(JSON, default=dict)
    created_at = Column(DateTime, default=utcnow)
