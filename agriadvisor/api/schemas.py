"""
Pydantic schemas for API request/response models
"""

from datetime import datetime
from enum import Enum
from typing import Optional, List, Dict, Any

from pydantic import BaseModel, ConfigDict, Field

from agriadvisor.core.models import OutbreakSeverity, OutbreakStatus, SyncType, utcnow


class ErrorCode(str, Enum):
    """Standardized error codes for API responses"""

    # Authentication & Authorization
    UNAUTHORIZED = "UNAUTHORIZED"
    INVALID_TOKEN = "INVALID_TOKEN"

    # Validation Errors
    VALIDATION_ERROR = "VALIDATION_ERROR"

    # Resource Errors
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"

    # Business Logic Errors
    SYNC_FAILED = "SYNC_FAILED"
    OUTBREAK_REPORT_FAILED = "OUTBREAK_REPORT_FAILED"

    # System Errors
    INTERNAL_ERROR = "INTERNAL_ERROR"
    EXTERNAL_SERVICE_ERROR = "EXTERNAL_SERVICE_ERROR"


class APIErrorDetail(BaseModel):
    """Detailed error information"""
    field: Optional[str] = Field(None, description="Field that caused the error")
    message: str = Field(..., description="Human-readable error message")
    code: Optional[str] = Field(None, description="Machine-readable error code")


class APIErrorResponse(BaseModel):
    """Standardized error response schema"""
    success: bool = Field(False, description="Always false for error responses")
    error: str = Field(..., description="Main error message")
    error_code: ErrorCode = Field(..., description="Standardized error code")
    details: Optional[List[APIErrorDetail]] = Field(None, description="Detailed error information")
    timestamp: datetime = Field(default_factory=utcnow, description="Error timestamp")
    request_id: Optional[str] = Field(None, description="Request tracking ID")


# ==================== SYNC ====================

class SyncItemRequest(BaseModel):
    type: SyncType
    data: Dict[str, Any]
    timestamp: datetime


class SyncBatchRequest(BaseModel):
    items: List[SyncItemRequest]


# ==================== OUTBREAKS ====================

class OutbreakLocation(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    address: str = Field(..., min_length=1)
    region: str = Field(..., min_length=1)
    district: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None


class OutbreakReportRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, populate_by_name=True)

    disease: str = Field(..., min_length=1, max_length=200)
    crop: str = Field(..., min_length=1, max_length=100)
    location: OutbreakLocation
    severity: OutbreakSeverity
    affected_area: float = Field(0.0, ge=0, alias='affectedArea')
    images: List[str] = Field(default_factory=list)
    notes: str = ""


class OutbreakStatusUpdate(BaseModel):
    status: OutbreakStatus


class TreatmentRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    treatment: str = Field(..., min_length=1)
    dosage: Optional[str] = None
    frequency: Optional[str] = None
    duration: Optional[str] = None
    notes: Optional[str] = None


# ==================== ADVISORY ====================

class DiagnosisLocation(BaseModel):
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    address: Optional[str] = None


class DiagnoseRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    crop: str = Field(..., min_length=1, max_length=100)
    image: str = Field(..., min_length=1, description="Base64-encoded image")
    location: Optional[DiagnosisLocation] = None
    weather: Optional[Dict[str, Any]] = None


class DiagnosisFeedbackRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, populate_by_name=True)

    is_accurate: bool = Field(..., alias="isAccurate")
    actual_disease: Optional[str] = Field(None, alias="actualDisease", max_length=200)
    comments: Optional[str] = Field(None, max_length=500)
