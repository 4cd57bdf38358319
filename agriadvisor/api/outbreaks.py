"""
Outbreak API Router
Farmer outbreak reports, listing, statistics and lifecycle
"""

import logging
from typing import Dict, Any, Optional

from fastapi import APIRouter, Depends, Query, status

from agriadvisor.api.dependencies import get_current_user_id, get_outbreak_service
from agriadvisor.api.error_handling import NotFoundAPIError, handle_api_errors
from agriadvisor.api.schemas import OutbreakReportRequest, OutbreakStatusUpdate, TreatmentRequest
from agriadvisor.core.models import OutbreakSeverity, isoformat_utc, utcnow
from agriadvisor.core.outbreaks import OutbreakNotFoundError, OutbreakService

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("", response_model=Dict[str, Any])
@handle_api_errors
async def list_outbreaks(
    region: Optional[str] = None,
    disease: Optional[str] = None,
    crop: Optional[str] = None,
    severity: Optional[OutbreakSeverity] = None,
    status_filter: str = Query("active", alias="status", pattern="^(active|contained|resolved|all)$"),
    lat: Optional[float] = Query(None, ge=-90, le=90),
    lon: Optional[float] = Query(None, ge=-180, le=180),
    radius: float = Query(50, gt=0, description="Search radius in km"),
    limit: Optional[int] = Query(None, ge=1, le=500),
    user_id: str = Depends(get_current_user_id),
    outbreak_service: OutbreakService = Depends(get_outbreak_service)
):
    """List outbreaks, newest activity first"""
    outbreaks = await outbreak_service.list_outbreaks(
        region=region,
        disease=disease,
        crop=crop,
        severity=severity.value if severity else None,
        status=status_filter,
        latitude=lat,
        longitude=lon,
        radius_km=radius,
        limit=limit
    )

    return {
        "message": "Outbreaks retrieved successfully",
        "data": outbreaks,
        "count": len(outbreaks),
        "filters": {
            "region": region,
            "disease": disease,
            "crop": crop,
            "severity": severity.value if severity else None,
            "status": status_filter
        },
        "timestamp": isoformat_utc(utcnow())
    }


@router.get("/regional-stats", response_model=Dict[str, Any])
@handle_api_errors
async def regional_stats(
    region: Optional[str] = None,
    user_id: str = Depends(get_current_user_id),
    outbreak_service: OutbreakService = Depends(get_outbreak_service)
):
    stats = await outbreak_service.regional_stats(region)
    return {
        "message": "Regional statistics retrieved successfully",
        "data": stats,
        "timestamp": isoformat_utc(utcnow())
    }


@router.post("/report", response_model=Dict[str, Any], status_code=status.HTTP_201_CREATED)
@handle_api_errors
async def report_outbreak(
    report: OutbreakReportRequest,
    user_id: str = Depends(get_current_user_id),
    outbreak_service: OutbreakService = Depends(get_outbreak_service)
):
    """Report an outbreak; nearby reports of the same disease and crop are merged"""
    outcome = await outbreak_service.report_outbreak(
        user_id=user_id,
        disease=report.disease,
        crop=report.crop,
        location=report.location.model_dump(),
        severity=report.severity,
        affected_area=report.affected_area,
        images=report.images,
        notes=report.notes
    )

    is_new = outcome["is_new"]
    return {
        "message": "New outbreak reported successfully" if is_new else "Report added to existing outbreak",
        "data": outcome["outbreak"],
        "isNewOutbreak": is_new,
        "alertsSent": outcome["alerts_sent"]
    }


@router.put("/{outbreak_id}/status", response_model=Dict[str, Any])
@handle_api_errors
async def update_outbreak_status(
    outbreak_id: str,
    update: OutbreakStatusUpdate,
    user_id: str = Depends(get_current_user_id),
    outbreak_service: OutbreakService = Depends(get_outbreak_service)
):
    try:
        outbreak = await outbreak_service.update_status(outbreak_id, update.status, user_id)
    except OutbreakNotFoundError:
        raise NotFoundAPIError("Outbreak", outbreak_id)

    return {"message": "Outbreak status updated successfully", "data": outbreak}


@router.post("/{outbreak_id}/treatment", response_model=Dict[str, Any], status_code=status.HTTP_201_CREATED)
@handle_api_errors
async def add_treatment(
    outbreak_id: str,
    treatment: TreatmentRequest,
    user_id: str = Depends(get_current_user_id),
    outbreak_service: OutbreakService = Depends(get_outbreak_service)
):
    try:
        outbreak = await outbreak_service.add_treatment(outbreak_id, treatment.model_dump(), user_id)
    except OutbreakNotFoundError:
        raise NotFoundAPIError("Outbreak", outbreak_id)

    return {"message": "Treatment recommendation added successfully", "data": outbreak}
