"""
Advisory API Router
Weather, market prices and online crop diagnosis
"""

import base64
import binascii
import logging
import time
from typing import Dict, Any, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from agriadvisor.api.dependencies import get_current_user_id, get_providers
from agriadvisor.api.error_handling import APIError, NotFoundAPIError, ValidationAPIError, handle_api_errors
from agriadvisor.api.schemas import APIErrorDetail, DiagnoseRequest, DiagnosisFeedbackRequest, ErrorCode
from agriadvisor.core.database import get_db_session
from agriadvisor.core.models import CropDiagnosisDB, isoformat_utc, utcnow
from agriadvisor.core.providers import ProviderError, Providers, elapsed_ms

router = APIRouter()
logger = logging.getLogger(__name__)


def _provider_failure(what: str, error: ProviderError) -> APIError:
    logger.error(f"{what} failed: {error}")
    return APIError(
        message=f"Unable to fetch {what}",
        error_code=ErrorCode.EXTERNAL_SERVICE_ERROR,
        status_code=status.HTTP_502_BAD_GATEWAY
    )


@router.get("/weather/current", response_model=Dict[str, Any])
@handle_api_errors
async def current_weather(
    lat: float = Query(..., ge=-90, le=90),
    lon: float = Query(..., ge=-180, le=180),
    user_id: str = Depends(get_current_user_id),
    providers: Providers = Depends(get_providers)
):
    try:
        weather = await providers.weather.current(lat, lon)
    except ProviderError as e:
        raise _provider_failure("weather data", e)

    return {
        "message": "Weather data retrieved successfully",
        "data": weather,
        "timestamp": isoformat_utc(utcnow())
    }


@router.get("/market/prices", response_model=Dict[str, Any])
@handle_api_errors
async def market_prices(
    crop: Optional[str] = None,
    market: Optional[str] = None,
    state: Optional[str] = None,
    limit: int = Query(50, ge=1, le=500),
    user_id: str = Depends(get_current_user_id),
    providers: Providers = Depends(get_providers)
):
    """Market prices, biggest gainers first"""
    try:
        rows = await providers.market.prices(limit=limit)
    except ProviderError as e:
        raise _provider_failure("market prices", e)

    if crop:
        rows = [row for row in rows if crop.lower() in str(row.get('crop', '')).lower()]
    if market:
        rows = [row for row in rows if market.lower() in str(row.get('market', '')).lower()]
    if state:
        rows = [row for row in rows if str(row.get('state', '')).lower() == state.lower()]

    rows.sort(key=lambda row: row.get('change') or 0, reverse=True)

    return {
        "message": "Market prices retrieved successfully",
        "data": rows[:limit],
        "filters": {"crop": crop, "market": market, "state": state},
        "timestamp": isoformat_utc(utcnow())
    }


@router.post("/crops/diagnose", response_model=Dict[str, Any])
@handle_api_errors
async def diagnose_crop(
    request: DiagnoseRequest,
    user_id: str = Depends(get_current_user_id),
    providers: Providers = Depends(get_providers),
    session: AsyncSession = Depends(get_db_session)
):
    """Classify a crop photo and store the online diagnosis"""
    try:
        image = base64.b64decode(request.image, validate=True)
    except (binascii.Error, ValueError):
        raise ValidationAPIError(
            "Validation failed",
            [APIErrorDetail(field="image", message="Image must be base64 encoded", code="value_error")]
        )

    started = time.monotonic()
    try:
        result = await providers.classifier.classify(image, request.crop)
    except ProviderError as e:
        raise _provider_failure("diagnosis", e)
    processing_time = elapsed_ms(started)

    diagnosis = CropDiagnosisDB.from_result(
        user_id=user_id,
        result=result,
        crop=request.crop,
        location=request.location.model_dump() if request.location else None,
        weather=request.weather,
        created_at=utcnow(),
        is_offline=False,
        processing_time_ms=processing_time,
        model_version=providers.classifier.model_version,
    )
    diagnosis.image = {"size": len(image)}
    session.add(diagnosis)
    await session.flush()

    logger.info(f"Diagnosed {result['disease']} on {request.crop} for user {user_id} in {processing_time}ms")

    return {
        "message": "Image analyzed successfully",
        "diagnosis": result,
        "processingTime": processing_time,
        "diagnosisId": diagnosis.id
    }


@router.post("/crops/feedback/{diagnosis_id}", response_model=Dict[str, Any])
@handle_api_errors
async def diagnosis_feedback(
    diagnosis_id: str,
    request: DiagnosisFeedbackRequest,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_db_session)
):
    """Record whether a diagnosis was right; only the owner may answer"""
    diagnosis = await session.get(CropDiagnosisDB, diagnosis_id)
    if diagnosis is None or diagnosis.user_id != user_id:
        raise NotFoundAPIError("Diagnosis", diagnosis_id)

    diagnosis.add_feedback(request.is_accurate, request.actual_disease, request.comments)
    logger.info(f"Feedback on diagnosis {diagnosis_id} from user {user_id}: accurate={request.is_accurate}")

    return {"message": "Feedback submitted successfully"}
