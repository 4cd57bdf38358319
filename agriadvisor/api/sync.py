"""
Sync API Router
Receives offline records replayed by clients
"""

import logging
from datetime import datetime
from typing import Dict, Any, Optional

from fastapi import APIRouter, Depends, Query

from agriadvisor.api.dependencies import get_current_user_id, get_sync_service
from agriadvisor.api.error_handling import APIError, ValidationAPIError, handle_api_errors
from agriadvisor.api.schemas import APIErrorDetail, ErrorCode, SyncBatchRequest, SyncItemRequest
from agriadvisor.core.models import isoformat_utc, utcnow
from agriadvisor.core.reconcilers import ReconciliationError
from agriadvisor.core.sync_service import InvalidClearWindowError, SyncItem, SyncService

router = APIRouter()
logger = logging.getLogger(__name__)


def _to_item(request: SyncItemRequest) -> SyncItem:
    return SyncItem(request.type, request.data, request.timestamp)


@router.post("", response_model=Dict[str, Any])
@handle_api_errors
async def sync_record(
    sync_request: SyncItemRequest,
    user_id: str = Depends(get_current_user_id),
    sync_service: SyncService = Depends(get_sync_service)
):
    """Reconcile a single offline record"""
    try:
        result = await sync_service.sync_item(user_id, _to_item(sync_request))
    except ReconciliationError as e:
        logger.error(f"Sync of {sync_request.type.value} failed for user {user_id}: {e}", exc_info=True)
        raise APIError(message=f"Unable to sync data: {e}", error_code=ErrorCode.SYNC_FAILED)

    return {
        "message": "Data synced successfully",
        "type": sync_request.type.value,
        "result": result,
        "timestamp": isoformat_utc(utcnow())
    }


@router.post("/batch", response_model=Dict[str, Any])
@handle_api_errors
async def sync_batch(
    batch_request: SyncBatchRequest,
    user_id: str = Depends(get_current_user_id),
    sync_service: SyncService = Depends(get_sync_service)
):
    """Reconcile many records; failures are reported per item"""
    logger.info(f"Batch sync of {len(batch_request.items)} items for user {user_id}")

    outcome = await sync_service.sync_batch(user_id, [_to_item(item) for item in batch_request.items])

    return {
        "message": "Batch sync completed",
        "summary": outcome["summary"],
        "results": outcome["results"],
        "timestamp": isoformat_utc(utcnow())
    }


@router.get("/status", response_model=Dict[str, Any])
@handle_api_errors
async def get_sync_status(
    since: Optional[datetime] = Query(None, description="ISO-8601 lower bound, default 7 days ago"),
    user_id: str = Depends(get_current_user_id),
    sync_service: SyncService = Depends(get_sync_service)
):
    """Last sync time and recently received offline items"""
    status = await sync_service.get_status(user_id, since)
    return {"message": "Sync status retrieved successfully", **status}


@router.delete("/clear", response_model=Dict[str, Any])
@handle_api_errors
async def clear_offline_data(
    older_than: Optional[str] = Query(None, alias="olderThan"),
    user_id: str = Depends(get_current_user_id),
    sync_service: SyncService = Depends(get_sync_service)
):
    """Delete the caller's offline diagnoses older than 7d, 30d or 90d"""
    try:
        cleared = await sync_service.clear_offline_data(user_id, older_than)
    except InvalidClearWindowError as e:
        raise ValidationAPIError(
            "Validation failed",
            [APIErrorDetail(field="olderThan", message=str(e), code="value_error")]
        )

    return {"message": "Old data cleared successfully", **cleared}
