"""
API Dependencies for FastAPI Router Modules
Shared dependencies for authentication and service access
"""

import logging
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from agriadvisor.api.error_handling import UnauthorizedAPIError
from agriadvisor.api.schemas import ErrorCode
from agriadvisor.core.outbreaks import OutbreakService
from agriadvisor.core.providers import Providers
from agriadvisor.core.security import InvalidTokenError, TokenService
from agriadvisor.core.sync_service import SyncService

# Initialize security scheme
security = HTTPBearer(auto_error=False)
logger = logging.getLogger(__name__)

# Global instances (set during app initialization)
_token_service: Optional[TokenService] = None
_sync_service: Optional[SyncService] = None
_outbreak_service: Optional[OutbreakService] = None
_providers: Optional[Providers] = None


def init_api_dependencies(token_service: TokenService, sync_service: SyncService,
                          outbreak_service: OutbreakService, providers: Providers):
    """Initialize API dependencies with configured services"""
    global _token_service, _sync_service, _outbreak_service, _providers
    _token_service = token_service
    _sync_service = sync_service
    _outbreak_service = outbreak_service
    _providers = providers


def _require(instance, name: str):
    if instance is None:
        logger.error(f"{name} not initialized in dependencies - please check init_api_dependencies")
        raise RuntimeError(f"{name} not available - please check initialization")
    return instance


async def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> str:
    """FastAPI dependency resolving the bearer token to a user id"""
    token_service = _require(_token_service, "Token service")

    if not credentials:
        raise UnauthorizedAPIError("Invalid or missing bearer token")

    try:
        return token_service.verify_token(credentials.credentials)
    except InvalidTokenError as e:
        raise UnauthorizedAPIError(str(e), error_code=ErrorCode.INVALID_TOKEN)


async def get_sync_service() -> SyncService:
    return _require(_sync_service, "Sync service")


async def get_outbreak_service() -> OutbreakService:
    return _require(_outbreak_service, "Outbreak service")


async def get_providers() -> Providers:
    return _require(_providers, "Providers")
