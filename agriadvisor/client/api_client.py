"""
Cached read client for advisory data
Serves the last good response from the local cache while offline
"""

import logging
from datetime import timedelta
from typing import Dict, Any, Optional

from agriadvisor.client.connectivity import ConnectivityMonitor
from agriadvisor.client.store import LocalStore, request_signature
from agriadvisor.client.transport import SyncTransport, TransportError


class OfflineUnavailableError(Exception):
    """No network and no fresh enough cached copy"""


class AdvisoryClient:
    """Network-first GETs with a local response cache fallback"""

    def __init__(self, store: LocalStore, transport: SyncTransport, monitor: ConnectivityMonitor,
                 cache_max_age_seconds: int = 6 * 3600):
        self.store = store
        self.transport = transport
        self.monitor = monitor
        self.cache_max_age = timedelta(seconds=cache_max_age_seconds)
        self.logger = logging.getLogger(__name__)

    async def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        key = request_signature('GET', path, params)

        if self.monitor.effective_online:
            try:
                data = await self.transport.request_json('GET', path, params=params)
            except TransportError as e:
                self.logger.warning(f"GET {path} failed, falling back to cache: {e}")
            else:
                await self.store.cache_put(key, data)
                return data

        cached = await self.store.cache_get(key, self.cache_max_age)
        if cached is None:
            raise OfflineUnavailableError(f"{path} is not available offline")

        self.logger.debug(f"Serving {path} from cache")
        return cached

    async def current_weather(self, latitude: float, longitude: float) -> Dict[str, Any]:
        return await self.get('/api/v1/weather/current', {'lat': latitude, 'lon': longitude})

    async def market_prices(self, crop: Optional[str] = None, limit: int = 50) -> Dict[str, Any]:
        params = {'limit': limit}
        if crop:
            params['crop'] = crop
        return await self.get('/api/v1/market/prices', params)

    async def outbreaks(self, region: Optional[str] = None, status: str = 'active') -> Dict[str, Any]:
        params = {'status': status}
        if region:
            params['region'] = region
        return await self.get('/api/v1/outbreaks', params)

    async def evict_stale(self) -> int:
        return await self.store.evict_cache(self.cache_max_age)
