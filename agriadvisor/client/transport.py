"""
HTTP delivery of offline records to the server sync endpoint
"""

import asyncio
import logging
from typing import Dict, Any, List, Optional

import aiohttp

from agriadvisor.client.store import OfflineRecord


class TransportError(Exception):
    """Delivery did not reach a 2xx response; always retryable"""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class SyncTransport:
    """aiohttp client for the sync API"""

    def __init__(self, base_url: str, auth_token: str = "", timeout_seconds: float = 10):
        self.base_url = base_url.rstrip('/')
        self.auth_token = auth_token
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self.logger = logging.getLogger(__name__)
        self._session: Optional[aiohttp.ClientSession] = None

    def _headers(self) -> Dict[str, str]:
        headers = {'Content-Type': 'application/json'}
        if self.auth_token:
            headers['Authorization'] = f'Bearer {self.auth_token}'
        return headers

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout, headers=self._headers())
        return self._session

    async def request_json(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        """Issue a request and return the decoded JSON body of a 2xx response"""
        session = await self._get_session()
        url = f"{self.base_url}{path}"
        try:
            async with session.request(method, url, **kwargs) as response:
                if not 200 <= response.status < 300:
                    body = await response.text()
                    raise TransportError(f"{method} {path} returned HTTP {response.status}: {body[:200]}",
                                         status=response.status)
                try:
                    return await response.json(content_type=None)
                except ValueError:
                    # Delivered; the body just carries no outcome
                    self.logger.warning(f"{method} {path} returned HTTP {response.status} with a non-JSON body")
                    return {}
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportError(f"{method} {path} failed: {e!r}") from e

    async def send(self, record: OfflineRecord) -> Dict[str, Any]:
        return await self.request_json('POST', '/api/v1/sync', json=record.to_sync_body())

    async def send_batch(self, records: List[OfflineRecord]) -> Dict[str, Any]:
        body = {'items': [record.to_sync_body() for record in records]}
        return await self.request_json('POST', '/api/v1/sync/batch', json=body)

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
