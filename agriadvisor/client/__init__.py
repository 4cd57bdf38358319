"""
AgriAdvisor offline client
Local store, connectivity monitor and sync queue
"""

from typing import Any, Dict

from .api_client import AdvisoryClient, OfflineUnavailableError
from .connectivity import ConnectivityMonitor, ReachabilityProbe
from .queue_manager import SyncQueueManager
from .store import LocalStore, OfflineRecord, SyncState
from .transport import SyncTransport, TransportError


class OfflineClient:
    """Wires the client components from the ``client`` configuration section"""

    def __init__(self, config: Dict[str, Any]):
        client_config = config.get('client', {})
        base_url = client_config.get('base_url', 'http://localhost:8080')

        self.store = LocalStore(client_config.get('store_url', 'sqlite+aiosqlite:///./data/offline.db'))
        self.transport = SyncTransport(
            base_url,
            client_config.get('auth_token', ''),
            client_config.get('request_timeout_seconds', 10)
        )
        self.monitor = ConnectivityMonitor(probe=ReachabilityProbe(base_url))
        self.queue = SyncQueueManager(
            self.store,
            self.transport,
            self.monitor,
            max_concurrent_deliveries=client_config.get('max_concurrent_deliveries', 10),
            failure_threshold=client_config.get('failure_threshold', 5),
            retention_days=client_config.get('retention_days', 7)
        )
        self.api = AdvisoryClient(
            self.store,
            self.transport,
            self.monitor,
            cache_max_age_seconds=client_config.get('cache_max_age_seconds', 6 * 3600)
        )
        self.probe_interval = client_config.get('probe_interval_seconds', 30)

    async def start(self) -> None:
        await self.store.initialize()
        self.monitor.start_polling(self.probe_interval)

    async def stop(self) -> None:
        await self.monitor.stop_polling()
        await self.queue.close()
        await self.transport.close()
        await self.store.close()


__all__ = [
    'AdvisoryClient',
    'ConnectivityMonitor',
    'LocalStore',
    'OfflineClient',
    'OfflineRecord',
    'OfflineUnavailableError',
    'ReachabilityProbe',
    'SyncQueueManager',
    'SyncState',
    'SyncTransport',
    'TransportError'
]
