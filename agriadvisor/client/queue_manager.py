"""
Sync queue manager for the offline client
Persists locally generated records and replays them to the server when online
"""

import asyncio
import logging
from datetime import timedelta
from typing import Dict, Any, Optional, Set

from agriadvisor.client.connectivity import ConnectivityMonitor
from agriadvisor.client.store import LocalStore, OfflineRecord, SyncState
from agriadvisor.client.transport import SyncTransport, TransportError
from agriadvisor.core.models import SyncType, utcnow


class SyncQueueManager:
    """
    Owns the lifecycle of offline records.

    Records are written before any delivery is attempted, so nothing is lost
    if the process stops mid-flight. A record only leaves the queue once the
    server answered 2xx; every other outcome leaves it queued for the next
    drain. Outcomes are observable only through the store.
    """

    def __init__(self, store: LocalStore, transport: SyncTransport, monitor: ConnectivityMonitor,
                 max_concurrent_deliveries: int = 10, failure_threshold: int = 5,
                 retention_days: int = 7):
        self.store = store
        self.transport = transport
        self.monitor = monitor
        self.max_concurrent_deliveries = max_concurrent_deliveries
        self.failure_threshold = failure_threshold
        self.retention = timedelta(days=retention_days)
        self.logger = logging.getLogger(__name__)

        self._tasks: Set[asyncio.Task] = set()
        self._in_flight: Set[str] = set()

        self.monitor.subscribe(self.drain)

    async def enqueue(self, record_type: SyncType, payload: Dict[str, Any]) -> OfflineRecord:
        """Persist a pending record; start delivering it right away when online"""
        record = await self.store.add_record(record_type, payload)
        self.logger.info(f"Queued {record_type.value} record {record.id}")

        if self.monitor.effective_online:
            task = asyncio.create_task(self._deliver_in_background(record))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

        return record

    async def drain(self) -> None:
        """Deliver every queued record, oldest first, with bounded concurrency"""
        if not self.monitor.effective_online:
            self.logger.debug("Skipping drain while offline")
            return

        records = await self.store.pending_records()
        if not records:
            return

        self.logger.info(f"Draining {len(records)} queued records")
        semaphore = asyncio.Semaphore(self.max_concurrent_deliveries)

        async def bounded(record: OfflineRecord) -> bool:
            async with semaphore:
                try:
                    return await self._deliver(record)
                except Exception as e:
                    self.logger.error(f"Delivery of {record.id} failed: {e}", exc_info=True)
                    return False

        outcomes = await asyncio.gather(*(bounded(record) for record in records))
        delivered = sum(1 for outcome in outcomes if outcome)
        self.logger.info(f"Drain finished: {delivered}/{len(records)} delivered")

    async def _deliver_in_background(self, record: OfflineRecord) -> None:
        try:
            await self._deliver(record)
        except Exception as e:
            self.logger.error(f"Background delivery of {record.id} failed: {e}", exc_info=True)

    async def _deliver(self, record: OfflineRecord) -> bool:
        if record.id in self._in_flight:
            return False
        self._in_flight.add(record.id)

        try:
            if record.sync_state == SyncState.FAILED:
                await self.store.mark_retrying(record.id)

            try:
                response = await self.transport.send(record)
            except TransportError as e:
                state = await self.store.mark_attempt_failed(record.id, str(e), self.failure_threshold)
                self.logger.warning(f"Delivery of {record.id} failed ({state.value if state else 'gone'}): {e}")
                return False

            await self.store.mark_synced(record.id)
            result = response.get('result') if isinstance(response, dict) else None
            action = result.get('action') if isinstance(result, dict) else None
            self.logger.info(f"Synced {record.id}" + (f" ({action})" if action else ""))
            return True
        finally:
            self._in_flight.discard(record.id)

    async def prune(self, retention: Optional[timedelta] = None) -> int:
        """Delete synced records older than the retention window"""
        cutoff = utcnow() - (retention if retention is not None else self.retention)
        deleted = await self.store.delete_synced_before(cutoff)
        if deleted:
            self.logger.info(f"Pruned {deleted} synced records older than {cutoff.isoformat()}")
        return deleted

    async def wait_for_pending(self) -> None:
        """Wait for background deliveries started by enqueue"""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        await self.wait_for_pending()
        await self.monitor.wait_for_callbacks()
