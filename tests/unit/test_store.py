"""Unit tests for the client local store."""

import re
from datetime import timedelta

import pytest

from agriadvisor.client.store import SyncState, generate_record_id, request_signature
from agriadvisor.core.models import SyncType, utcnow


class TestRecordIds:
    def test_id_format(self):
        record_id = generate_record_id(SyncType.USER_DATA)
        assert re.fullmatch(r"user_data_\d{13}_[0-9a-z]{9}", record_id)

    def test_ids_are_unique(self):
        ids = {generate_record_id(SyncType.DIAGNOSIS) for _ in range(200)}
        assert len(ids) == 200


class TestRequestSignature:
    def test_query_order_does_not_matter(self):
        assert request_signature("get", "/api/v1/outbreaks", {"region": "MH", "status": "active"}) == \
            request_signature("GET", "/api/v1/outbreaks", {"status": "active", "region": "MH"})

    def test_path_and_method_matter(self):
        assert request_signature("GET", "/a") != request_signature("GET", "/b")
        assert request_signature("GET", "/a") != request_signature("POST", "/a")


class TestRecordLifecycle:
    @pytest.mark.asyncio
    async def test_new_record_is_pending_and_queued(self, local_store):
        record = await local_store.add_record(SyncType.DIAGNOSIS, {"crop": "Rice"})

        assert record.sync_state == SyncState.PENDING
        assert [r.id for r in await local_store.pending_records()] == [record.id]
        assert await local_store.pending_count() == 1

    @pytest.mark.asyncio
    async def test_queue_is_oldest_first(self, local_store):
        now = utcnow()
        newer = await local_store.add_record(SyncType.MARKET, {}, created_at=now)
        older = await local_store.add_record(SyncType.MARKET, {}, created_at=now - timedelta(minutes=5))

        assert [r.id for r in await local_store.pending_records()] == [older.id, newer.id]

    @pytest.mark.asyncio
    async def test_mark_synced_is_idempotent(self, local_store):
        record = await local_store.add_record(SyncType.IRRIGATION, {})

        assert await local_store.mark_synced(record.id) is True
        first = await local_store.get_record(record.id)
        assert await local_store.mark_synced(record.id) is True
        second = await local_store.get_record(record.id)

        assert second.sync_state == SyncState.SYNCED
        assert second.synced_at == first.synced_at
        assert await local_store.pending_count() == 0

    @pytest.mark.asyncio
    async def test_failures_flag_record_at_threshold(self, local_store):
        record = await local_store.add_record(SyncType.DIAGNOSIS, {})

        states = [await local_store.mark_attempt_failed(record.id, "HTTP 503", failure_threshold=3)
                  for _ in range(3)]

        assert states == [SyncState.PENDING, SyncState.PENDING, SyncState.FAILED]
        stored = await local_store.get_record(record.id)
        assert stored.attempts == 3
        assert stored.last_error == "HTTP 503"
        assert [r.id for r in await local_store.failed_records()] == [record.id]
        # failed records stay in the queue
        assert await local_store.pending_count() == 1

    @pytest.mark.asyncio
    async def test_retrying_moves_failed_back_to_pending(self, local_store):
        record = await local_store.add_record(SyncType.DIAGNOSIS, {})
        await local_store.mark_attempt_failed(record.id, "timeout", failure_threshold=1)

        await local_store.mark_retrying(record.id)

        assert (await local_store.get_record(record.id)).sync_state == SyncState.PENDING

    @pytest.mark.asyncio
    async def test_synced_record_is_never_demoted(self, local_store):
        record = await local_store.add_record(SyncType.DIAGNOSIS, {})
        await local_store.mark_synced(record.id)

        state = await local_store.mark_attempt_failed(record.id, "late failure", failure_threshold=1)
        await local_store.mark_retrying(record.id)

        assert state == SyncState.SYNCED
        assert (await local_store.get_record(record.id)).sync_state == SyncState.SYNCED

    @pytest.mark.asyncio
    async def test_delete_synced_before_keeps_queued_records(self, local_store):
        old = utcnow() - timedelta(days=10)
        old_synced = await local_store.add_record(SyncType.MARKET, {}, created_at=old)
        old_pending = await local_store.add_record(SyncType.MARKET, {}, created_at=old)
        old_failed = await local_store.add_record(SyncType.MARKET, {}, created_at=old)
        fresh_synced = await local_store.add_record(SyncType.MARKET, {})
        await local_store.mark_synced(old_synced.id)
        await local_store.mark_synced(fresh_synced.id)
        await local_store.mark_attempt_failed(old_failed.id, "down", failure_threshold=1)

        deleted = await local_store.delete_synced_before(utcnow() - timedelta(days=7))

        assert deleted == 1
        assert await local_store.get_record(old_synced.id) is None
        assert await local_store.get_record(old_pending.id) is not None
        assert await local_store.get_record(old_failed.id) is not None
        assert await local_store.get_record(fresh_synced.id) is not None

    @pytest.mark.asyncio
    async def test_records_by_type(self, local_store):
        await local_store.add_record(SyncType.MARKET, {})
        await local_store.add_record(SyncType.DIAGNOSIS, {})

        records = await local_store.get_records_by_type(SyncType.MARKET)

        assert [r.type for r in records] == [SyncType.MARKET]


class TestResponseCache:
    @pytest.mark.asyncio
    async def test_put_get_and_overwrite(self, local_store):
        await local_store.cache_put("k", {"v": 1})
        await local_store.cache_put("k", {"v": 2})

        assert await local_store.cache_get("k") == {"v": 2}
        assert await local_store.cache_get("missing") is None

    @pytest.mark.asyncio
    async def test_max_age_and_eviction(self, local_store):
        await local_store.cache_put("k", {"v": 1})

        assert await local_store.cache_get("k", max_age=timedelta(hours=1)) == {"v": 1}
        assert await local_store.cache_get("k", max_age=timedelta(seconds=-1)) is None

        assert await local_store.evict_cache(timedelta(hours=1)) == 0
        assert await local_store.evict_cache(timedelta(seconds=-1)) == 1
        assert await local_store.cache_get("k") is None
