"""Unit tests for the cached advisory client."""

import pytest

from agriadvisor.client.api_client import AdvisoryClient, OfflineUnavailableError
from agriadvisor.client.connectivity import ConnectivityMonitor
from agriadvisor.client.transport import TransportError


class StubTransport:
    def __init__(self):
        self.responses = {}
        self.requests = []

    async def request_json(self, method, path, **kwargs):
        self.requests.append((method, path, kwargs.get("params")))
        if path not in self.responses:
            raise TransportError(f"{method} {path} returned HTTP 503", status=503)
        return self.responses[path]


@pytest.fixture
def transport():
    return StubTransport()


@pytest.fixture
def monitor():
    return ConnectivityMonitor(network_reachable=True)


@pytest.fixture
def advisory(local_store, transport, monitor):
    return AdvisoryClient(local_store, transport, monitor, cache_max_age_seconds=3600)


class TestAdvisoryClient:
    @pytest.mark.asyncio
    async def test_online_response_is_cached_for_offline_use(self, advisory, transport, monitor):
        transport.responses["/api/v1/weather/current"] = {"data": {"temperature": 31}}

        online = await advisory.current_weather(18.5, 73.8)
        monitor.network_reachable = False
        offline = await advisory.current_weather(18.5, 73.8)

        assert online == offline == {"data": {"temperature": 31}}
        assert len(transport.requests) == 1

    @pytest.mark.asyncio
    async def test_server_error_falls_back_to_cache(self, advisory, transport):
        transport.responses["/api/v1/market/prices"] = {"data": [{"crop": "Onion"}]}
        await advisory.market_prices(crop="Onion")
        del transport.responses["/api/v1/market/prices"]

        assert await advisory.market_prices(crop="Onion") == {"data": [{"crop": "Onion"}]}

    @pytest.mark.asyncio
    async def test_cache_is_keyed_by_query(self, advisory, transport, monitor):
        transport.responses["/api/v1/outbreaks"] = {"data": []}
        await advisory.outbreaks(region="Maharashtra")
        monitor.network_reachable = False

        with pytest.raises(OfflineUnavailableError):
            await advisory.outbreaks(region="Kerala")

    @pytest.mark.asyncio
    async def test_stale_cache_is_not_served(self, local_store, transport, monitor):
        advisory = AdvisoryClient(local_store, transport, monitor, cache_max_age_seconds=-1)
        transport.responses["/api/v1/weather/current"] = {"data": {}}
        await advisory.current_weather(10.0, 76.0)
        monitor.network_reachable = False

        with pytest.raises(OfflineUnavailableError):
            await advisory.current_weather(10.0, 76.0)
        assert await advisory.evict_stale() == 1
