"""
Connectivity monitor for the offline client
Tracks link reachability and the user's forced-offline switch
"""

import asyncio
import inspect
import logging
from typing import Callable, Optional, Set

import aiohttp


class ReachabilityProbe:
    """Checks whether the server answers its health endpoint"""

    def __init__(self, base_url: str, timeout_seconds: float = 5):
        self.health_url = f"{base_url.rstrip('/')}/health"
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self.logger = logging.getLogger(__name__)

    async def check(self) -> bool:
        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.get(self.health_url) as response:
                    return response.status < 500
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self.logger.debug(f"Reachability probe failed: {e}")
            return False


class ConnectivityMonitor:
    """
    Owns the effective online state of the client process.

    ``effective_online`` is true only when the network is reachable and the
    user has not forced offline mode. Each transition to effective online
    schedules the subscribed callback once; going offline notifies nobody.
    """

    def __init__(self, probe: Optional[ReachabilityProbe] = None, network_reachable: bool = True):
        self.probe = probe
        self.network_reachable = network_reachable
        self.forced_offline = False
        self.logger = logging.getLogger(__name__)

        self._callback: Optional[Callable] = None
        self._tasks: Set[asyncio.Task] = set()
        self._poll_task: Optional[asyncio.Task] = None

    @property
    def effective_online(self) -> bool:
        return self.network_reachable and not self.forced_offline

    def subscribe(self, callback: Callable) -> None:
        """Register the single consumer notified when the client comes online"""
        if self._callback is not None and self._callback is not callback:
            self.logger.warning("Replacing existing connectivity subscriber")
        self._callback = callback

    def set_network_reachable(self, reachable: bool) -> Optional[asyncio.Task]:
        """Apply an OS-level link transition"""
        was_online = self.effective_online
        self.network_reachable = reachable
        return self._transition(was_online, f"network {'up' if reachable else 'down'}")

    async def set_forced_offline(self, forced: bool) -> Optional[asyncio.Task]:
        """Toggle forced-offline mode; leaving it re-checks the real link state"""
        was_online = self.effective_online
        self.forced_offline = forced

        if not forced and self.probe is not None:
            self.network_reachable = await self._probe()

        return self._transition(was_online, "forced offline" if forced else "forced offline cleared")

    def _transition(self, was_online: bool, reason: str) -> Optional[asyncio.Task]:
        now_online = self.effective_online
        if was_online == now_online:
            return None

        self.logger.info(f"Connectivity changed to {'online' if now_online else 'offline'} ({reason})")
        if now_online:
            return self._notify()
        return None

    def _notify(self) -> Optional[asyncio.Task]:
        if self._callback is None:
            return None
        task = asyncio.create_task(self._run_callback(self._callback))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run_callback(self, callback: Callable) -> None:
        try:
            result = callback()
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            self.logger.error(f"Online callback failed: {e}", exc_info=True)

    async def _probe(self) -> bool:
        try:
            return await self.probe.check()
        except Exception as e:
            self.logger.warning(f"Reachability probe raised: {e}")
            return False

    async def refresh(self) -> Optional[asyncio.Task]:
        """Re-probe the link and apply the result"""
        if self.probe is None:
            return None
        return self.set_network_reachable(await self._probe())

    def start_polling(self, interval_seconds: float = 30) -> None:
        if self.probe is None or self._poll_task is not None:
            return
        self._poll_task = asyncio.create_task(self._poll_loop(interval_seconds))
        self.logger.info(f"Connectivity polling started every {interval_seconds}s")

    async def stop_polling(self) -> None:
        if self._poll_task is None:
            return
        self._poll_task.cancel()
        try:
            await self._poll_task
        except asyncio.CancelledError:
            pass
        self._poll_task = None
        self.logger.info("Connectivity polling stopped")

    async def _poll_loop(self, interval_seconds: float) -> None:
        while True:
            await self.refresh()
            await asyncio.sleep(interval_seconds)

    async def wait_for_callbacks(self) -> None:
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        await self.stop_polling()
        await self.wait_for_callbacks()
