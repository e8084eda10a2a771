"""
Registry Janitor

Background task that periodically evicts expired downloads and deletes their
files, independent of request traffic. Owned by the application lifespan.
"""

import asyncio
import logging
from typing import Optional

from constants import RegistryDefaults
from services.download_registry import DownloadRegistry

logger = logging.getLogger(__name__)


class RegistryJanitor:
    """Runs DownloadRegistry.sweep on a fixed period"""

    def __init__(
        self,
        registry: DownloadRegistry,
        interval_seconds: float = RegistryDefaults.SWEEP_INTERVAL_SECONDS,
    ):
        self.registry = registry
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the sweep loop on the running event loop."""
        if self.running:
            return
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Cancel the sweep loop and wait for it to finish."""
        if self._task is None:
            return
        if not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                logger.info("Registry janitor task cancelled successfully")
        self._task = None

    async def _run(self) -> None:
        logger.info(f"Registry janitor started - sweeping every {self.interval_seconds}s")
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                evicted = self.registry.sweep()
                if evicted:
                    logger.info(f"Janitor sweep evicted {len(evicted)} download(s)")
            except Exception as e:
                logger.error(f"Error during registry sweep: {e}", exc_info=True)
