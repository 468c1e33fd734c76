"""
Pipeline wiring for the trade alert bot.

TradePipeline owns every component of a running bot (dedup store, gateway,
flush scheduler, aggregator, monitor) and ties their lifecycle together.
Several pipelines can coexist in one process since none of them relies on
module-level state.
"""

import logging
from typing import Optional

from tradewatch.aggregator import TradeAggregator
from tradewatch.config import Config
from tradewatch.gateway import PolymarketGateway
from tradewatch.monitor import TradeMonitor
from tradewatch.models import Trader
from tradewatch.notifier import Notifier, build_notifier
from tradewatch.scheduler import FlushScheduler
from tradewatch.storage import DedupStore

# Configure module logger
logger = logging.getLogger(__name__)


class TradePipeline:
    """
    Ingestion and aggregation pipeline for a fixed set of traders.

    Typical use from inside an event loop::

        pipeline = TradePipeline.from_config(traders)
        try:
            await pipeline.run()
        finally:
            await pipeline.shutdown()

    stop() may be called from a signal handler; shutdown() drains buffered
    fills so nothing accepted by the monitor is lost.
    """

    def __init__(
        self,
        traders: list[Trader],
        store: DedupStore,
        gateway: PolymarketGateway,
        notifier: Optional[Notifier],
        scheduler: Optional[FlushScheduler] = None,
        poll_interval_ms: Optional[int] = None,
    ):
        self.traders = traders
        self.store = store
        self.gateway = gateway
        self.scheduler = scheduler or FlushScheduler()
        self.poll_interval_ms = poll_interval_ms or Config.POLL_INTERVAL_MS
        self.aggregator = TradeAggregator(notifier, self.scheduler)
        self.monitor = TradeMonitor(gateway, store, self.aggregator)
        self._shut_down = False

    @classmethod
    def from_config(cls, traders: list[Trader]) -> "TradePipeline":
        """Build a pipeline from Config. Raises sqlite3.Error if the store is unusable."""
        Config.ensure_directories()
        return cls(
            traders=traders,
            store=DedupStore(),
            gateway=PolymarketGateway(),
            notifier=build_notifier(),
        )

    def _ensure_scheduler(self) -> None:
        if not self.scheduler.is_running:
            self.scheduler.start()

    async def run(self) -> None:
        """Poll until stop() is called. Storage errors propagate."""
        self._ensure_scheduler()
        await self.monitor.start(self.traders, self.poll_interval_ms)

    async def run_once(self) -> int:
        """
        Run a single poll cycle.

        Returns:
            Number of new fills submitted
        """
        self._ensure_scheduler()
        return await self.monitor.run_cycle(self.traders)

    def stop(self) -> None:
        self.monitor.stop()

    async def shutdown(self) -> int:
        """
        Stop polling, flush all buffered fills, and release resources.

        Safe to call more than once.

        Returns:
            Number of groups flushed
        """
        if self._shut_down:
            return 0
        self._shut_down = True

        self.monitor.stop()
        logger.info("Flushing pending notifications...")
        drained = await self.aggregator.drain_all()

        if self.scheduler.is_running:
            self.scheduler.stop(wait=False)
        self.gateway.close()

        logger.info("Pipeline shut down")
        return drained
