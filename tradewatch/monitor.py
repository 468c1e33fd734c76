"""
Trade monitor: the polling and dedup loop.

Each cycle walks the configured traders one after another, asks the dedup
store which of their recent fills are new, enriches the new fills with the
trader's positions in the same market-event, and hands them to the
aggregator. Positions are only fetched for traders with new fills.

A fill is marked processed immediately after it is submitted. A crash in
between can cause one duplicate submission on restart, never a lost fill.
"""

import asyncio
import logging
from enum import Enum
from typing import Optional

from tradewatch.aggregator import TradeAggregator
from tradewatch.config import Config
from tradewatch.gateway import PolymarketGateway
from tradewatch.models import Activity, PositionSnapshot, Trader, TradeEvent
from tradewatch.storage import DedupStore

# Configure module logger
logger = logging.getLogger(__name__)


class MonitorState(Enum):
    STOPPED = "stopped"
    RUNNING = "running"
    STOPPING = "stopping"


def build_trade_event(
    activity: Activity,
    trader: Trader,
    event_positions: list[PositionSnapshot],
    web_url: Optional[str] = None
) -> TradeEvent:
    """
    Build a TradeEvent from an activity record and the trader's positions.

    Args:
        activity: New fill from the activity endpoint
        trader: Trader who made the fill
        event_positions: Trader's positions in the fill's market-event
        web_url: Polymarket site root for links. If None, uses Config.POLYMARKET_WEB_URL

    Returns:
        TradeEvent for a single fill
    """
    web_url = (web_url or Config.POLYMARKET_WEB_URL).rstrip("/")

    return TradeEvent(
        trader_name=trader.name,
        trader_address=trader.address,
        trader_profile_url=f"{web_url}/@{trader.name}",
        side=activity.side,
        shares=activity.size,
        amount=activity.usdc_size,
        price=activity.price,
        market=activity.title,
        market_url=f"{web_url}/event/{activity.event_slug}",
        outcome=activity.outcome,
        condition_id=activity.condition_id,
        transaction_hash=activity.transaction_hash,
        event_slug=activity.event_slug,
        positions=list(event_positions),
    )


class TradeMonitor:
    """
    Polls traders for new fills until stopped.

    State machine: STOPPED -> RUNNING -> STOPPING -> STOPPED. stop() is
    cooperative: a cycle in progress always completes, and only the wait
    before the next cycle is cut short.
    """

    def __init__(
        self,
        gateway: PolymarketGateway,
        store: DedupStore,
        aggregator: TradeAggregator,
        web_url: Optional[str] = None
    ):
        self._gateway = gateway
        self._store = store
        self._aggregator = aggregator
        self._web_url = web_url
        self.state = MonitorState.STOPPED
        self.cycles = 0
        self._stop_event: Optional[asyncio.Event] = None

    async def start(self, traders: list[Trader], poll_interval_ms: int) -> None:
        """
        Run poll cycles until stop() is called.

        Storage errors propagate out of this coroutine; upstream errors are
        absorbed by the gateway.

        Args:
            traders: Traders to poll, in order
            poll_interval_ms: Pause between the end of one cycle and the next

        Raises:
            RuntimeError: If the monitor is not stopped
        """
        if self.state is not MonitorState.STOPPED:
            raise RuntimeError(f"Monitor cannot start while {self.state.value}")

        self.state = MonitorState.RUNNING
        self._stop_event = asyncio.Event()

        logger.info(f"Starting monitor for {len(traders)} trader(s)")
        logger.info(f"Poll interval: {poll_interval_ms}ms")
        logger.info(f"Aggregation window: {self._aggregator.window_seconds} seconds")

        try:
            while self.state is MonitorState.RUNNING:
                await self.run_cycle(traders)

                if self.state is not MonitorState.RUNNING:
                    break

                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=poll_interval_ms / 1000)
                except asyncio.TimeoutError:
                    pass
        finally:
            self.state = MonitorState.STOPPED
            logger.info("Monitor stopped")

    def stop(self) -> None:
        """Request the loop to exit after the current cycle."""
        if self.state is not MonitorState.RUNNING:
            return

        self.state = MonitorState.STOPPING
        if self._stop_event is not None:
            self._stop_event.set()
        logger.info("Monitor stopping...")

    async def run_cycle(self, traders: list[Trader]) -> int:
        """
        Poll every trader once, sequentially.

        Returns:
            Number of new fills submitted in this cycle
        """
        submitted = 0
        for trader in traders:
            submitted += await self.poll_trader(trader)

        self.cycles += 1
        return submitted

    async def poll_trader(self, trader: Trader) -> int:
        """
        Discover and submit a single trader's new fills.

        Returns:
            Number of new fills submitted
        """
        activities = await self._gateway.fetch_activity(trader.address)

        new_activities = [a for a in activities if not self._store.is_processed(a.transaction_hash)]
        if not new_activities:
            return 0

        positions = await self._gateway.fetch_positions(trader.address)

        for activity in new_activities:
            event_positions = [p for p in positions if p.event_slug == activity.event_slug]
            event = build_trade_event(activity, trader, event_positions, self._web_url)

            logger.info(
                f"New fill: {trader.name} {activity.side.value} ${event.amount:.2f} - {activity.title}"
            )

            self._aggregator.submit(event)
            self._store.mark_processed(activity.transaction_hash)

        return len(new_activities)
