"""
Trade aggregator for coalescing partial fills into single alerts.

A large order is often filled in many small pieces within a few seconds.
The aggregator buffers fills that share a trader, condition and side, and
reports them as one consolidated alert once the aggregation window closes.

The window is anchored to the first fill of a group and is never extended
by later fills, so every fill is reported at most one window after the
burst it belongs to began. A fill arriving after its group was flushed
starts a new group.
"""

import asyncio
import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Optional

from tradewatch.config import Config
from tradewatch.models import AggregationKey, BufferedGroup, TradeEvent
from tradewatch.notifier import Notifier
from tradewatch.scheduler import TimerScheduler
from tradewatch.utils import retry_async

# Configure module logger
logger = logging.getLogger(__name__)


def aggregate_fills(events: list[TradeEvent]) -> TradeEvent:
    """
    Reduce a group of fills into one consolidated event.

    Shares and amounts are summed and the price is the amount-weighted
    average. Positions and descriptive fields come from the most recently
    appended fill, which carries the freshest position snapshot.

    Args:
        events: Fills in append order

    Returns:
        Consolidated TradeEvent with fill_count set

    Raises:
        ValueError: If events is empty
    """
    if not events:
        raise ValueError("Cannot aggregate an empty group")

    total_shares = sum(e.shares for e in events)
    total_amount = sum(e.amount for e in events)
    weighted_price = total_amount / total_shares if total_shares else 0.0

    latest = events[-1]

    return replace(
        latest,
        shares=total_shares,
        amount=total_amount,
        price=weighted_price,
        positions=list(latest.positions),
        fill_count=len(events),
    )


class TradeAggregator:
    """
    Buffers fills per AggregationKey and flushes each group to a notifier.

    All methods run on the event loop thread. submit() contains no
    suspension point, and flush() removes its group before its first await,
    so a group is never observed half-appended.

    Timer-driven flushes run as tasks the aggregator owns, so drain_all() can
    wait for deliveries already in progress and stopping the timer scheduler
    never cancels one.
    """

    def __init__(
        self,
        notifier: Optional[Notifier],
        timers: TimerScheduler,
        window_seconds: Optional[float] = None,
        max_attempts: Optional[int] = None,
        retry_delay: Optional[float] = None,
    ):
        self._notifier = notifier
        self._timers = timers
        self.window_seconds = window_seconds if window_seconds is not None else Config.AGGREGATION_WINDOW_SECONDS
        self.max_attempts = max_attempts or Config.NOTIFY_MAX_ATTEMPTS
        self.retry_delay = retry_delay if retry_delay is not None else Config.NOTIFY_RETRY_DELAY_SECONDS
        self._buffer: dict[AggregationKey, BufferedGroup] = {}
        self._in_flight: set[asyncio.Task] = set()

    @property
    def pending_count(self) -> int:
        return len(self._buffer)

    def pending_keys(self) -> list[AggregationKey]:
        return list(self._buffer)

    @property
    def in_flight_count(self) -> int:
        return len(self._in_flight)

    def submit(self, event: TradeEvent) -> None:
        """
        Add a fill to its group, opening a group and arming its timer if needed.

        Appending to an existing group does not re-arm the timer.
        """
        key = AggregationKey.from_event(event)
        group = self._buffer.get(key)

        if group is not None:
            group.append(event)
            logger.debug(f"Buffered fill {len(group.events)} for {key.job_id}")
            return

        self._buffer[key] = BufferedGroup(
            key=key,
            events=[event],
            opened_at=datetime.now(timezone.utc)
        )
        self._timers.arm(key.job_id, self.window_seconds, self._on_timer, key)
        logger.debug(f"Opened aggregation window for {key.job_id} ({self.window_seconds}s)")

    async def _on_timer(self, key: AggregationKey) -> bool:
        # The flush task outlives a cancelled timer job; drain_all() awaits it
        task = asyncio.create_task(self.flush(key))
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)
        return await asyncio.shield(task)

    async def flush(self, key: AggregationKey) -> bool:
        """
        Remove the group for key and deliver its consolidated alert.

        Returns:
            True if a group was flushed, False if none was pending
        """
        group = self._buffer.pop(key, None)
        if group is None:
            return False

        aggregated = aggregate_fills(group.events)
        logger.info(
            f"Aggregated {aggregated.fill_count} fill(s): {aggregated.trader_name} "
            f"{aggregated.side.value} ${aggregated.amount:.2f} - {aggregated.market}"
        )

        await self._deliver(aggregated)
        return True

    async def drain_all(self) -> int:
        """
        Flush every pending group immediately, cancelling its timer.

        Used during shutdown. Each delivery is awaited before returning,
        including deliveries whose timer had already fired.

        Returns:
            Number of groups flushed
        """
        flushed = 0
        for key in list(self._buffer):
            self._timers.cancel(key.job_id)
            if await self.flush(key):
                flushed += 1

        if flushed:
            logger.info(f"Drained {flushed} pending aggregation group(s)")

        if self._in_flight:
            logger.info(f"Waiting for {len(self._in_flight)} in-flight alert(s)")
            await asyncio.gather(*self._in_flight)

        return flushed

    async def _deliver(self, event: TradeEvent) -> None:
        if self._notifier is None:
            logger.warning(f"No notifier configured, dropping alert for {event.market}")
            return

        try:
            delivered = await retry_async(
                self._notifier.notify,
                event,
                max_attempts=self.max_attempts,
                initial_delay=self.retry_delay,
            )
        except Exception as e:
            logger.error(f"Notifier raised while delivering alert for {event.market}: {e}", exc_info=True)
            return

        if not delivered:
            logger.error(
                f"Alert not delivered: {event.trader_name} {event.side.value} "
                f"${event.amount:.2f} - {event.market}"
            )
