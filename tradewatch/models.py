"""
Data models for the trade alert bot.

This module defines the core dataclasses used throughout the application
for representing traders, observed fills, positions, and the bookkeeping
records of the aggregation buffer and dedup store.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import NamedTuple, Optional


class Side(str, Enum):
    """Direction of a fill."""
    BUY = "BUY"
    SELL = "SELL"


@dataclass(frozen=True)
class Trader:
    """A monitored wallet and its display name."""
    address: str
    name: str


@dataclass
class PositionSnapshot:
    """
    A trader's current holdings in one outcome of one market-event.

    Attributes:
        outcome: Outcome label (e.g. "Yes")
        size: Shares held (0 after a full exit)
        avg_price: Average entry price
        current_value: Mark-to-market value in USDC
        condition_id: Market/condition identifier
        title: Market title for display
        event_slug: Slug of the market-event the condition belongs to
    """
    outcome: str
    size: float
    avg_price: float
    current_value: float
    condition_id: str
    title: str
    event_slug: str = ""


@dataclass
class Activity:
    """
    A normalized TRADE record from the activity endpoint.

    Attributes:
        side: Fill direction
        size: Shares filled
        usdc_size: Notional in USDC
        price: Execution price (0.0 to 1.0)
        condition_id: Market/condition identifier
        title: Market title
        slug: Market slug
        event_slug: Market-event slug
        outcome: Outcome label
        transaction_hash: On-chain transaction hash (dedup key)
        asset: Outcome token id
    """
    side: Side
    size: float
    usdc_size: float
    price: float
    condition_id: str
    title: str
    slug: str
    event_slug: str
    outcome: str
    transaction_hash: str
    asset: str = ""


@dataclass
class TradeEvent:
    """
    One observed fill, or several fills consolidated into one alert.

    ``fill_count`` is 1 for a raw fill and the number of folded fills for a
    consolidated event. ``positions`` holds the trader's positions in the
    same market-event at observation time.
    """
    trader_name: str
    trader_address: str
    trader_profile_url: str
    side: Side
    shares: float
    amount: float
    price: float
    market: str
    market_url: str
    outcome: str
    condition_id: str
    transaction_hash: str
    event_slug: str = ""
    positions: list[PositionSnapshot] = field(default_factory=list)
    fill_count: int = 1


class AggregationKey(NamedTuple):
    """Fills sharing trader, condition and side are reported together."""
    trader_address: str
    condition_id: str
    side: Side

    @classmethod
    def from_event(cls, event: TradeEvent) -> "AggregationKey":
        return cls(event.trader_address, event.condition_id, Side(event.side))

    @property
    def job_id(self) -> str:
        return f"{self.trader_address}:{self.condition_id}:{self.side.value}"


@dataclass
class BufferedGroup:
    """Fills accumulated for one key while its flush timer is pending."""
    key: AggregationKey
    events: list[TradeEvent] = field(default_factory=list)
    opened_at: Optional[datetime] = None

    def append(self, event: TradeEvent) -> None:
        self.events.append(event)


@dataclass(frozen=True)
class SeenRecord:
    """A transaction hash accepted into the pipeline and when it was first seen."""
    transaction_hash: str
    first_seen_at: datetime
