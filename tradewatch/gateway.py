"""
Upstream gateway for fetching trader activity and positions from Polymarket.

This module handles the retrieval and normalization of activity and position
data from the Polymarket Data API. It performs no business logic - only data
fetching and transformation into structured Python objects.

HTTP calls are made with requests on a worker thread so the event loop keeps
serving flush timers while a fetch is in flight. Every failure is logged and
degrades to an empty result; the next poll cycle retries naturally.
"""

import asyncio
import logging
from typing import Any, Optional

import requests
from requests.exceptions import RequestException, Timeout, ConnectionError

from tradewatch.config import Config
from tradewatch.models import Activity, PositionSnapshot, Side
from tradewatch.utils import safe_float

# Configure module logger
logger = logging.getLogger(__name__)


class PolymarketGateway:
    """Client for the public Polymarket Data API (no auth required)."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        page_size: Optional[int] = None,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = (base_url or Config.POLYMARKET_DATA_API_URL).rstrip("/")
        self.timeout = timeout or Config.API_TIMEOUT
        self.page_size = page_size or Config.POSITIONS_PAGE_SIZE
        self._session = session or requests.Session()
        self._session.headers.update({
            "Accept": "application/json",
            "User-Agent": "PolymarketTradeAlerts/1.0"
        })

    def close(self) -> None:
        self._session.close()

    async def _get_json(self, path: str, params: dict[str, Any]) -> Any:
        """GET a Data API path and decode the JSON body. Raises on any failure."""
        url = f"{self.base_url}{path}"
        logger.debug(f"Requesting {url} with params: {params}")

        response = await asyncio.to_thread(
            self._session.get,
            url,
            params=params,
            timeout=self.timeout,
        )
        response.raise_for_status()
        return response.json()

    async def fetch_activity(self, address: str) -> list[Activity]:
        """
        Fetch recent TRADE activity for a wallet.

        Args:
            address: Wallet address

        Returns:
            List of Activity objects in API order. Returns empty list on failure.
        """
        try:
            data = await self._get_json("/activity", {"user": address, "type": "TRADE"})
        except Exception as e:
            _log_request_error(f"activity for {address}", e, self.timeout)
            return []

        if not isinstance(data, list):
            logger.warning(f"Expected list of activity for {address}, got {type(data)}")
            return []

        activities: list[Activity] = []
        for idx, record in enumerate(data):
            activity = _parse_activity(record)
            if activity:
                activities.append(activity)
            else:
                logger.debug(f"Skipping activity record at index {idx}: {record}")

        return activities

    async def fetch_positions_page(
        self,
        address: str,
        limit: int,
        offset: int
    ) -> tuple[list[PositionSnapshot], int]:
        """
        Fetch one page of positions.

        Returns:
            Tuple of (parsed positions, number of raw records on the page).
            The raw count drives pagination so a skipped malformed record
            does not end it early.

        Raises:
            requests.RequestException or ValueError on failure
        """
        data = await self._get_json(
            "/positions",
            {"user": address, "limit": limit, "offset": offset}
        )

        if not isinstance(data, list):
            raise ValueError(f"Expected list of positions, got {type(data)}")

        positions = [p for p in (_parse_position(record) for record in data) if p]
        return positions, len(data)

    async def fetch_positions(self, address: str) -> list[PositionSnapshot]:
        """
        Fetch all positions for a wallet, paging until a short page.

        A failure on any page discards the partial result.

        Args:
            address: Wallet address

        Returns:
            List of PositionSnapshot objects. Returns empty list on failure.
        """
        all_positions: list[PositionSnapshot] = []
        offset = 0

        try:
            while True:
                batch, raw_count = await self.fetch_positions_page(address, self.page_size, offset)
                all_positions.extend(batch)

                if raw_count < self.page_size:
                    break
                offset += self.page_size

        except Exception as e:
            _log_request_error(f"positions for {address}", e, self.timeout)
            return []

        logger.debug(f"Fetched {len(all_positions)} positions for {address}")
        return all_positions


def _log_request_error(what: str, error: Exception, timeout: float) -> None:
    if isinstance(error, Timeout):
        logger.error(f"Request for {what} timed out after {timeout}s")
    elif isinstance(error, ConnectionError):
        logger.error(f"Connection error while fetching {what}: {error}")
    elif isinstance(error, RequestException):
        logger.error(f"Failed to fetch {what}: {error}")
        if getattr(error, "response", None) is not None:
            logger.error(f"Response status: {error.response.status_code}")
    elif isinstance(error, ValueError):
        logger.error(f"Failed to parse response for {what}: {error}")
    else:
        logger.error(f"Unexpected error while fetching {what}: {error}", exc_info=True)


def _parse_activity(data: dict) -> Optional[Activity]:
    """
    Parse a single activity dictionary into an Activity object.

    Args:
        data: Dictionary containing an activity record from the API.

    Returns:
        Activity object, or None if the record is not a usable trade.
    """
    if not isinstance(data, dict):
        return None

    tx_hash = data.get("transactionHash")
    if not tx_hash:
        return None

    if data.get("type") and data.get("type") != "TRADE":
        return None

    try:
        side = Side(str(data.get("side", "")).upper())
    except ValueError:
        return None

    return Activity(
        side=side,
        size=safe_float(data.get("size")),
        usdc_size=safe_float(data.get("usdcSize")),
        price=safe_float(data.get("price")),
        condition_id=data.get("conditionId") or "",
        title=data.get("title") or "Unknown Market",
        slug=data.get("slug") or "",
        event_slug=data.get("eventSlug") or "",
        outcome=data.get("outcome") or "",
        transaction_hash=str(tx_hash),
        asset=str(data.get("asset") or "")
    )


def _parse_position(data: dict) -> Optional[PositionSnapshot]:
    """Parse a single position dictionary, or None if it has no condition id."""
    if not isinstance(data, dict) or not data.get("conditionId"):
        return None

    return PositionSnapshot(
        outcome=data.get("outcome") or "",
        size=safe_float(data.get("size")),
        avg_price=safe_float(data.get("avgPrice")),
        current_value=safe_float(data.get("currentValue")),
        condition_id=data["conditionId"],
        title=data.get("title") or "",
        event_slug=data.get("eventSlug") or ""
    )
