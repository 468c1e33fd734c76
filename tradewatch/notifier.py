"""
Notifiers for delivering trade alerts.

This module renders a (possibly consolidated) trade event into a short
human-readable alert and delivers it to Discord through a webhook and/or to
Telegram through the python-telegram-bot library.

Delivery is fire-and-forget: every notifier returns False on failure and
never raises, so a broken channel cannot stall the pipeline.
"""

import asyncio
import logging
from typing import Optional, Protocol
from urllib.parse import quote

import requests
from requests.exceptions import RequestException, Timeout
from telegram import Bot, LinkPreviewOptions
from telegram.error import TelegramError, TimedOut, NetworkError

from tradewatch.config import Config
from tradewatch.models import PositionSnapshot, Side, TradeEvent
from tradewatch.utils import current_utc_timestamp, format_cents, format_number, format_percentage

# Configure module logger
logger = logging.getLogger(__name__)

COLORS = {
    Side.BUY: 0x00FF00,
    Side.SELL: 0xFF0000,
    "EXIT": 0xFFA500,  # full exits
}


class Notifier(Protocol):
    async def notify(self, event: TradeEvent) -> bool:
        ...


# Formatting

def find_traded_position(event: TradeEvent) -> Optional[PositionSnapshot]:
    """Return the position in the traded condition, if the snapshot has one."""
    return next((p for p in event.positions if p.condition_id == event.condition_id), None)


def is_full_exit(event: TradeEvent) -> bool:
    """A SELL that leaves zero shares in the traded condition."""
    position = find_traded_position(event)
    return event.side == Side.SELL and position is not None and position.size == 0


def calculate_position_pnl(position: PositionSnapshot) -> str:
    """
    Format unrealized PnL of a position against its cost basis.

    Returns:
        String like " ▲ +$12.50 (+8.3%)", or "" for an empty position
    """
    if position.size == 0:
        return ""

    initial_value = position.size * position.avg_price
    pnl = position.current_value - initial_value
    pnl_percent = (pnl / initial_value) * 100 if initial_value else 0.0

    arrow = "▲" if pnl >= 0 else "▼"
    sign = "+" if pnl >= 0 else ""

    return f" {arrow} {sign}${format_number(abs(pnl))} ({sign}{format_percentage(pnl_percent)})"


def _position_line(position: PositionSnapshot) -> str:
    return (
        f"📍 {position.title} {position.outcome.upper()}: {format_number(position.size)} "
        f"@ {format_cents(position.avg_price)} (${format_number(position.current_value)})"
        f"{calculate_position_pnl(position)}"
    )


def format_trade_lines(event: TradeEvent) -> list[str]:
    """
    Build the body lines of an alert.

    The first line describes the fill(s). Following lines list the trader's
    open positions in the same market-event, or announce a closed position
    when the sell emptied it.

    Args:
        event: Trade event to describe

    Returns:
        List of lines, trade line first
    """
    traded_position = find_traded_position(event)
    full_exit = is_full_exit(event)

    # Partial sells show the share of the pre-sell position that was sold
    percent_sold = ""
    if event.side == Side.SELL and traded_position is not None and not full_exit:
        shares_before_sell = event.shares + traded_position.size
        percent = (event.shares / shares_before_sell) * 100
        percent_sold = f" ({percent:.0f}% of position)"

    fill_suffix = f" ({event.fill_count} fills)" if event.fill_count > 1 else ""
    side_icon = "📈" if event.side == Side.BUY else "📉"

    lines = [
        f"{side_icon} {format_number(event.shares)} {event.outcome.upper()} @ "
        f"{format_cents(event.price)} = ${format_number(event.amount)}{percent_sold}{fill_suffix}"
    ]

    if full_exit:
        lines.append(
            f"💰 Closed {event.outcome.upper()} position (was {format_number(event.shares)} shares)"
        )
        others = [p for p in event.positions if p.condition_id != event.condition_id and p.size > 0]
    else:
        others = [p for p in event.positions if p.size > 0]

    lines.extend(_position_line(p) for p in others)
    return lines


def build_discord_embed(event: TradeEvent) -> dict:
    """Build the Discord embed payload for an alert."""
    color = COLORS["EXIT"] if is_full_exit(event) else COLORS[Side(event.side)]

    return {
        "author": {
            "name": event.trader_name,
            "url": event.trader_profile_url,
        },
        "title": event.market,
        "url": event.market_url,
        "description": "\n".join(format_trade_lines(event)),
        "color": color,
        "timestamp": current_utc_timestamp(),
    }


def _escape_markdown(text: str) -> str:
    for char in ("*", "_", "[", "]", "`"):
        text = text.replace(char, "")
    return text


def _escape_url(url: str) -> str:
    # Parentheses would close the Markdown link target early
    return quote(url, safe=":/?&=#%@~+,;")


def format_telegram_message(event: TradeEvent) -> str:
    """Format an alert as a Telegram Markdown message."""
    lines = [
        f"*{_escape_markdown(event.trader_name)}* · [{_escape_markdown(event.market)}]({_escape_url(event.market_url)})",
        "",
    ]
    lines.extend(_escape_markdown(line) for line in format_trade_lines(event))
    return "\n".join(lines)


# Delivery

class DiscordNotifier:
    """Posts alerts as embeds to a Discord webhook."""

    def __init__(
        self,
        webhook_url: str,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None
    ):
        self.webhook_url = webhook_url
        self.timeout = timeout or Config.API_TIMEOUT
        self._session = session or requests.Session()

    async def notify(self, event: TradeEvent) -> bool:
        """
        Send an alert to Discord.

        Returns:
            True if the webhook accepted the message, False otherwise
        """
        payload = {"embeds": [build_discord_embed(event)]}

        try:
            response = await asyncio.to_thread(
                self._session.post,
                self.webhook_url,
                json=payload,
                timeout=self.timeout,
            )
            response.raise_for_status()
            logger.debug("Discord notification sent")
            return True

        except Timeout:
            logger.error(f"Discord webhook timed out after {self.timeout}s")
            return False

        except RequestException as e:
            logger.error(f"Failed to send Discord notification: {e}")
            return False

        except Exception as e:
            logger.error(f"Unexpected error sending Discord notification: {e}", exc_info=True)
            return False


class TelegramNotifier:
    """Sends alerts as Markdown messages to a Telegram chat."""

    def __init__(
        self,
        token: str,
        chat_id: str,
        timeout: Optional[float] = None,
        bot: Optional[Bot] = None
    ):
        self.timeout = timeout or Config.API_TIMEOUT
        self._bot = bot or Bot(token=token)

        # Parse chat_id (handle both string and int)
        try:
            self.chat_id: int | str = int(chat_id)
        except ValueError:
            self.chat_id = chat_id

    async def notify(self, event: TradeEvent) -> bool:
        """
        Send an alert to Telegram safely with error handling.

        Returns:
            True if message sent successfully, False otherwise
        """
        try:
            logger.debug(f"Sending message to Telegram chat {self.chat_id}")

            await self._bot.send_message(
                chat_id=self.chat_id,
                text=format_telegram_message(event),
                parse_mode="Markdown",
                link_preview_options=LinkPreviewOptions(is_disabled=True),
                read_timeout=self.timeout,
                write_timeout=self.timeout,
            )

            logger.debug("Telegram message sent")
            return True

        except TimedOut:
            logger.error(f"Telegram API request timed out after {self.timeout}s")
            return False

        except NetworkError as e:
            logger.error(f"Network error sending Telegram message: {e}")
            return False

        except TelegramError as e:
            logger.error(f"Telegram API error: {e}")
            return False

        except Exception as e:
            logger.error(f"Unexpected error sending Telegram message: {e}", exc_info=True)
            return False


class CompositeNotifier:
    """Delivers to every configured channel; succeeds if any channel did."""

    def __init__(self, notifiers: list[Notifier]):
        self.notifiers = notifiers

    async def notify(self, event: TradeEvent) -> bool:
        results = [await notifier.notify(event) for notifier in self.notifiers]
        return any(results)


def build_notifier() -> Optional[Notifier]:
    """
    Build a notifier for the channels present in Config.

    Returns:
        A single channel notifier, a CompositeNotifier for several, or None
        if no channel is configured
    """
    notifiers: list[Notifier] = []

    if Config.DISCORD_WEBHOOK_URL:
        notifiers.append(DiscordNotifier(Config.DISCORD_WEBHOOK_URL))

    if Config.TELEGRAM_BOT_TOKEN and Config.TELEGRAM_CHAT_ID:
        notifiers.append(TelegramNotifier(Config.TELEGRAM_BOT_TOKEN, Config.TELEGRAM_CHAT_ID))

    if not notifiers:
        logger.warning("No notification channel configured")
        return None

    if len(notifiers) == 1:
        return notifiers[0]

    return CompositeNotifier(notifiers)
