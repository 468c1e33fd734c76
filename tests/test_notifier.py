from __future__ import annotations

from dataclasses import replace

import pytest
import requests
from telegram.error import NetworkError, TelegramError

from factories import RecordingNotifier, make_event, make_position
from tradewatch.config import Config
from tradewatch.models import Side
from tradewatch.notifier import (
    COLORS,
    CompositeNotifier,
    DiscordNotifier,
    TelegramNotifier,
    build_discord_embed,
    build_notifier,
    calculate_position_pnl,
    format_telegram_message,
    format_trade_lines,
)


def test_buy_lines_list_open_positions_with_pnl() -> None:
    event = make_event(
        100,
        60,
        positions=[
            make_position(condition_id="cond-x", size=100, avg_price=0.5, current_value=60),
            make_position(condition_id="cond-y", size=0, outcome="No"),
        ],
    )

    lines = format_trade_lines(event)

    assert lines[0] == "📈 100.00 YES @ 60¢ = $60.00"
    assert lines[1] == "📍 Will X happen? YES: 100.00 @ 50¢ ($60.00) ▲ +$10.00 (+20.0%)"
    assert len(lines) == 2


def test_consolidated_alert_mentions_fill_count() -> None:
    event = make_event(17, 10.2)
    event.fill_count = 3

    assert format_trade_lines(event)[0].endswith("= $10.20 (3 fills)")


def test_partial_sell_shows_share_of_position_sold() -> None:
    event = make_event(
        25,
        10,
        side=Side.SELL,
        positions=[make_position(condition_id="cond-x", size=75, avg_price=0.5, current_value=30)],
    )

    lines = format_trade_lines(event)

    assert lines[0] == "📉 25.00 YES @ 40¢ = $10.00 (25% of position)"
    assert lines[1].endswith("▼ $7.50 (-20.0%)")


def test_full_exit_announces_closed_position_and_other_holdings() -> None:
    event = make_event(
        50,
        45,
        side=Side.SELL,
        positions=[
            make_position(condition_id="cond-x", size=0),
            make_position(condition_id="cond-y", size=20, outcome="No", title="Other"),
        ],
    )

    lines = format_trade_lines(event)

    assert lines[1] == "💰 Closed YES position (was 50.00 shares)"
    assert lines[2].startswith("📍 Other NO: 20.00")
    assert build_discord_embed(event)["color"] == COLORS["EXIT"]


def test_pnl_of_empty_position_is_blank() -> None:
    assert calculate_position_pnl(make_position(size=0)) == ""


def test_discord_embed_fields() -> None:
    event = make_event(10, 6)

    embed = build_discord_embed(event)

    assert embed["author"] == {"name": "alice", "url": "https://polymarket.com/@alice"}
    assert embed["title"] == "Will X happen?"
    assert embed["url"] == "https://polymarket.com/event/event-x"
    assert embed["color"] == COLORS[Side.BUY]
    assert embed["description"].startswith("📈 10.00 YES")
    assert embed["timestamp"]


def test_telegram_message_strips_markdown_from_titles() -> None:
    event = make_event(10, 6, market="Will *BTC* hit_100k?")

    message = format_telegram_message(event)

    assert message.startswith("*alice* · [Will BTC hit100k?](https://polymarket.com/event/event-x)")
    assert "📈 10.00 YES @ 60¢ = $6.00" in message


def test_telegram_message_encodes_parentheses_in_market_link() -> None:
    event = replace(make_event(10, 6), market_url="https://polymarket.com/event/btc-(march)")

    message = format_telegram_message(event)

    assert "](https://polymarket.com/event/btc-%28march%29)" in message


@pytest.mark.asyncio
async def test_discord_notifier_posts_embed(mocker) -> None:
    session = mocker.Mock(spec=requests.Session)
    notifier = DiscordNotifier("https://discord.example/webhook", timeout=2, session=session)

    assert await notifier.notify(make_event(10, 6)) is True

    args, kwargs = session.post.call_args
    assert args == ("https://discord.example/webhook",)
    assert kwargs["timeout"] == 2
    assert kwargs["json"]["embeds"][0]["title"] == "Will X happen?"


@pytest.mark.asyncio
async def test_discord_notifier_failure_returns_false(mocker) -> None:
    session = mocker.Mock(spec=requests.Session)
    session.post.return_value.raise_for_status.side_effect = requests.exceptions.HTTPError("429")
    notifier = DiscordNotifier("https://discord.example/webhook", session=session)

    assert await notifier.notify(make_event(10, 6)) is False


@pytest.mark.asyncio
async def test_telegram_notifier_sends_markdown(mocker) -> None:
    bot = mocker.Mock()
    bot.send_message = mocker.AsyncMock()
    notifier = TelegramNotifier("123:abc", "-1001234", timeout=2, bot=bot)

    assert await notifier.notify(make_event(10, 6)) is True

    kwargs = bot.send_message.call_args.kwargs
    assert kwargs["chat_id"] == -1001234
    assert kwargs["parse_mode"] == "Markdown"
    assert "Will X happen?" in kwargs["text"]


@pytest.mark.asyncio
@pytest.mark.parametrize("error", [NetworkError("down"), TelegramError("bad request")])
async def test_telegram_notifier_errors_return_false(mocker, error) -> None:
    bot = mocker.Mock()
    bot.send_message = mocker.AsyncMock(side_effect=error)
    notifier = TelegramNotifier("123:abc", "@channel", bot=bot)

    assert notifier.chat_id == "@channel"
    assert await notifier.notify(make_event(10, 6)) is False


@pytest.mark.asyncio
async def test_composite_notifier_succeeds_if_any_channel_does() -> None:
    failing = RecordingNotifier(results=[False])
    working = RecordingNotifier()
    composite = CompositeNotifier([failing, working])

    assert await composite.notify(make_event(10, 6)) is True
    assert len(failing.events) == 1
    assert len(working.events) == 1


def test_build_notifier_selects_configured_channels(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(Config, "DISCORD_WEBHOOK_URL", None)
    monkeypatch.setattr(Config, "TELEGRAM_BOT_TOKEN", None)
    monkeypatch.setattr(Config, "TELEGRAM_CHAT_ID", None)
    assert build_notifier() is None

    monkeypatch.setattr(Config, "DISCORD_WEBHOOK_URL", "https://discord.example/webhook")
    assert isinstance(build_notifier(), DiscordNotifier)

    monkeypatch.setattr(Config, "TELEGRAM_BOT_TOKEN", "123:abc")
    monkeypatch.setattr(Config, "TELEGRAM_CHAT_ID", "42")
    composite = build_notifier()
    assert isinstance(composite, CompositeNotifier)
    assert [type(n) for n in composite.notifiers] == [DiscordNotifier, TelegramNotifier]
