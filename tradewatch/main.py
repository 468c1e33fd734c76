"""
Main entry point for the Polymarket trade alert bot.

Modes:
- Continuous (default): poll traders until SIGINT/SIGTERM, then flush
  buffered alerts and exit
- Single cycle (--once): poll every trader once, flush, and exit
- Config check (--check-config): validate configuration and exit
- Test alert (--test-alert): send a sample alert through the configured channels
"""

import argparse
import asyncio
import logging
import signal
import sys

from tradewatch.config import Config, load_traders
from tradewatch.models import PositionSnapshot, Side, TradeEvent
from tradewatch.notifier import build_notifier
from tradewatch.pipeline import TradePipeline


# Configure logging
def setup_logging() -> None:
    """Configure logging for the application."""
    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    log_level = getattr(logging, Config.LOG_LEVEL.upper(), logging.INFO)

    handlers = [logging.StreamHandler(sys.stdout)]

    if Config.LOG_FILE:
        Config.ensure_directories()
        handlers.append(logging.FileHandler(Config.LOG_FILE))

    logging.basicConfig(
        level=log_level,
        format=log_format,
        handlers=handlers
    )


logger = logging.getLogger(__name__)


def _install_signal_handlers(pipeline: TradePipeline) -> None:
    def signal_handler(signum, frame=None):
        logger.info(f"Received signal {signum}, shutting down gracefully...")
        pipeline.stop()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, signal_handler, sig)
        except NotImplementedError:
            # Windows event loops don't support add_signal_handler
            signal.signal(sig, signal_handler)


async def run_bot(once: bool = False) -> int:
    """
    Build the pipeline from Config and run it.

    Args:
        once: Run a single poll cycle instead of looping

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    traders = load_traders()
    logger.info(f"Loaded {len(traders)} trader(s) to monitor")

    pipeline = TradePipeline.from_config(traders)

    try:
        if once:
            submitted = await pipeline.run_once()
            logger.info(f"Single cycle completed: {submitted} new fill(s)")
        else:
            _install_signal_handlers(pipeline)
            await pipeline.run()
        return 0

    except Exception as e:
        logger.error(f"Fatal error in pipeline: {e}", exc_info=True)
        return 1

    finally:
        await pipeline.shutdown()


async def send_test_alert() -> int:
    """Send a sample consolidated alert through the configured channels."""
    notifier = build_notifier()
    if notifier is None:
        logger.error("No notification channel configured")
        return 1

    sample = TradeEvent(
        trader_name="test-trader",
        trader_address="0x" + "0" * 40,
        trader_profile_url=f"{Config.POLYMARKET_WEB_URL}/@test-trader",
        side=Side.BUY,
        shares=17.0,
        amount=10.2,
        price=0.6,
        market="Test market - your trade alert bot is connected",
        market_url=f"{Config.POLYMARKET_WEB_URL}",
        outcome="Yes",
        condition_id="0xtest",
        transaction_hash="0xtest",
        positions=[
            PositionSnapshot(
                outcome="Yes",
                size=17.0,
                avg_price=0.6,
                current_value=11.05,
                condition_id="0xtest",
                title="Test market",
            )
        ],
        fill_count=3,
    )

    if await notifier.notify(sample):
        logger.info("Test alert sent successfully")
        return 0

    logger.error("Test alert failed")
    return 1


def main() -> int:
    """
    Main entry point for the trade alert bot.

    Returns:
        Exit code (0 for success, 1 for failure, 130 if interrupted)
    """
    parser = argparse.ArgumentParser(
        description="Polymarket Trade Alert Bot",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Watch traders continuously
  python -m tradewatch.main

  # Poll every trader once and exit
  python -m tradewatch.main --once

  # Validate configuration
  python -m tradewatch.main --check-config
        """
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single poll cycle, flush pending alerts, and exit"
    )
    parser.add_argument(
        "--check-config",
        action="store_true",
        help="Validate configuration and exit"
    )
    parser.add_argument(
        "--test-alert",
        action="store_true",
        help="Send a sample alert through the configured channels and exit"
    )

    args = parser.parse_args()

    setup_logging()

    # Validate configuration before anything is constructed
    is_valid, errors = Config.validate()
    if not is_valid:
        logger.error("Configuration validation failed:")
        for error in errors:
            logger.error(f"  - {error}")
        return 1

    if args.check_config:
        logger.info("Configuration is valid")
        return 0

    try:
        if args.test_alert:
            return asyncio.run(send_test_alert())
        return asyncio.run(run_bot(once=args.once))

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130

    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
