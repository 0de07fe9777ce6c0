# main.py
import argparse
import asyncio
import os
import sys
from decimal import Decimal, InvalidOperation

import questionary
from dotenv import load_dotenv
from rich.console import Console
from rich.layout import Layout
from rich.live import Live
from rich.panel import Panel
from rich.table import Table

from hopbot.bot import HopBot
from hopbot.config import load_config
from hopbot.errors import FatalError
from hopbot.logger import AsyncAuditLogger, setup_console_logger
from hopbot.market_engine import KrakenGateway
from hopbot.models import OrderRecord
from hopbot.notifier import LogNotifier, TelegramNotifier
from hopbot.order_tracker import JsonRecordStore, OrderLifecycleTracker
from hopbot.reports import format_fatal, position_label
from hopbot.websocket_engine import KrakenBookStream

# --- UI HELPER FUNCTIONS ---

def _fmt(value, digits: int) -> str:
    return "-" if value is None else f"{value:,.{digits}f}"


def generate_dashboard(bot: HopBot) -> Layout:
    """
    Rich console layout: live mid prices, holdings, and the order state.
    """
    prices = bot.prices.snapshot()
    record = bot.tracker.current

    price_table = Table(title="📡 Live Mid Prices")
    price_table.add_column("Pair", style="cyan")
    price_table.add_column("Mid", justify="right", style="green")
    price_table.add_row(f"{bot.asset_a}/{bot.quote}", _fmt(prices.asset_a_quote, 2))
    price_table.add_row(f"{bot.asset_b}/{bot.quote}", _fmt(prices.asset_b_quote, 2))
    price_table.add_row(f"{bot.asset_b}/{bot.asset_a}", _fmt(prices.cross_rate, 5))

    inv_table = Table(title="💰 Holdings")
    inv_table.add_column("Asset", style="magenta")
    inv_table.add_column("Amount", justify="right")
    for asset, amount in sorted((bot.inventory.balance or {}).items()):
        inv_table.add_row(asset, f"{amount:.6f}")

    layout = Layout()
    layout.split_column(Layout(name="top"), Layout(name="bottom"))
    layout["top"].split_row(Layout(Panel(price_table)), Layout(Panel(inv_table)))

    state = "[bold green]IDLE[/bold green]" if record.completed else "[bold yellow]PENDING[/bold yellow]"
    gain = "-" if bot.last_gain is None else f"{bot.last_gain * 100:.2f}%"
    holding = position_label(bot.last_position, bot.asset_a, bot.asset_b)
    footer = Panel(
        f"ORDER: {state} @ {record.reference_price} | HOLDING: {holding} | GAIN: {gain} | TICK: {bot.interval:g}s",
        style="white on blue",
    )
    layout["bottom"].update(footer)
    layout["bottom"].size = 3
    return layout


async def dashboard_loop(bot: HopBot):
    with Live(console=Console(), refresh_per_second=1) as live:
        while True:
            live.update(generate_dashboard(bot))
            await asyncio.sleep(1)


def _is_price(text: str):
    try:
        price = Decimal(text)
        if not price.is_finite():
            return "Not a number"
        return price > 0 or "Price must be positive"
    except InvalidOperation:
        return "Not a number"


def seed_history(config: dict, price: str = None):
    """
    Writes the first baseline. The bot refuses to start without one,
    because gains have nothing to be measured against.
    """
    paths = [config['persistence']['current_order'], config['persistence']['last_completed_order']]
    existing = [p for p in paths if os.path.exists(p)]
    if existing:
        overwrite = questionary.confirm(f"Overwrite existing {', '.join(existing)}?", default=False).ask()
        if not overwrite:
            print("Keeping existing order history.")
            return

    if price is None:
        market = config['market']
        price = questionary.text(
            f"Reference {market['asset_b']}/{market['asset_a']} price of your last trade:",
            validate=_is_price,
        ).ask()
        if price is None:
            return
    elif _is_price(price) is not True:
        sys.exit(f"Invalid price: {price}")

    record = OrderRecord(reference_price=Decimal(price), completed=True)
    for p in paths:
        JsonRecordStore(p).save(record)
    print(f"Seeded order history at {record.reference_price} -> {', '.join(paths)}")


def build_notifier(config: dict, logger):
    tg = config['telegram']
    if not tg.get('enabled', False):
        return LogNotifier(logger)

    token = os.getenv("TELEGRAM_BOT_TOKEN")
    chat_id = os.getenv("TELEGRAM_REPORT_CHAT_ID")
    if not token:
        raise ValueError("$TELEGRAM_BOT_TOKEN is not set")
    if not chat_id:
        raise ValueError("$TELEGRAM_REPORT_CHAT_ID is not set")
    return TelegramNotifier(token, int(chat_id), logger, poll_timeout=tg['poll_timeout_seconds'])

# --- MAIN CONTROLLER ---

async def run_bot(config: dict):
    logger = setup_console_logger("hopbot", config['system']['log_level'])
    notifier = build_notifier(config, logger)
    gateway = KrakenGateway(
        config, logger,
        api_key=os.getenv("KRAKEN_API_KEY", ""),
        secret=os.getenv("KRAKEN_API_SECRET", ""),
    )
    audit_log = AsyncAuditLogger(config['audit']['trade_log'])

    market = config['market']
    pairs = list(market['books'].values())

    def new_stream():
        return KrakenBookStream(pairs, market['book_depth'], logger)

    tasks = []
    try:
        tracker = OrderLifecycleTracker.load(
            JsonRecordStore(config['persistence']['current_order']),
            JsonRecordStore(config['persistence']['last_completed_order']),
        )

        print("Initializing Diagnostic Checks...")
        await audit_log.start()
        if not await gateway.initialize():
            raise FatalError("Exchange diagnostic failed. Check API keys.")

        bot = HopBot(config, gateway, tracker, notifier, logger, new_stream, audit_log=audit_log)
        if isinstance(notifier, TelegramNotifier):
            tasks.append(asyncio.create_task(notifier.run_commands(bot)))
        if config['ui']['dashboard']:
            tasks.append(asyncio.create_task(dashboard_loop(bot)))

        await bot.run()

    except FatalError as e:
        logger.critical(f"💀 FATAL: {e}")
        await notifier.send(format_fatal(str(e)))
        raise
    finally:
        print("Shutting down resources...")
        for t in tasks:
            t.cancel()
        await audit_log.stop()
        await gateway.shutdown()
        if isinstance(notifier, TelegramNotifier):
            await notifier.close()


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Two-asset hop trading bot")
    parser.add_argument("--config", default=None, help="path to config.yaml")
    sub = parser.add_subparsers(dest="command")
    sub.add_parser("run", help="run the bot (default)")
    seed = sub.add_parser("seed", help="create the initial order history")
    seed.add_argument("--price", default=None, help="reference cross price, skips the prompt")
    return parser.parse_args(argv)


if __name__ == "__main__":
    load_dotenv()
    args = parse_args()
    conf = load_config(args.config)

    if args.command == "seed":
        seed_history(conf, args.price)
        sys.exit()

    try:
        try:
            import uvloop
            asyncio.set_event_loop_policy(uvloop.EventLoopPolicy())
        except ImportError:
            pass
        asyncio.run(run_bot(conf))
    except FatalError:
        sys.exit(1)
    except KeyboardInterrupt:
        print("\n🛑 Bot Stopped by User.")
        sys.exit()
