# hopbot/reports.py
"""
Message bodies for the chat sidecar. Everything returned here is Telegram
HTML: dynamic text is escaped and tables go into <pre> blocks.
"""
from dataclasses import dataclass
from decimal import Decimal
from html import escape
from typing import List, Optional

from .models import Balance, HopDecision, OrderDescriptor, Position, PriceSnapshot
from .position import opposite, quote_value

HUNDRED = Decimal(100)


@dataclass(frozen=True)
class StatusReport:
    cross_rate: Decimal
    asset_a_quote: Decimal
    asset_b_quote: Decimal
    gain_percent: Decimal


def pre(text: str) -> str:
    return f"<pre>{escape(text)}</pre>"


def position_label(position: Position, asset_a: str, asset_b: str) -> str:
    if position is Position.HOLDING_A:
        return asset_a
    if position is Position.HOLDING_B:
        return asset_b
    return "NONE"


def format_status(report: StatusReport, asset_a: str, asset_b: str) -> str:
    icon = "🟢" if report.gain_percent > 0 else "🔴"
    return pre(
        f"RELATIVE: {report.cross_rate:.5f}\n"
        f"{asset_a}:\t\t{report.asset_a_quote:.2f}\n"
        f"{asset_b}:\t\t{report.asset_b_quote:.2f}\n"
        f"GAIN:\t\t{report.gain_percent:.2f}% {icon}"
    )


def format_balance(balance: Balance, prices: PriceSnapshot, asset_a: str, asset_b: str, quote: str) -> str:
    rows: List[str] = []
    for asset in sorted(balance):
        amount = balance[asset]
        if asset == asset_a:
            value = quote_value(amount, prices.asset_a_quote)
        elif asset == asset_b:
            value = quote_value(amount, prices.asset_b_quote)
        elif asset == quote:
            value = amount
        else:
            value = Decimal(0)
        rows.append(f"{asset:<8}{value:>12.2f} {quote}\t({amount:.4f})")
    if not rows:
        rows.append("(empty)")
    return pre("\n".join(rows))


def format_order_placed(descriptor: OrderDescriptor, decision: HopDecision, asset_a: str, asset_b: str) -> str:
    frm = position_label(decision.position, asset_a, asset_b)
    to = position_label(opposite(decision.position), asset_a, asset_b)
    return (
        "Placed an order: 💰\n"
        f"{pre(descriptor.description)}\n"
        "Summary: 📂\n"
        + pre(
            f"PRICE: {decision.limit_price}\n"
            f"GAIN: {decision.gain * HUNDRED:.3f}%\n"
            f"POSITION: {frm} -> {to}\n"
            f"VOLUME: {decision.volume:.5f}"
        )
    )


def format_order_filled(price: Decimal) -> str:
    return f"Last order seems to have been filled 🎉💰\n{pre(f'PRICE: {price}')}"


def format_stream_closed(cooldown_seconds: float) -> str:
    return escape(f"Stream closed from exchange! Will try to reconnect in {cooldown_seconds:g}s.")


def format_fatal(message: str) -> str:
    return f"💀 Bot stopped:\n{pre(message)}"


def format_text(message: str, detail: Optional[str] = None) -> str:
    if detail:
        return f"{escape(message)}\n{pre(detail)}"
    return escape(message)
