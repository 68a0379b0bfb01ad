# fxjournal/stats.py
"""
Account statistics derived from a list of trades.

Nothing here is stored: balance, win rate, growth and the equity curve are
recomputed from the trades and the account's initial balance on demand.
Trades only need ``pnl`` and ``trade_date`` attributes.
"""
from datetime import datetime, date, timezone
from typing import Iterable, List, Optional

from .schemas import EquityPoint, PortfolioStats


def parse_trade_date(value) -> Optional[datetime]:
    """Parse a stored trade date, returning None when it is missing or invalid.

    Aware datetimes are converted to naive UTC so that they sort together
    with plain ``YYYY-MM-DD`` dates. Only ISO 8601 text is understood; other
    layouts such as ``03/01/2024`` count as undated.
    """
    if not value:
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def total_pnl(trades: Iterable) -> float:
    return sum((t.pnl for t in trades), 0.0)


def current_balance(trades: Iterable, initial_balance: float) -> float:
    return initial_balance + total_pnl(trades)


def compute_stats(trades: Iterable, initial_balance: float) -> PortfolioStats:
    trades = list(trades)
    total_trades = len(trades)
    pnl = total_pnl(trades)

    if total_trades == 0:
        return PortfolioStats(total_pnl=pnl, win_rate=0.0, account_growth=0.0)

    winning_trades = sum(1 for t in trades if t.pnl > 0)
    win_rate = winning_trades / total_trades * 100
    account_growth = (pnl / initial_balance * 100) if initial_balance > 0 else 0.0

    return PortfolioStats(total_pnl=pnl, win_rate=win_rate, account_growth=account_growth)


def compute_equity_curve(trades: Iterable, initial_balance: float) -> List[EquityPoint]:
    """Running balance after each trade, oldest first, starting at 'Start'.

    Trades without a usable date are left out of the curve entirely.
    """
    dated = []
    for trade in trades:
        when = parse_trade_date(trade.trade_date)
        if when is not None:
            dated.append((when, trade))
    dated.sort(key=lambda item: item[0])

    curve = [EquityPoint(label="Start", balance=initial_balance)]
    balance = initial_balance
    for i, (_, trade) in enumerate(dated, start=1):
        balance += trade.pnl
        curve.append(EquityPoint(label=f"Trade {i}", balance=balance))
    return curve
