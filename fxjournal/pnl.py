# fxjournal/pnl.py
"""
Profit/loss calculation for journal trades.

Instruments are free-form strings ("EUR/USD", "XAU/USD (Gold)", "US30").
``classify_instrument`` turns one into an ``InstrumentKind`` and
``compute_pnl`` applies the contract-size convention for that kind.
"""
from enum import Enum
from typing import Optional

from .schemas import Position, TradeOutcome, TradePreview

FOREX_CONTRACT_SIZE = 100000  # units per standard lot
GOLD_CONTRACT_SIZE = 100  # troy ounces per standard lot

INSTRUMENTS = {
    "Forex Majors": ["EUR/USD", "USD/JPY", "GBP/USD", "USD/CHF", "AUD/USD", "USD/CAD", "NZD/USD"],
    "Forex Minors": ["EUR/GBP", "EUR/AUD", "GBP/JPY", "CHF/JPY", "NZD/JPY", "GBP/CAD", "EUR/JPY", "AUD/JPY", "CAD/JPY"],
    "Indices": ["US30", "SPX500", "NAS100", "UK100", "GER30", "FRA40", "JPN225", "AUS200"],
    "Commodities": ["XAU/USD (Gold)", "XAG/USD (Silver)", "USOIL (WTI)", "UKOIL (Brent)"],
    "Popular Stocks": ["AAPL", "GOOGL", "MSFT", "AMZN", "TSLA", "NVDA", "META", "JPM"],
    "Crypto": ["BTC/USD", "ETH/USD", "XRP/USD", "LTC/USD", "BCH/USD", "ADA/USD", "DOGE/USD", "SOL/USD"],
}


class InstrumentKind(str, Enum):
    METAL = "Metal"
    NON_PAIR = "NonPair"
    USD_QUOTE = "USDQuote"
    USD_BASE = "USDBase"
    CROSS = "Cross"


def clean_symbol(instrument: str) -> str:
    """Drop the descriptive suffix: 'XAU/USD (Gold)' -> 'XAU/USD'"""
    return instrument.split(" ")[0]


def classify_instrument(instrument: str) -> InstrumentKind:
    symbol = clean_symbol(instrument)

    if symbol.upper() == "XAU/USD":
        return InstrumentKind.METAL

    # Stocks, indices and most commodities (AAPL, US30, USOIL)
    if "/" not in symbol:
        return InstrumentKind.NON_PAIR

    parts = symbol.split("/")
    base = parts[0].upper()
    quote = parts[1].upper()

    # Malformed pair such as 'EUR/' only gets the lot multiplier
    if not quote:
        return InstrumentKind.NON_PAIR
    if quote == "USD":
        return InstrumentKind.USD_QUOTE
    if base == "USD":
        return InstrumentKind.USD_BASE
    return InstrumentKind.CROSS


def compute_pnl(entry_price: float, exit_price: float, position: Position, lot_size: float, instrument: str) -> float:
    """Signed USD profit/loss of closing ``lot_size`` lots at ``exit_price``.

    Returns 0 while the inputs are incomplete (non-positive prices or lot
    size, empty instrument) so the trade form can preview as the user types.

    Cross pairs (EUR/JPY) use the direct USD-quote formula. Converting them
    properly needs a third exchange rate that the journal does not have, so
    the figure is an approximation.
    """
    if entry_price <= 0 or exit_price <= 0 or lot_size <= 0 or not instrument:
        return 0.0

    if Position(position) == Position.LONG:
        delta = exit_price - entry_price
    else:
        delta = entry_price - exit_price

    kind = classify_instrument(instrument)

    if kind == InstrumentKind.METAL:
        return delta * lot_size * GOLD_CONTRACT_SIZE
    if kind == InstrumentKind.NON_PAIR:
        return delta * lot_size
    if kind == InstrumentKind.USD_BASE:
        # P/L is in the quote currency; convert back to USD at the exit rate
        return (delta * lot_size * FOREX_CONTRACT_SIZE) / exit_price
    # USD_QUOTE and CROSS
    return delta * lot_size * FOREX_CONTRACT_SIZE


def exit_price_for_outcome(outcome: TradeOutcome, stop_loss: float, take_profit: float) -> float:
    """A win closes at take profit, a loss at stop loss"""
    return take_profit if TradeOutcome(outcome) == TradeOutcome.WIN else stop_loss


def preview_trade(
    entry_price: float,
    stop_loss: float,
    take_profit: float,
    position: Position,
    lot_size: float,
    instrument: str,
    outcome: Optional[TradeOutcome] = None,
) -> TradePreview:
    """Potential profit (at TP), potential loss (at SL) and the P/L for the chosen outcome"""
    potential_profit = compute_pnl(entry_price, take_profit, position, lot_size, instrument)
    potential_loss = compute_pnl(entry_price, stop_loss, position, lot_size, instrument)

    if outcome is None:
        pnl = 0.0
    elif TradeOutcome(outcome) == TradeOutcome.WIN:
        pnl = potential_profit
    else:
        pnl = potential_loss

    return TradePreview(potential_profit=potential_profit, potential_loss=potential_loss, pnl=pnl)
