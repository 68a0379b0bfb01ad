# fxjournal/market_data.py
import logging
import time
from datetime import datetime
from typing import Optional

import finnhub

from .config import settings
from .pnl import clean_symbol

logger = logging.getLogger(__name__)


def to_finnhub_symbol(instrument: str) -> str:
    """Map a journal instrument to a Finnhub symbol.

    Pairs go through OANDA ('EUR/USD' -> 'OANDA:EUR_USD'); tickers such as
    'AAPL' are used unchanged.
    """
    symbol = clean_symbol(instrument).upper()
    if "/" in symbol:
        return f"OANDA:{symbol.replace('/', '_')}"
    return symbol


class FinnhubQuoteClient:
    def __init__(self, api_key: str = None, rate_limit_per_minute: int = None, client=None):
        self.api_key = settings.FINNHUB_API_KEY if api_key is None else api_key
        self.rate_limit = rate_limit_per_minute or settings.FINNHUB_RATE_LIMIT_PER_MINUTE
        self.finnhub_client = client
        if self.finnhub_client is None and self.api_key:
            self.finnhub_client = finnhub.Client(api_key=self.api_key)

        # Rate limiting
        self.requests_per_minute = 0
        self.last_reset = datetime.now()

    @property
    def configured(self) -> bool:
        return self.finnhub_client is not None

    def get_quote(self, instrument: str) -> Optional[float]:
        """Last price for an instrument, or None when Finnhub has nothing usable"""
        if not self.finnhub_client:
            return None

        finnhub_symbol = to_finnhub_symbol(instrument)
        try:
            self._check_rate_limit()
            quote = self.finnhub_client.quote(finnhub_symbol)
            self.requests_per_minute += 1
        except Exception:
            logger.exception("Finnhub quote failed for %s", finnhub_symbol)
            return None

        # Finnhub answers unknown symbols with zeros
        price = (quote or {}).get("c") or 0
        if price <= 0:
            logger.info("No Finnhub quote for %s", finnhub_symbol)
            return None
        return float(price)

    def _check_rate_limit(self):
        """Stay under the free-tier requests-per-minute limit"""
        now = datetime.now()
        if (now - self.last_reset).seconds >= 60:
            self.requests_per_minute = 0
            self.last_reset = now

        if self.requests_per_minute >= self.rate_limit:
            wait_time = 60 - (now - self.last_reset).seconds
            if wait_time > 0:
                logger.warning("Finnhub rate limit reached, waiting %s seconds", wait_time)
                time.sleep(wait_time)
            self.requests_per_minute = 0
            self.last_reset = datetime.now()
