# fxjournal/ai_service.py
"""
Generative-AI collaborator: trade commentary, today's economic calendar and
price lookups.

Every public method either returns a parsed result or raises
``AIServiceError`` carrying a message that can be shown to the user as is.
Nothing here touches stored trades.
"""
import json
import logging
import re
from typing import List, Optional

from openai import OpenAI, OpenAIError
from pydantic import ValidationError

from .config import settings
from .market_data import FinnhubQuoteClient
from .schemas import AnalysisResult, EconomicEvent, Trade, WebSource
from .utils import format_currency

logger = logging.getLogger(__name__)

NUMBER_RE = re.compile(r"-?\d+(?:\.\d+)?")

ANALYST_ROLE = "You are an expert financial analyst helping a retail forex and CFD trader review their journal."


class AIServiceError(Exception):
    """A recoverable failure talking to the AI service"""


def strip_code_fence(text: str) -> str:
    """Remove a surrounding ```json ... ``` (or bare ```) fence"""
    text = text.strip()
    if text.startswith("```json"):
        text = text[7:]
    elif text.startswith("```"):
        text = text[3:]
    else:
        return text
    if text.rstrip().endswith("```"):
        text = text.rstrip()[:-3]
    return text.strip()


def parse_price(text: str) -> float:
    """First number in a reply like '1.0850' or '2,345.10 USD'"""
    match = NUMBER_RE.search((text or "").replace(",", ""))
    if not match:
        raise ValueError(f"no number in {text!r}")
    return float(match.group())


def build_trade_prompt(trade: Trade) -> str:
    return f"""
    Analyze the following trade based on the provided details and real-world market data from the trade date.
    Use web search to find news, market sentiment, and major economic events that occurred around the date of the trade for the specified instrument.
    Provide a concise (2-3 paragraphs) analysis covering:
    1. Market Context: What were the market conditions and key drivers at the time?
    2. Strategy Alignment: Was the trader's strategy suitable for the market environment?
    3. Actionable Feedback: Offer constructive feedback for future trades.
    Format the response as clean markdown.

    Trade Details:
    - Instrument: {trade.instrument}
    - Position: {trade.position.value}
    - Outcome: {trade.outcome.value} ({format_currency(trade.pnl)})
    - Trade Date: {trade.trade_date}
    - Stated Strategy: {trade.strategy}
    - Trader's Notes: "{trade.notes}"

    Provide your expert analysis based on this data and grounded in real market events.
    """


CALENDAR_PROMPT = """
    Provide a list of today's high and medium impact economic calendar events relevant to forex trading.
    Include the time (in UTC), currency, impact level ('High', 'Medium', or 'Low'), event name, and the actual, forecast, and previous values.
    If a value is not available, the value for that key should be null.
    Focus on major currencies: USD, EUR, JPY, GBP, CHF, CAD, AUD, NZD.
    Return ONLY a valid JSON array of objects with the following keys: "time", "currency", "impact", "event", "actual", "forecast", "previous".
    The value for "impact" must be one of 'High', 'Medium', or 'Low'.
    Do not include any text or explanation outside of the JSON array.
    """


class AITradingAnalyzer:
    def __init__(self, api_key: str = None, model: str = None, web_search: bool = None,
                 client=None, quote_client: Optional[FinnhubQuoteClient] = None):
        self.api_key = settings.OPENAI_API_KEY if api_key is None else api_key
        self.model = model or settings.OPENAI_MODEL
        self.web_search = settings.OPENAI_WEB_SEARCH if web_search is None else web_search
        self.client = client
        if self.client is None and self.api_key:
            self.client = OpenAI(api_key=self.api_key, timeout=settings.OPENAI_TIMEOUT)
        self.quote_client = quote_client

    def _complete(self, prompt: str):
        """Send one prompt and return the first message of the reply"""
        if self.client is None:
            raise AIServiceError("The AI service is not configured. Set OPENAI_API_KEY and try again.")

        kwargs = {}
        if self.web_search:
            kwargs["web_search_options"] = {}

        response = self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": ANALYST_ROLE},
                {"role": "user", "content": prompt},
            ],
            **kwargs,
        )
        if not response.choices:
            logger.error("AI reply for model %s had no choices", self.model)
            raise AIServiceError("The AI service returned an empty reply. Please try again.")
        return response.choices[0].message

    def analyze_trade(self, trade: Trade) -> AnalysisResult:
        """Market-context commentary on one trade, with the web sources it cites"""
        try:
            message = self._complete(build_trade_prompt(trade))
        except OpenAIError as e:
            logger.error("Trade analysis failed for %s: %s", trade.id, e)
            raise AIServiceError("There was an error analyzing the trade. Please try again.") from e

        text = (message.content or "").strip()
        if not text:
            raise AIServiceError("The AI service returned an empty analysis. Please try again.")

        return AnalysisResult(text=text, sources=self._sources(message))

    @staticmethod
    def _sources(message) -> List[WebSource]:
        sources = []
        seen = set()
        for annotation in getattr(message, "annotations", None) or []:
            if getattr(annotation, "type", None) != "url_citation":
                continue
            citation = annotation.url_citation
            uri = getattr(citation, "url", None)
            if not uri or uri in seen:
                continue
            seen.add(uri)
            sources.append(WebSource(uri=uri, title=getattr(citation, "title", None) or uri))
        return sources

    def fetch_economic_calendar(self) -> List[EconomicEvent]:
        """Today's high and medium impact events for the major currencies"""
        try:
            message = self._complete(CALENDAR_PROMPT)
            raw = json.loads(strip_code_fence(message.content or ""))
            if not isinstance(raw, list):
                raise ValueError("calendar reply is not a JSON array")
            return [EconomicEvent.model_validate(item) for item in raw]
        except OpenAIError as e:
            logger.error("Economic calendar request failed: %s", e)
            raise AIServiceError("Failed to fetch economic calendar data.") from e
        except (ValueError, ValidationError) as e:
            # json.JSONDecodeError is a ValueError
            logger.error("Failed to parse economic calendar reply: %s", e)
            raise AIServiceError("Failed to fetch economic calendar data.") from e

    def fetch_current_price(self, instrument: str) -> float:
        """Current market price, from Finnhub when available, otherwise from the model"""
        instrument = (instrument or "").strip()
        if not instrument:
            raise AIServiceError("Please select an instrument first.")

        if self.quote_client is not None:
            price = self.quote_client.get_quote(instrument)
            if price is not None:
                return price

        prompt = (f"What is the current market price of {instrument}? "
                  "Respond with only the numerical price, nothing else.")
        try:
            message = self._complete(prompt)
            price = parse_price(message.content)
        except OpenAIError as e:
            logger.error("Price lookup failed for %s: %s", instrument, e)
            raise AIServiceError("Failed to fetch current market price.") from e
        except ValueError as e:
            logger.error("Could not parse price for %s: %s", instrument, e)
            raise AIServiceError("Failed to fetch current market price.") from e

        if price <= 0:
            raise AIServiceError("Failed to fetch current market price.")
        return price

    @classmethod
    def from_settings(cls):
        return cls(quote_client=FinnhubQuoteClient())
