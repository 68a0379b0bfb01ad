"""
Pytest configuration and shared fixtures.
"""
import os

# Settings are read on import; keep the suite off the real database and keys
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENVIRONMENT"] = "test"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["OPENAI_API_KEY"] = ""
os.environ["FINNHUB_API_KEY"] = ""

import pytest
from httpx import AsyncClient, ASGITransport

from fxjournal import schemas
from fxjournal.ai_service import AIServiceError
from fxjournal.auth import StaticCredentialVerifier, create_access_token
from fxjournal.auth_utils import COOKIE_NAME
from fxjournal.main import create_app
from fxjournal.store import JournalStore, MemoryJournalRepository, PersistenceError

USERNAME = "trader"
PASSWORD = "secret-pass"


class StubAnalyzer:
    """Stands in for the AI service in API tests"""

    def __init__(self):
        self.fail = False
        self.analyzed = []

    def analyze_trade(self, trade):
        if self.fail:
            raise AIServiceError("There was an error analyzing the trade. Please try again.")
        self.analyzed.append(trade.id)
        return schemas.AnalysisResult(
            text=f"Analysis of {trade.instrument}",
            sources=[schemas.WebSource(uri="https://example.com/news", title="Market news")],
        )

    def fetch_economic_calendar(self):
        if self.fail:
            raise AIServiceError("Failed to fetch economic calendar data.")
        return [schemas.EconomicEvent(time="12:30", currency="USD", impact="High", event="Non-Farm Payrolls",
                                      forecast="180K", previous="175K")]

    def fetch_current_price(self, instrument):
        if self.fail:
            raise AIServiceError("Failed to fetch current market price.")
        return 1.0845


def trade_form(**overrides) -> schemas.TradeForm:
    data = dict(
        instrument="EUR/USD",
        position="Long",
        lot_size=1.0,
        entry_price=1.1000,
        stop_loss=1.0950,
        take_profit=1.1100,
        outcome="Win",
        trade_date="2024-03-01",
        strategy="Breakout",
        notes="London open",
    )
    data.update(overrides)
    return schemas.TradeForm(**data)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def repository():
    return MemoryJournalRepository()


@pytest.fixture
def store(repository):
    return JournalStore(repository)


@pytest.fixture
def analyzer():
    return StubAnalyzer()


@pytest.fixture
def app(store, analyzer):
    return create_app(
        store=store,
        verifier=StaticCredentialVerifier(USERNAME, PASSWORD),
        analyzer=analyzer,
    )


@pytest.fixture
async def anon_client(app):
    """Async HTTP client without a login cookie."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
async def client(app):
    """Async HTTP client that is already logged in."""
    transport = ASGITransport(app=app)
    cookies = {COOKIE_NAME: create_access_token(data={"sub": USERNAME})}
    async with AsyncClient(transport=transport, base_url="http://test", cookies=cookies) as ac:
        yield ac


@pytest.fixture
def make_form():
    """Factory for trade forms with sensible EUR/USD defaults."""
    return trade_form


@pytest.fixture
def credentials():
    """Login accepted by the test app."""
    return {"username": USERNAME, "password": PASSWORD}


class FlakyRepository(MemoryJournalRepository):
    """Memory repository whose saves fail while ``broken`` is set"""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.broken = False

    def _check(self):
        if self.broken:
            raise PersistenceError("Failed to save trades")

    def save_accounts(self, accounts):
        self._check()
        super().save_accounts(accounts)

    def save_trades(self, trades):
        self._check()
        super().save_trades(trades)

    def save_active_account_id(self, account_id):
        self._check()
        super().save_active_account_id(account_id)


@pytest.fixture
def flaky_repository():
    return FlakyRepository()
