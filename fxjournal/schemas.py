# fxjournal/schemas.py
from enum import Enum
from typing import Optional, List

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Position(str, Enum):
    LONG = "Long"
    SHORT = "Short"


class TradeOutcome(str, Enum):
    WIN = "Win"
    LOSS = "Loss"


class AccountType(str, Enum):
    LIVE = "Live"
    FUNDED = "Funded"


class Impact(str, Enum):
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


# Auth schemas
class LoginRequest(BaseModel):
    username: str
    password: str


# Account schemas
class AccountCreate(BaseModel):
    name: str = Field(..., min_length=1)
    initial_balance: float = Field(..., ge=0)
    account_type: AccountType = AccountType.LIVE


class Account(AccountCreate):
    id: str

    model_config = ConfigDict(from_attributes=True)


class ActiveAccountUpdate(BaseModel):
    account_id: Optional[str] = None


# Trade schemas
class TradeForm(BaseModel):
    """What the user fills in; exit price and P/L are derived from the outcome."""
    instrument: str = Field(..., min_length=1)
    position: Position = Position.LONG
    lot_size: float = Field(..., gt=0)
    entry_price: float
    stop_loss: float
    take_profit: float
    outcome: TradeOutcome
    trade_date: str
    strategy: str = ""
    notes: str = ""
    screenshot: Optional[str] = None


class Trade(TradeForm):
    id: str
    account_id: str
    exit_price: float
    pnl: float

    model_config = ConfigDict(from_attributes=True)


class PreviewRequest(BaseModel):
    instrument: str = ""
    position: Position = Position.LONG
    lot_size: float = 0
    entry_price: float = 0
    stop_loss: float = 0
    take_profit: float = 0
    outcome: Optional[TradeOutcome] = None


class TradePreview(BaseModel):
    potential_profit: float
    potential_loss: float
    pnl: float


# Stats schemas
class PortfolioStats(BaseModel):
    total_pnl: float
    win_rate: float
    account_growth: float


class EquityPoint(BaseModel):
    label: str
    balance: float


class StatsResponse(PortfolioStats):
    account_id: Optional[str] = None
    current_balance: float
    trade_count: int


# AI schemas
class WebSource(BaseModel):
    uri: str
    title: str = ""


class AnalysisResult(BaseModel):
    text: str
    sources: List[WebSource] = []


class EconomicEvent(BaseModel):
    time: str
    currency: str
    impact: Impact
    event: str
    actual: Optional[str] = None
    forecast: Optional[str] = None
    previous: Optional[str] = None

    @field_validator("actual", "forecast", "previous", mode="before")
    @classmethod
    def _stringify(cls, value):
        # Models sometimes answer with bare numbers
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value


class PriceResponse(BaseModel):
    instrument: str
    price: float
