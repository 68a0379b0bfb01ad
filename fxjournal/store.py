# fxjournal/store.py
"""
The journal store: accounts, trades and the active account.

``JournalStore`` holds the working copy in memory and writes every change
through to a ``JournalRepository``. The web layer gets the store from the
application state rather than from a module global, so tests and
alternative front ends can hand in their own repository.
"""
import logging
import uuid
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError

from . import crud, schemas
from .pnl import compute_pnl, exit_price_for_outcome
from .stats import compute_equity_curve, compute_stats, current_balance, parse_trade_date

logger = logging.getLogger(__name__)


class JournalError(Exception):
    """Base class for store errors"""


class AccountNotFoundError(JournalError):
    pass


class TradeNotFoundError(JournalError):
    pass


class NoActiveAccountError(JournalError):
    pass


class PersistenceError(JournalError):
    """The repository could not read or write the journal"""


class JournalRepository(ABC):
    @abstractmethod
    def load_accounts(self) -> List[schemas.Account]:
        pass

    @abstractmethod
    def save_accounts(self, accounts: Sequence[schemas.Account]) -> None:
        pass

    @abstractmethod
    def load_trades(self) -> List[schemas.Trade]:
        pass

    @abstractmethod
    def save_trades(self, trades: Sequence[schemas.Trade]) -> None:
        pass

    @abstractmethod
    def load_active_account_id(self) -> Optional[str]:
        pass

    @abstractmethod
    def save_active_account_id(self, account_id: Optional[str]) -> None:
        pass


class SqlJournalRepository(JournalRepository):
    """Repository backed by the SQLAlchemy models"""

    def __init__(self, session_factory):
        self.session_factory = session_factory

    def _run(self, action: str, func, *args):
        with self.session_factory() as db:
            try:
                return func(db, *args)
            except SQLAlchemyError as e:
                db.rollback()
                logger.exception("Failed to %s", action)
                raise PersistenceError(f"Failed to {action}") from e

    def load_accounts(self):
        return self._run("load accounts", crud.get_accounts)

    def save_accounts(self, accounts):
        self._run("save accounts", crud.replace_accounts, accounts)

    def load_trades(self):
        return self._run("load trades", crud.get_trades)

    def save_trades(self, trades):
        self._run("save trades", crud.replace_trades, trades)

    def load_active_account_id(self):
        return self._run("load the active account", crud.get_active_account_id)

    def save_active_account_id(self, account_id):
        self._run("save the active account", crud.set_active_account_id, account_id)


class MemoryJournalRepository(JournalRepository):
    """Keeps copies of everything in plain lists"""

    def __init__(self, accounts=None, trades=None, active_account_id=None):
        self.accounts = list(accounts or [])
        self.trades = list(trades or [])
        self.active_account_id = active_account_id

    def load_accounts(self):
        return [a.model_copy() for a in self.accounts]

    def save_accounts(self, accounts):
        self.accounts = [a.model_copy() for a in accounts]

    def load_trades(self):
        return [t.model_copy() for t in self.trades]

    def save_trades(self, trades):
        self.trades = [t.model_copy() for t in trades]

    def load_active_account_id(self):
        return self.active_account_id

    def save_active_account_id(self, account_id):
        self.active_account_id = account_id


def new_id() -> str:
    return uuid.uuid4().hex


def build_trade(form: schemas.TradeForm, trade_id: str, account_id: str) -> schemas.Trade:
    """Turn a filled-in form into a trade, deriving exit price and P/L from the outcome"""
    exit_price = exit_price_for_outcome(form.outcome, form.stop_loss, form.take_profit)
    pnl = compute_pnl(form.entry_price, exit_price, form.position, form.lot_size, form.instrument)
    return schemas.Trade(
        id=trade_id,
        account_id=account_id,
        exit_price=exit_price,
        pnl=pnl,
        **form.model_dump(),
    )


class JournalStore:
    def __init__(self, repository: JournalRepository):
        self.repository = repository
        self._accounts = repository.load_accounts()
        self._trades = repository.load_trades()

        active_id = repository.load_active_account_id()
        if active_id and not any(a.id == active_id for a in self._accounts):
            logger.warning("Stored active account %s no longer exists", active_id)
            active_id = None
        self._active_account_id = active_id

        if self._active_account_id is None and self._accounts:
            self._active_account_id = self._accounts[0].id
            self.repository.save_active_account_id(self._active_account_id)

        logger.info("Loaded %d accounts and %d trades", len(self._accounts), len(self._trades))

    # ---------- accounts ----------
    @property
    def accounts(self) -> List[schemas.Account]:
        return list(self._accounts)

    @property
    def active_account_id(self) -> Optional[str]:
        return self._active_account_id

    @property
    def active_account(self) -> Optional[schemas.Account]:
        return self.get_account(self._active_account_id) if self._active_account_id else None

    def get_account(self, account_id: str) -> schemas.Account:
        for account in self._accounts:
            if account.id == account_id:
                return account
        raise AccountNotFoundError(f"Account {account_id} not found")

    def add_account(self, data: schemas.AccountCreate) -> schemas.Account:
        account = schemas.Account(id=new_id(), **data.model_dump())
        accounts = self._accounts + [account]
        self.repository.save_accounts(accounts)
        self._accounts = accounts
        logger.info("Created %s account %r", account.account_type.value, account.name)

        if not self._active_account_id:
            self.set_active_account(account.id)
        return account

    def set_active_account(self, account_id: Optional[str]):
        if account_id is not None:
            self.get_account(account_id)
        self.repository.save_active_account_id(account_id)
        self._active_account_id = account_id

    # ---------- trades ----------
    @property
    def all_trades(self) -> List[schemas.Trade]:
        return list(self._trades)

    @property
    def trades(self) -> List[schemas.Trade]:
        """Trades of the active account, newest entry first"""
        if not self._active_account_id:
            return []
        return [t for t in self._trades if t.account_id == self._active_account_id]

    def sorted_trades(self) -> List[schemas.Trade]:
        """Active trades by trade date, latest first; undated trades go last"""
        dated = []
        undated = []
        for trade in self.trades:
            when = parse_trade_date(trade.trade_date)
            if when is None:
                undated.append(trade)
            else:
                dated.append((when, trade))
        dated.sort(key=lambda item: item[0], reverse=True)
        return [t for _, t in dated] + undated

    def _save_trades(self, trades: List[schemas.Trade]):
        # Memory only changes once the repository has accepted the new list
        self.repository.save_trades(trades)
        self._trades = trades

    def get_trade(self, trade_id: str) -> schemas.Trade:
        for trade in self._trades:
            if trade.id == trade_id:
                return trade
        raise TradeNotFoundError(f"Trade {trade_id} not found")

    def add_trade(self, form: schemas.TradeForm) -> schemas.Trade:
        if not self._active_account_id:
            raise NoActiveAccountError("Cannot add trade: no active account")

        trade = build_trade(form, new_id(), self._active_account_id)
        self._save_trades([trade] + self._trades)
        logger.info("Added %s %s trade on %s (P/L %.2f)",
                    trade.outcome.value, trade.position.value, trade.instrument, trade.pnl)
        return trade

    def update_trade(self, trade_id: str, form: schemas.TradeForm) -> schemas.Trade:
        existing = self.get_trade(trade_id)
        updated = build_trade(form, existing.id, existing.account_id)
        self._save_trades([updated if t.id == trade_id else t for t in self._trades])
        logger.info("Updated trade %s", trade_id)
        return updated

    def delete_trade(self, trade_id: str):
        self.get_trade(trade_id)
        self._save_trades([t for t in self._trades if t.id != trade_id])
        logger.info("Deleted trade %s", trade_id)

    # ---------- derived ----------
    def _initial_balance(self) -> float:
        account = self.active_account
        return account.initial_balance if account else 0.0

    def current_balance(self) -> float:
        if not self._active_account_id:
            return 0.0
        return current_balance(self.trades, self._initial_balance())

    def stats(self) -> schemas.StatsResponse:
        trades = self.trades
        stats = compute_stats(trades, self._initial_balance())
        return schemas.StatsResponse(
            account_id=self._active_account_id,
            current_balance=self.current_balance(),
            trade_count=len(trades),
            **stats.model_dump(),
        )

    def equity_curve(self) -> List[schemas.EquityPoint]:
        if not self._active_account_id:
            return []
        return compute_equity_curve(self.trades, self._initial_balance())
