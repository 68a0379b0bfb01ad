# fxjournal/crud.py
from typing import List, Optional, Sequence

from sqlalchemy.orm import Session

from . import models, schemas

ACTIVE_ACCOUNT_KEY = "active_account_id"

# ==================== ACCOUNT CRUD ====================

def get_accounts(db: Session) -> List[schemas.Account]:
    rows = db.query(models.Account).order_by(models.Account.sort_index).all()
    return [schemas.Account.model_validate(row) for row in rows]


def replace_accounts(db: Session, accounts: Sequence[schemas.Account]):
    """Make the stored accounts exactly ``accounts``, in that order"""
    keep_ids = [a.id for a in accounts]
    db.query(models.Account).filter(models.Account.id.notin_(keep_ids)).delete(synchronize_session=False)

    for index, account in enumerate(accounts):
        db.merge(models.Account(
            id=account.id,
            sort_index=index,
            name=account.name,
            initial_balance=account.initial_balance,
            account_type=account.account_type.value,
        ))
    db.commit()

# ==================== TRADE CRUD ====================

def get_trades(db: Session) -> List[schemas.Trade]:
    rows = db.query(models.Trade).order_by(models.Trade.sort_index).all()
    return [schemas.Trade.model_validate(row) for row in rows]


def replace_trades(db: Session, trades: Sequence[schemas.Trade]):
    """Make the stored trades exactly ``trades``, in that order"""
    keep_ids = [t.id for t in trades]
    db.query(models.Trade).filter(models.Trade.id.notin_(keep_ids)).delete(synchronize_session=False)

    for index, trade in enumerate(trades):
        db.merge(models.Trade(
            sort_index=index,
            **trade.model_dump(mode="json"),
        ))
    db.commit()

# ==================== SETTINGS ====================

def get_setting(db: Session, key: str) -> Optional[str]:
    row = db.get(models.Setting, key)
    return row.value if row else None


def set_setting(db: Session, key: str, value: Optional[str]):
    if value is None:
        db.query(models.Setting).filter(models.Setting.key == key).delete()
    else:
        db.merge(models.Setting(key=key, value=value))
    db.commit()


def get_active_account_id(db: Session) -> Optional[str]:
    return get_setting(db, ACTIVE_ACCOUNT_KEY)


def set_active_account_id(db: Session, account_id: Optional[str]):
    set_setting(db, ACTIVE_ACCOUNT_KEY, account_id)
