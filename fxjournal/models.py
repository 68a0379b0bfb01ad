# fxjournal/models.py
from sqlalchemy import Column, Integer, String, Float, Text
from .database import Base


class Account(Base):
    __tablename__ = "accounts"

    id = Column(String, primary_key=True, index=True)
    sort_index = Column(Integer, nullable=False, default=0)  # creation order
    name = Column(String, nullable=False)
    initial_balance = Column(Float, nullable=False, default=0)
    account_type = Column(String, nullable=False)  # 'Live' or 'Funded'


class Trade(Base):
    __tablename__ = "trades"

    id = Column(String, primary_key=True, index=True)
    sort_index = Column(Integer, nullable=False, default=0)  # list order, newest first
    account_id = Column(String, index=True, nullable=False)
    instrument = Column(String, nullable=False)
    position = Column(String, nullable=False)  # 'Long' or 'Short'
    lot_size = Column(Float, nullable=False)
    entry_price = Column(Float, nullable=False)
    exit_price = Column(Float, nullable=False)
    stop_loss = Column(Float, nullable=False)
    take_profit = Column(Float, nullable=False)
    pnl = Column(Float, nullable=False)
    outcome = Column(String, nullable=False)  # 'Win' or 'Loss'
    trade_date = Column(String, nullable=False)
    strategy = Column(String, default="")
    notes = Column(Text, default="")
    screenshot = Column(Text, nullable=True)  # data URL


class Setting(Base):
    __tablename__ = "settings"

    key = Column(String, primary_key=True)
    value = Column(String, nullable=True)
