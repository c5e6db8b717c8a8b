"""
SQLAlchemy models for StockStat database.

Uses SQLite for local persistence of:
- Companies and stock indices
- Daily quotes
- Computed statistic rows (one per quote)
- Update history log
"""

from datetime import datetime

from sqlalchemy import (
    Column,
    String,
    Float,
    Integer,
    BigInteger,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Table,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, relationship


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


index_companies = Table(
    "index_companies",
    Base.metadata,
    Column("index_id", Integer, ForeignKey("stock_indices.id"), primary_key=True),
    Column("company_id", Integer, ForeignKey("companies.id"), primary_key=True),
)


class Company(Base):
    """
    Listed company.
    Created on the first quote of an unseen symbol; name starts as the symbol.
    """
    __tablename__ = "companies"

    id = Column(Integer, primary_key=True, autoincrement=True)
    symbol = Column(String(20), nullable=False, unique=True, index=True)
    name = Column(String(200), nullable=False)

    def __repr__(self):
        return f"<Company(id={self.id}, symbol={self.symbol})>"


class StockIndex(Base):
    """Named group of companies, used only to filter reads."""
    __tablename__ = "stock_indices"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(50), nullable=False, unique=True)

    companies = relationship("Company", secondary=index_companies, lazy="selectin")


class DailyQuoteRecord(Base):
    """
    One trading day for one company.
    Append-only per company, at most one row per date.
    """
    __tablename__ = "daily_quotes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False)
    quote_date = Column(Date, nullable=False)

    open = Column(Float, nullable=False)
    close = Column(Float, nullable=False)
    min = Column(Float, nullable=False)
    max = Column(Float, nullable=False)
    volume = Column(BigInteger, default=0)

    company = relationship("Company", lazy="joined")

    __table_args__ = (
        UniqueConstraint("company_id", "quote_date", name="uix_quote_company_date"),
        Index("ix_quotes_company_date", "company_id", "quote_date"),
    )

    def __repr__(self):
        return f"<DailyQuoteRecord(company_id={self.company_id}, date={self.quote_date})>"


class StatisticRecord(Base):
    """
    Indicator values computed for exactly one quote.
    NULL marks an indicator whose warm-up does not cover the quote yet.
    """
    __tablename__ = "statistics"

    id = Column(Integer, primary_key=True, autoincrement=True)
    quote_id = Column(Integer, ForeignKey("daily_quotes.id"), nullable=False, unique=True)

    # Moving averages
    ema5 = Column(Float, nullable=True)
    ema10 = Column(Float, nullable=True)
    ema12 = Column(Float, nullable=True)
    ema14 = Column(Float, nullable=True)
    ema20 = Column(Float, nullable=True)
    ema26 = Column(Float, nullable=True)
    ema50 = Column(Float, nullable=True)
    ema100 = Column(Float, nullable=True)
    sma14 = Column(Float, nullable=True)
    sma28 = Column(Float, nullable=True)
    sma42 = Column(Float, nullable=True)

    # Oscillators
    rsi = Column(Float, nullable=True)
    sts = Column(Float, nullable=True)
    sts_ema = Column(Float, nullable=True)
    macd = Column(Float, nullable=True)
    macd_ema = Column(Float, nullable=True)
    roc = Column(Float, nullable=True)
    sroc = Column(Float, nullable=True)

    # Volatility / trend strength
    atr = Column(Float, nullable=True)
    adx = Column(Float, nullable=True)
    dmi_plus = Column(Float, nullable=True)
    dmi_minus = Column(Float, nullable=True)

    # Volume averages (EMA)
    average_vol5 = Column(Float, nullable=True)
    average_vol12 = Column(Float, nullable=True)
    average_vol26 = Column(Float, nullable=True)
    average_vol50 = Column(Float, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    quote = relationship("DailyQuoteRecord", lazy="joined")

    def __repr__(self):
        return f"<StatisticRecord(quote_id={self.quote_id}, ema5={self.ema5})>"


class UpdateHistory(Base):
    """Log of finished ingestion batches."""
    __tablename__ = "update_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    status = Column(String(20), nullable=False, default="SUCCESS")
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
