"""SQLAlchemy ORM models for the trade ledger."""

from __future__ import annotations

from sqlalchemy import JSON, Boolean, Float, Integer, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base declarative class for ORM models."""


class Trade(Base):
    """Current state of a user's trade, stored in the ``trades`` table."""

    __tablename__ = "trades"

    pk: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    user_id: Mapped[str] = mapped_column("userId", Text, nullable=False, index=True)
    type: Mapped[str] = mapped_column(Text, nullable=False)
    asset: Mapped[str] = mapped_column(Text, nullable=False)
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    price: Mapped[float] = mapped_column(Float, nullable=False)
    timestamp: Mapped[str] = mapped_column(Text, nullable=False)
    order_type: Mapped[str] = mapped_column("orderType", Text, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False)
    completed_with: Mapped[str | None] = mapped_column("completedWith", Text)
    completed_at: Mapped[str | None] = mapped_column("completedAt", Text)
    remaining_amount: Mapped[float | None] = mapped_column("remainingAmount", Float)
    original_amount: Mapped[float | None] = mapped_column("originalAmount", Float)
    lot_size: Mapped[int | None] = mapped_column("lotSize", Integer)
    is_option: Mapped[bool | None] = mapped_column("isOption", Boolean)
    strike_price: Mapped[float | None] = mapped_column("strikePrice", Float)
    option_type: Mapped[str | None] = mapped_column("optionType", Text)
    premium: Mapped[float | None] = mapped_column(Float)


class LedgerEntry(Base):
    """Append-only snapshot written whenever a trade is created or changed."""

    __tablename__ = "ledger"

    pk: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column("userId", Text, nullable=False, index=True)
    trade_date: Mapped[str] = mapped_column("tradeDate", Text, nullable=False, index=True)
    trade_id: Mapped[str | None] = mapped_column("tradeId", Text)
    trade: Mapped[dict] = mapped_column(JSON, nullable=False)
    created_at: Mapped[str] = mapped_column("createdAt", Text, nullable=False)


# API field name -> ORM attribute
TRADE_FIELDS = {
    "id": "id",
    "userId": "user_id",
    "type": "type",
    "asset": "asset",
    "amount": "amount",
    "price": "price",
    "timestamp": "timestamp",
    "orderType": "order_type",
    "status": "status",
    "completedWith": "completed_with",
    "completedAt": "completed_at",
    "remainingAmount": "remaining_amount",
    "originalAmount": "original_amount",
    "lotSize": "lot_size",
    "isOption": "is_option",
    "strikePrice": "strike_price",
    "optionType": "option_type",
    "premium": "premium",
}
