"""Trade storage and the per-user ledger."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from models import TRADE_FIELDS, LedgerEntry, Trade

logger = logging.getLogger(__name__)

TRADE_TYPES = ("buy", "sell")
ORDER_TYPES = ("market", "limit", "stop", "stoplimit")
STATUSES = ("executed", "pending", "cancelled", "completed", "partially_completed")
OPTION_TYPES = ("CE", "PE")


class TradeNotFound(Exception):
    """No trade with that id belongs to the user."""


def _positive(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0


def validate_trade(trade: Mapping[str, Any]) -> List[str]:
    """Return a list of problems with ``trade``; empty when it is valid."""

    errors: List[str] = []
    if not trade.get("userId"):
        errors.append("User ID is required")
    if not trade.get("type"):
        errors.append("Trade type is required")
    if not trade.get("asset"):
        errors.append("Asset is required")
    if not _positive(trade.get("amount")):
        errors.append("Valid amount is required")
    if not _positive(trade.get("price")):
        errors.append("Valid price is required")
    if not trade.get("timestamp"):
        errors.append("Timestamp is required")
    if not trade.get("orderType"):
        errors.append("Order type is required")
    if not trade.get("status"):
        errors.append("Status is required")

    if trade.get("type") and trade["type"] not in TRADE_TYPES:
        errors.append('Trade type must be either "buy" or "sell"')
    if trade.get("orderType") and trade["orderType"] not in ORDER_TYPES:
        errors.append("Invalid order type")
    if trade.get("status") and trade["status"] not in STATUSES:
        errors.append("Invalid status")
    if trade.get("optionType") and trade["optionType"] not in OPTION_TYPES:
        errors.append('Option type must be either "CE" or "PE"')
    return errors


def trade_to_dict(trade: Trade) -> Dict[str, Any]:
    data = {}
    for field, attr in TRADE_FIELDS.items():
        value = getattr(trade, attr)
        if value is not None:
            data[field] = value
    return data


def _apply(trade: Trade, payload: Mapping[str, Any]) -> None:
    for field, attr in TRADE_FIELDS.items():
        if field in payload:
            setattr(trade, attr, payload[field])


def _trade_date(timestamp: Any) -> str:
    text = str(timestamp or "")
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return text[:10]
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc)
    return parsed.date().isoformat()


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def append_ledger(session: Session, snapshot: Mapping[str, Any]) -> LedgerEntry:
    user_id = snapshot.get("userId")
    if not user_id:
        raise ValueError("User ID is required for saving to ledger")
    entry = LedgerEntry(
        user_id=user_id,
        trade_date=_trade_date(snapshot.get("timestamp")),
        trade_id=snapshot.get("id"),
        trade=dict(snapshot),
        created_at=_now_iso(),
    )
    session.add(entry)
    return entry


def create_trade(session: Session, payload: Mapping[str, Any]) -> Trade:
    data = dict(payload)
    data.setdefault("id", uuid4().hex)
    trade = Trade()
    _apply(trade, data)
    session.add(trade)
    append_ledger(session, trade_to_dict(trade))
    session.commit()
    logger.info("trade_created id=%s user=%s", trade.id, trade.user_id)
    return trade


def update_trade(session: Session, trade_id: str, payload: Mapping[str, Any]) -> Trade:
    user_id = payload.get("userId")
    trade = session.scalars(
        select(Trade).where(Trade.id == trade_id, Trade.user_id == user_id)
    ).first()
    if trade is None:
        raise TradeNotFound(trade_id)
    previous = trade_to_dict(trade)
    updates = {k: v for k, v in payload.items() if k != "id"}
    _apply(trade, updates)
    snapshot = {**previous, **trade_to_dict(trade)}
    snapshot["updatedAt"] = _now_iso()
    snapshot["previousState"] = previous
    append_ledger(session, snapshot)
    session.commit()
    logger.info("trade_updated id=%s user=%s", trade_id, user_id)
    return trade


def list_trades(session: Session, user_id: str) -> List[Dict[str, Any]]:
    rows = session.scalars(
        select(Trade)
        .where(Trade.user_id == user_id)
        .order_by(Trade.timestamp.desc(), Trade.pk.desc())
    ).all()
    return [trade_to_dict(row) for row in rows]


def get_ledger(
    session: Session,
    user_id: str,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
) -> List[Dict[str, Any]]:
    query = select(LedgerEntry).where(LedgerEntry.user_id == user_id)
    if start_date:
        query = query.where(LedgerEntry.trade_date >= start_date)
    if end_date:
        query = query.where(LedgerEntry.trade_date <= end_date)
    query = query.order_by(
        LedgerEntry.trade_date.desc(), LedgerEntry.created_at.desc(), LedgerEntry.pk.desc()
    )
    return [
        {
            "userId": row.user_id,
            "tradeDate": row.trade_date,
            "tradeId": row.trade_id,
            "trade": row.trade,
            "createdAt": row.created_at,
        }
        for row in session.scalars(query).all()
    ]


def group_by_date(entries: List[Dict[str, Any]]) -> Dict[str, List[Dict[str, Any]]]:
    grouped: Dict[str, List[Dict[str, Any]]] = {}
    for entry in entries:
        grouped.setdefault(entry["tradeDate"], []).append(entry)
    return grouped
