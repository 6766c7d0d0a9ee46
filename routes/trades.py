"""Trade CRUD and ledger endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Body, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from db import get_session
from routes.helpers import error_response
from services import trades as trade_store
from services.errors import ValidationError

router = APIRouter()

logger = logging.getLogger(__name__)


@router.get("/api/trades")
def list_trades(
    user_id: str | None = Query(None, alias="userId"),
    session: Session = Depends(get_session),
) -> JSONResponse:
    if not user_id:
        raise ValidationError("User ID is required")
    try:
        rows = trade_store.list_trades(session, user_id)
    except SQLAlchemyError:
        logger.exception("list_trades_failed user=%s", user_id)
        return error_response(500, "Failed to fetch trades")
    return JSONResponse({"trades": rows})


@router.post("/api/trades")
def create_trade(
    payload: dict = Body(...),
    session: Session = Depends(get_session),
) -> JSONResponse:
    errors = trade_store.validate_trade(payload)
    if errors:
        raise ValidationError("Invalid trade data", errors)
    try:
        trade = trade_store.create_trade(session, payload)
    except SQLAlchemyError:
        session.rollback()
        logger.exception("create_trade_failed user=%s", payload.get("userId"))
        return error_response(500, "Failed to create trade")
    return JSONResponse(
        {"message": "Trade saved successfully", "tradeId": trade.id},
        status_code=201,
    )


@router.put("/api/trades/{trade_id}")
def update_trade(
    trade_id: str,
    payload: dict = Body(...),
    session: Session = Depends(get_session),
) -> JSONResponse:
    if not payload.get("userId"):
        raise ValidationError("User ID is required for updating trades")
    errors = trade_store.validate_trade(payload)
    if errors:
        raise ValidationError("Invalid trade data", errors)
    try:
        trade_store.update_trade(session, trade_id, payload)
    except trade_store.TradeNotFound:
        return error_response(
            404, "Trade not found or you do not have permission to update it"
        )
    except SQLAlchemyError:
        session.rollback()
        logger.exception("update_trade_failed id=%s", trade_id)
        return error_response(500, "Failed to update trade")
    return JSONResponse({"message": "Trade updated successfully", "modifiedCount": 1})


@router.get("/api/ledger")
def ledger(
    user_id: str | None = Query(None, alias="userId"),
    start_date: str | None = Query(None, alias="startDate"),
    end_date: str | None = Query(None, alias="endDate"),
    session: Session = Depends(get_session),
) -> JSONResponse:
    if not user_id:
        raise ValidationError("User ID is required")
    try:
        entries = trade_store.get_ledger(session, user_id, start_date, end_date)
    except SQLAlchemyError:
        logger.exception("ledger_failed user=%s", user_id)
        return error_response(500, "Failed to fetch ledger")
    return JSONResponse(
        {"ledger": trade_store.group_by_date(entries), "totalEntries": len(entries)}
    )
