"""
Stats API router: monthly spend trend and per-item price history.
"""

from fastapi import APIRouter, Depends, HTTPException, Query
from typing import List
import logging

from receiptsnap.dependencies import get_history, require_user_id
from receiptsnap.models.receipt import MonthlySpending, PriceHistoryPoint
from receiptsnap.services.history import ReceiptHistoryService

router = APIRouter(prefix="/stats", tags=["stats"])
logger = logging.getLogger(__name__)


@router.get("/monthly", response_model=List[MonthlySpending])
async def monthly_spending(
    months: int = Query(12, ge=1, le=36, description="Months to include, current month last"),
    user_id: str = Depends(require_user_id),
    history: ReceiptHistoryService = Depends(get_history)
):
    """Total spend per calendar month, zero-filled."""
    try:
        return history.monthly_spending(user_id, months=months)

    except Exception as e:
        logger.error("Failed to compute monthly spending", extra={
            "user_id": user_id,
            "error": str(e)
        }, exc_info=True)
        raise HTTPException(
            status_code=500,
            detail=f"Failed to compute monthly spending: {str(e)}"
        )


@router.get("/items/{name}", response_model=List[PriceHistoryPoint])
async def item_price_history(
    name: str,
    user_id: str = Depends(require_user_id),
    history: ReceiptHistoryService = Depends(get_history)
):
    """Price paid for an item each time it was bought."""
    try:
        return history.item_price_history(user_id, name)

    except Exception as e:
        logger.error("Failed to fetch item history", extra={
            "user_id": user_id,
            "item": name,
            "error": str(e)
        }, exc_info=True)
        raise HTTPException(
            status_code=500,
            detail=f"Failed to fetch item history: {str(e)}"
        )
