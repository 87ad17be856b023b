"""
Receipts API router for browsing and deleting saved receipts.
"""

from fastapi import APIRouter, Depends, HTTPException
import logging

from receiptsnap.dependencies import get_history, require_user_id
from receiptsnap.models.receipt import ReceiptList, ReceiptResponse
from receiptsnap.services.history import ReceiptHistoryService

router = APIRouter(prefix="/receipts", tags=["receipts"])
logger = logging.getLogger(__name__)


@router.get("", response_model=ReceiptList)
async def list_receipts(
    user_id: str = Depends(require_user_id),
    history: ReceiptHistoryService = Depends(get_history)
):
    """List the signed-in user's receipts with items, newest purchase first."""
    try:
        receipts = history.list_receipts(user_id)
        return ReceiptList(receipts=receipts, total=len(receipts))

    except Exception as e:
        logger.error("Failed to fetch receipts", extra={
            "user_id": user_id,
            "error": str(e)
        }, exc_info=True)
        raise HTTPException(
            status_code=500,
            detail=f"Failed to fetch receipts: {str(e)}"
        )


@router.get("/{receipt_id}", response_model=ReceiptResponse)
async def get_receipt(
    receipt_id: str,
    user_id: str = Depends(require_user_id),
    history: ReceiptHistoryService = Depends(get_history)
):
    """
    Get a single receipt by ID.

    Args:
        receipt_id: Receipt UUID

    Returns:
        Receipt details with items
    """
    try:
        receipt = history.get_receipt(user_id, receipt_id)

        if receipt is None:
            raise HTTPException(status_code=404, detail="Receipt not found")

        return receipt

    except HTTPException:
        raise
    except Exception as e:
        logger.error("Failed to fetch receipt", extra={
            "receipt_id": receipt_id,
            "user_id": user_id,
            "error": str(e)
        }, exc_info=True)
        raise HTTPException(
            status_code=500,
            detail=f"Failed to fetch receipt: {str(e)}"
        )


@router.delete("/{receipt_id}")
async def delete_receipt(
    receipt_id: str,
    user_id: str = Depends(require_user_id),
    history: ReceiptHistoryService = Depends(get_history)
):
    """Delete a receipt, its items and its stored image."""
    try:
        if not history.delete_receipt(user_id, receipt_id):
            raise HTTPException(status_code=404, detail="Receipt not found")

        return {"message": "Receipt deleted successfully", "id": receipt_id}

    except HTTPException:
        raise
    except Exception as e:
        logger.error("Failed to delete receipt", extra={
            "receipt_id": receipt_id,
            "user_id": user_id,
            "error": str(e)
        }, exc_info=True)
        raise HTTPException(
            status_code=500,
            detail=f"Failed to delete receipt: {str(e)}"
        )
