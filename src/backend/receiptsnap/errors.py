"""
Error taxonomy for the receipt pipeline and the FastAPI handlers that render it.

Every error carries a user-facing message and the HTTP status the API
answers with. Date/time parse problems are not errors: they degrade to a
fallback value (see receiptsnap.utils.dates).
"""

from typing import Optional, List

from fastapi import Request
from fastapi.responses import JSONResponse


class ReceiptSnapError(Exception):
    """Base class for pipeline errors."""

    status_code: int = 500
    message: str = "Something went wrong. Please try again."

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail or self.message
        super().__init__(self.detail)


class ExtractionParseError(ReceiptSnapError):
    """Extraction response was not valid JSON or did not match a known schema."""

    status_code = 422
    message = "Could not read the receipt. Please retake the photo."


class ExtractionServiceError(ReceiptSnapError):
    """The extraction service could not be reached or answered with an error."""

    status_code = 502
    message = "Receipt analysis is unavailable. Please try again."


class NotAuthenticatedError(ReceiptSnapError):
    status_code = 401
    message = "Please sign in to save receipts."


class UploadError(ReceiptSnapError):
    """Image upload failed; nothing was written to the database."""

    status_code = 502
    message = "Failed to upload the receipt image. Please try again."


class PersistenceError(ReceiptSnapError):
    """
    Receipt or item insert failed.

    When the receipt row was already written before the failure, its id is
    kept in ``receipt_id``; that row is left in place without items.
    """

    status_code = 500
    message = "Failed to save receipt. Please try again."

    def __init__(self, detail: Optional[str] = None, receipt_id: Optional[str] = None):
        super().__init__(detail)
        self.receipt_id = receipt_id


class DraftIncompleteError(ReceiptSnapError):
    """Draft still has items without a price."""

    status_code = 422
    message = "Some items are missing a price."

    def __init__(self, detail: Optional[str] = None, missing: Optional[List[int]] = None):
        super().__init__(detail)
        self.missing = missing or []


class SaveInProgressError(ReceiptSnapError):
    status_code = 409
    message = "This receipt is already being saved."


async def receiptsnap_exception_handler(request: Request, exc: ReceiptSnapError):
    content = {
        "error": exc.message,
        "details": exc.detail,
    }
    if isinstance(exc, PersistenceError) and exc.receipt_id:
        content["receipt_id"] = exc.receipt_id
    if isinstance(exc, DraftIncompleteError):
        content["missing_prices"] = exc.missing
    return JSONResponse(status_code=exc.status_code, content=content)


def status_code_for(error_name: Optional[str]) -> int:
    """HTTP status for a pipeline error class name (500 when unknown)."""
    pending = [ReceiptSnapError]
    while pending:
        cls = pending.pop()
        if cls.__name__ == error_name:
            return cls.status_code
        pending.extend(cls.__subclasses__())
    return 500
