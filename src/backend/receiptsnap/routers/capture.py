"""
Capture API router: analyze a receipt photo, then save the edited draft.
"""

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from typing import Optional
import logging

from receiptsnap.dependencies import get_extraction_service, get_persistence
from receiptsnap.errors import ReceiptSnapError, status_code_for
from receiptsnap.models.receipt import DateTimeOverride, ReceiptDraft
from receiptsnap.services.extraction import ExtractionService
from receiptsnap.services.persistence import ReceiptPersistenceService

router = APIRouter(prefix="/capture", tags=["capture"])
logger = logging.getLogger(__name__)

ALLOWED_IMAGE_TYPES = ["image/jpeg", "image/jpg", "image/png", "image/webp", "image/heic"]
MAX_IMAGE_MB = 10


async def _read_image(image: UploadFile) -> bytes:
    """Validate type and size of an uploaded receipt photo and return its bytes."""
    if image.content_type not in ALLOWED_IMAGE_TYPES:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid file type: {image.content_type}. Allowed: JPG, PNG, WEBP, HEIC"
        )

    data = await image.read()
    size_mb = len(data) / (1024 * 1024)

    if not data:
        raise HTTPException(status_code=400, detail="Empty image")

    if size_mb > MAX_IMAGE_MB:
        raise HTTPException(
            status_code=400,
            detail=f"File too large: {size_mb:.2f}MB. Maximum: {MAX_IMAGE_MB}MB"
        )

    return data


@router.post("/analyze", response_model=ReceiptDraft)
async def analyze_receipt(
    image: UploadFile = File(...),
    extraction: ExtractionService = Depends(get_extraction_service)
):
    """
    Extract an editable receipt draft from a photo.

    The draft is returned to the client for review; nothing is stored.
    """
    try:
        data = await _read_image(image)
        draft = extraction.analyze(data, mime_type=image.content_type or "image/jpeg")

        logger.info("Receipt analyzed", extra={
            "draft_id": draft.draft_id,
            "generation": draft.generation.value,
            "item_count": len(draft.items)
        })
        return draft

    except (HTTPException, ReceiptSnapError):
        raise
    except Exception as e:
        logger.error("Failed to analyze receipt", extra={"error": str(e)}, exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to analyze receipt: {str(e)}")


@router.post("/save")
async def save_receipt(
    draft: str = Form(..., description="Edited ReceiptDraft as JSON"),
    image: Optional[UploadFile] = File(None),
    date: Optional[str] = Form(None, description="Override date (DD.MM.YY)"),
    time: Optional[str] = Form(None, description="Override time (HH:MM)"),
    persistence: ReceiptPersistenceService = Depends(get_persistence)
):
    """
    Save an edited draft with its items and optional photo.

    Returns a pass/fail result with a message for the user:
    201 saved, 401 not signed in, 409 already saving, 422 incomplete draft,
    502 image upload failed, 500 database write failed.
    """
    try:
        receipt_draft = ReceiptDraft.model_validate_json(draft)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=f"Invalid draft: {e.errors()}")

    image_data = None
    content_type = "image/jpeg"
    if image is not None and image.filename:
        image_data = await _read_image(image)
        content_type = image.content_type or content_type

    override = None
    if date or time:
        # A time on its own applies to the draft's date
        override_date = date or receipt_draft.date
        if not override_date:
            raise HTTPException(status_code=422, detail="A time override needs a date")
        override = DateTimeOverride(date=override_date, time=time)

    result = persistence.submit(
        receipt_draft,
        image=image_data,
        date_time_override=override,
        image_content_type=content_type
    )

    status_code = 201 if result.success else status_code_for(result.error)
    return JSONResponse(status_code=status_code, content=jsonable_encoder(result))
