"""
Validation and normalization of extraction results.

Turns the raw JSON returned by the extraction model into a ReceiptDraft.
The schema generation (legacy or current) is resolved once here; everything
downstream works with the canonical draft only.
"""

import json
import logging
from typing import Any, Dict, Union

from pydantic import ValidationError

from receiptsnap.errors import ExtractionParseError
from receiptsnap.models.extraction import (
    CurrentExtraction,
    Extraction,
    LegacyExtraction,
    SchemaGeneration,
)
from receiptsnap.models.receipt import Address, ReceiptDraft, ReceiptItemDraft

logger = logging.getLogger(__name__)

# Keys that only exist in current-generation payloads
CURRENT_GENERATION_MARKERS = ('time', 'quality_rating')

RawExtraction = Union[str, bytes, Dict[str, Any]]


def detect_generation(payload: Dict[str, Any]) -> SchemaGeneration:
    """Current generation if any of its marker keys is present, legacy otherwise."""
    if any(key in payload for key in CURRENT_GENERATION_MARKERS):
        return SchemaGeneration.CURRENT
    return SchemaGeneration.LEGACY


def _decode(raw: RawExtraction) -> Dict[str, Any]:
    if isinstance(raw, dict):
        return raw

    try:
        payload = json.loads(raw)
    except (TypeError, ValueError) as e:
        snippet = raw[:200] if isinstance(raw, (str, bytes)) else repr(raw)[:200]
        logger.error("Extraction response is not valid JSON", extra={
            "error": str(e),
            "raw": snippet
        })
        raise ExtractionParseError(f"Invalid JSON from extraction: {e}") from e

    if not isinstance(payload, dict):
        raise ExtractionParseError(
            f"Extraction result must be a JSON object, got {type(payload).__name__}"
        )

    return payload


def parse_extraction(raw: RawExtraction) -> Extraction:
    """
    Decode and validate an extraction result against its schema generation.

    Args:
        raw: JSON text/bytes or an already-decoded dict

    Returns:
        LegacyExtraction or CurrentExtraction

    Raises:
        ExtractionParseError: invalid JSON or missing/invalid required fields
    """
    payload = _decode(raw)
    generation = detect_generation(payload)
    model = CurrentExtraction if generation == SchemaGeneration.CURRENT else LegacyExtraction

    try:
        return model.model_validate(payload)
    except ValidationError as e:
        fields = sorted({".".join(str(loc) for loc in err["loc"]) for err in e.errors()})
        logger.error("Extraction result failed validation", extra={
            "generation": generation.value,
            "fields": fields
        })
        raise ExtractionParseError(
            f"Extraction result ({generation.value}) invalid: {', '.join(fields)}"
        ) from e


def _quantity(value) -> int:
    if value is None:
        return 1
    quantity = int(value)
    return quantity if quantity > 0 else 1


def to_draft(extraction: Extraction) -> ReceiptDraft:
    """Build the canonical draft from a validated extraction."""
    items = [
        ReceiptItemDraft(
            name=item.name,
            price=item.price,
            quantity=_quantity(item.quantity),
        )
        for item in extraction.items
    ]

    if isinstance(extraction, CurrentExtraction):
        address = None
        if extraction.address and any(
            (extraction.address.street, extraction.address.postal_code, extraction.address.city)
        ):
            address = Address(**extraction.address.model_dump())

        return ReceiptDraft(
            generation=SchemaGeneration.CURRENT,
            store_name=extraction.store.name,
            receipt_uid=extraction.receipt_uid or None,
            address=address,
            date=extraction.date,
            time=extraction.time,
            total=extraction.total,
            tax_amount=extraction.tax_amount,
            quality_rating=(
                float(extraction.quality_rating)
                if extraction.quality_rating is not None else None
            ),
            items=items,
        )

    return ReceiptDraft(
        generation=SchemaGeneration.LEGACY,
        store_name=extraction.store.name,
        date=extraction.date,
        total=extraction.total,
        tax_amount=extraction.tax_amount,
        items=items,
    )


def normalize_extraction(raw: RawExtraction) -> ReceiptDraft:
    """
    Validate an extraction result and return the editable receipt draft.

    Items without a price keep ``price=None`` and must be filled in before
    saving. Item prices are not checked against the total.
    """
    extraction = parse_extraction(raw)
    draft = to_draft(extraction)

    logger.info("Normalized extraction result", extra={
        "generation": extraction.generation.value,
        "store_name": draft.store_name,
        "item_count": len(draft.items),
        "missing_prices": len(draft.missing_prices())
    })

    return draft
