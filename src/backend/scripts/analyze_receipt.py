#!/usr/bin/env python3
"""
Run extraction on a local receipt photo and optionally save it.

Usage:
    python scripts/analyze_receipt.py path/to/receipt.jpg
    python scripts/analyze_receipt.py path/to/receipt.jpg --save --user-id UUID
"""

import argparse
import mimetypes
from pathlib import Path

from receiptsnap.errors import ReceiptSnapError
from receiptsnap.services.extraction import ExtractionService
from receiptsnap.services.persistence import ReceiptPersistenceService
from receiptsnap.services.session import StaticSessionProvider
from receiptsnap.utils.dates import canonical_timestamp
from receiptsnap.utils.supabase import get_supabase_client


def main():
    parser = argparse.ArgumentParser(description="Analyze a receipt photo")
    parser.add_argument("image", type=Path, help="Receipt photo (JPG/PNG)")
    parser.add_argument("--save", action="store_true", help="Save the result")
    parser.add_argument("--user-id", help="Owner of the saved receipt")
    args = parser.parse_args()

    image_data = args.image.read_bytes()
    mime_type = mimetypes.guess_type(args.image.name)[0] or "image/jpeg"

    print(f"\n{'='*60}")
    print(f"Analyzing: {args.image.name} ({len(image_data)} bytes)")
    print(f"{'='*60}")

    try:
        draft = ExtractionService().analyze(image_data, mime_type=mime_type)
    except ReceiptSnapError as e:
        print(f"✗ {type(e).__name__}: {e.detail}")
        return

    print(f"Store:     {draft.store_name}")
    print(f"Schema:    {draft.generation.value}")
    print(f"Date/time: {draft.date} {draft.time or ''}")
    print(f"Timestamp: {canonical_timestamp(draft.date, draft.time)}")
    print(f"Total:     {draft.total}  Tax: {draft.tax_amount}")
    if draft.quality_rating is not None:
        print(f"Quality:   {draft.quality_rating}/10")
    print("\nItems:")
    for item in draft.items:
        price = item.price if item.price is not None else "?"
        print(f"  {item.quantity} x {item.name}: {price}")

    missing = draft.missing_prices()
    if missing:
        print(f"\n⚠️  {len(missing)} item(s) without price; enter them before saving")

    if not args.save:
        return

    service = ReceiptPersistenceService(
        get_supabase_client(),
        StaticSessionProvider(args.user_id)
    )
    result = service.submit(draft, image=image_data, image_content_type=mime_type)

    if result.success:
        print(f"\n✓ {result.message} (id: {result.receipt_id})")
    else:
        print(f"\n✗ {result.message} [{result.error}]")


if __name__ == "__main__":
    main()
