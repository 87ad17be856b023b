#!/usr/bin/env python3
"""
Find (and optionally delete) receipts that were saved without their items.

A save whose item insert failed leaves the receipt row behind. Receipts
saved from an empty draft look the same, so run without --delete first.

Usage:
    python scripts/reconcile_orphans.py [--user-id UUID] [--delete]
"""

import argparse

from receiptsnap.services.persistence import ReceiptPersistenceService
from receiptsnap.services.session import StaticSessionProvider
from receiptsnap.utils.supabase import get_supabase_client


def main():
    parser = argparse.ArgumentParser(description="Sweep receipts without items")
    parser.add_argument("--user-id", help="Only check this user's receipts")
    parser.add_argument("--delete", action="store_true", help="Delete orphaned receipts and images")
    args = parser.parse_args()

    print(f"\n{'='*60}")
    print("Orphaned Receipt Sweep")
    print(f"{'='*60}")

    service = ReceiptPersistenceService(
        get_supabase_client(),
        StaticSessionProvider(args.user_id)
    )
    summary = service.reconcile_orphans(user_id=args.user_id, delete=args.delete)

    print(f"Orphans found:   {summary['orphans_found']}")
    for receipt_id in summary['receipt_ids']:
        print(f"  - {receipt_id}")

    if args.delete:
        print(f"Orphans deleted: {summary['orphans_deleted']}")

    for error in summary['errors']:
        print(f"✗ {error}")


if __name__ == "__main__":
    main()
