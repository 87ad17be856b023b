"""
Check that a Supabase project can hold saved receipts.

Selects every column the save path writes with ``limit(0)`` so a missing
column fails here instead of on a user's first save. Exits non-zero when
any check fails.

Usage:
    python scripts/verify_db_setup.py
"""

import sys
from typing import Callable, List, Tuple

from receiptsnap.config import settings
from receiptsnap.utils.supabase import get_supabase_client

REQUIRED_COLUMNS = {
    "receipts": [
        "id", "user_id", "store_name", "receipt_uid", "street", "postal_code",
        "city", "timestamp", "total", "tax_amount", "quality_rating", "image_url",
    ],
    "receipt_items": ["id", "receipt_id", "name", "price", "quantity"],
}


def _table_check(client, table: str, columns: List[str]) -> Callable[[], str]:
    def check() -> str:
        client.table(table).select(",".join(columns)).limit(0).execute()
        return f"{len(columns)} columns"
    return check


def _bucket_check(client) -> Callable[[], str]:
    def check() -> str:
        buckets = {bucket.name: bucket for bucket in client.storage.list_buckets()}
        bucket = buckets.get(settings.RECEIPT_BUCKET)
        if bucket is None:
            raise LookupError("not found, run scripts/setup_storage_bucket.py")
        if not bucket.public:
            raise ValueError("private, image URLs will not resolve")
        return "public"
    return check


def verify_database_setup() -> bool:
    client = get_supabase_client()
    checks: List[Tuple[str, Callable[[], str]]] = [
        (f"table {table}", _table_check(client, table, columns))
        for table, columns in REQUIRED_COLUMNS.items()
    ]
    checks.append((f"bucket {settings.RECEIPT_BUCKET}", _bucket_check(client)))

    print(f"Verifying {settings.SUPABASE_URL}")
    failures = 0
    for label, check in checks:
        try:
            print(f"✓ {label}: {check()}")
        except Exception as e:
            failures += 1
            print(f"✗ {label}: {str(e)}")

    print(f"{len(checks) - failures}/{len(checks)} checks passed")
    return failures == 0


if __name__ == "__main__":
    sys.exit(0 if verify_database_setup() else 1)
