"""
Create the public receipt-photo bucket, or make an existing one public.

Saved receipts link to their photo by public URL, so a private bucket
breaks every image link.

Usage:
    python scripts/setup_storage_bucket.py
"""

from receiptsnap.config import settings
from receiptsnap.routers.capture import ALLOWED_IMAGE_TYPES, MAX_IMAGE_MB
from receiptsnap.utils.supabase import get_supabase_client

BUCKET_OPTIONS = {
    "public": True,
    "file_size_limit": MAX_IMAGE_MB * 1024 * 1024,
    "allowed_mime_types": sorted(set(ALLOWED_IMAGE_TYPES) - {"image/jpg"}),
}


def setup_storage_bucket() -> bool:
    supabase = get_supabase_client()
    bucket_name = settings.RECEIPT_BUCKET

    print(f"\n{'='*60}")
    print(f"Receipt bucket: {bucket_name}")
    print(f"{'='*60}")

    try:
        existing = {bucket.name: bucket for bucket in supabase.storage.list_buckets()}

        if bucket_name not in existing:
            supabase.storage.create_bucket(bucket_name, options=BUCKET_OPTIONS)
            print(f"✓ Created public bucket '{bucket_name}'")
        elif not existing[bucket_name].public:
            supabase.storage.update_bucket(bucket_name, BUCKET_OPTIONS)
            print(f"✓ Bucket '{bucket_name}' switched to public")
        else:
            print(f"✓ Bucket '{bucket_name}' already exists and is public")

    except Exception as e:
        print(f"✗ Bucket setup failed: {str(e)}")
        print(f"\nCreate it by hand at {settings.SUPABASE_URL}/project/default/storage/buckets")
        print(f"  name: {bucket_name}, public: ON, max size: {MAX_IMAGE_MB}MB")
        return False

    return True


if __name__ == "__main__":
    setup_storage_bucket()
