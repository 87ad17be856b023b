"""
Receipt persistence: image upload, receipt insert, item insert.

Steps run strictly in order and are never retried:

    upload image -> insert receipt -> bulk insert items

The backend offers no transaction across the two inserts. If the item
insert fails, the receipt row stays behind without items (an orphaned
receipt); PersistenceError carries its id and reconcile_orphans() can sweep
such rows later.
"""

import logging
import threading
from collections import OrderedDict
from typing import Dict, List, Optional, Set, Tuple

from supabase import Client

from receiptsnap.errors import (
    DraftIncompleteError,
    NotAuthenticatedError,
    PersistenceError,
    ReceiptSnapError,
    SaveInProgressError,
)
from receiptsnap.models.receipt import (
    DateTimeOverride,
    ReceiptDraft,
    ReceiptItemDraft,
    SaveResult,
)
from receiptsnap.services.session import SessionProvider
from receiptsnap.services.storage import StorageService
from receiptsnap.utils.dates import canonical_timestamp
from receiptsnap.utils.money import decimal_to_str

logger = logging.getLogger(__name__)

SAVE_SUCCESS_MESSAGE = "Receipt saved successfully!"

SAVED_DRAFTS_LIMIT = 1024


class SaveGuard:
    """
    Tracks drafts being saved so one draft is never submitted twice.

    Shared across service instances (one per request in the API). Entries are
    keyed by (user_id, draft_id); only the most recent SAVED_DRAFTS_LIMIT
    completed saves are remembered.
    """

    def __init__(self, max_saved: int = SAVED_DRAFTS_LIMIT):
        self._lock = threading.Lock()
        self._in_flight: Set[Tuple[str, str]] = set()
        self._saved: "OrderedDict[Tuple[str, str], str]" = OrderedDict()
        self.max_saved = max_saved

    def claim(self, user_id: str, draft_id: str) -> Optional[str]:
        """
        Mark a user's draft as being saved.

        Returns the receipt id if this user already saved the draft.

        Raises:
            SaveInProgressError: another save of this draft is running
        """
        key = (user_id, draft_id)
        with self._lock:
            if key in self._saved:
                return self._saved[key]
            if key in self._in_flight:
                raise SaveInProgressError(f"Draft {draft_id} is already being saved")
            self._in_flight.add(key)
            return None

    def release(self, user_id: str, draft_id: str, receipt_id: Optional[str] = None) -> None:
        key = (user_id, draft_id)
        with self._lock:
            self._in_flight.discard(key)
            if receipt_id:
                self._saved[key] = receipt_id
                while len(self._saved) > self.max_saved:
                    self._saved.popitem(last=False)

    def is_saving(self, user_id: str, draft_id: str) -> bool:
        with self._lock:
            return (user_id, draft_id) in self._in_flight


DEFAULT_SAVE_GUARD = SaveGuard()


class ReceiptPersistenceService:
    """Persists edited receipt drafts for the signed-in user."""

    def __init__(
        self,
        client: Client,
        session: SessionProvider,
        storage: Optional[StorageService] = None,
        guard: Optional[SaveGuard] = None
    ):
        self.supabase = client
        self.session = session
        self.storage = storage or StorageService(client)
        self.guard = guard or DEFAULT_SAVE_GUARD

    def _receipt_row(
        self,
        draft: ReceiptDraft,
        user_id: str,
        timestamp: str,
        image_url: Optional[str]
    ) -> Dict:
        address = draft.address
        return {
            'user_id': user_id,
            'store_name': draft.store_name,
            'receipt_uid': draft.receipt_uid,
            'street': address.street if address else None,
            'postal_code': address.postal_code if address else None,
            'city': address.city if address else None,
            'timestamp': timestamp,
            'total': decimal_to_str(draft.total),
            'tax_amount': decimal_to_str(draft.tax_amount),
            'quality_rating': draft.quality_rating,
            'image_url': image_url,
        }

    def _item_rows(self, items: List[ReceiptItemDraft], receipt_id: str) -> List[Dict]:
        return [
            {
                'receipt_id': receipt_id,
                'name': item.name,
                'price': decimal_to_str(item.price),
                'quantity': item.quantity or 1,
            }
            for item in items
        ]

    def _insert_receipt(self, receipt_data: Dict) -> str:
        try:
            response = self.supabase.table('receipts').insert(receipt_data).execute()
        except Exception as e:
            logger.error("Error inserting receipt", extra={
                "user_id": receipt_data.get('user_id'),
                "error": str(e)
            }, exc_info=True)
            raise PersistenceError(f"Receipt insert failed: {e}") from e

        if not response.data:
            raise PersistenceError("Receipt insert returned no row")

        return response.data[0]['id']

    def _insert_items(self, item_rows: List[Dict], receipt_id: str) -> None:
        try:
            self.supabase.table('receipt_items').insert(item_rows).execute()
        except Exception as e:
            logger.error("Error inserting receipt items; receipt left without items", extra={
                "receipt_id": receipt_id,
                "item_count": len(item_rows),
                "error": str(e)
            }, exc_info=True)
            raise PersistenceError(
                f"Item insert failed for receipt {receipt_id}: {e}",
                receipt_id=receipt_id
            ) from e

    def save(
        self,
        draft: ReceiptDraft,
        items: Optional[List[ReceiptItemDraft]] = None,
        image: Optional[bytes] = None,
        date_time_override: Optional[DateTimeOverride] = None,
        image_content_type: str = "image/jpeg"
    ) -> str:
        """
        Persist a draft and its items.

        Args:
            draft: Edited receipt draft
            items: Items to save (defaults to ``draft.items``)
            image: Receipt photo bytes, uploaded before any row is written
            date_time_override: Date/time to use instead of the draft's
            image_content_type: MIME type of ``image``

        Returns:
            Id of the new receipt row (or of the earlier row if this draft
            was already saved)

        Raises:
            NotAuthenticatedError: no signed-in user
            DraftIncompleteError: an item has no price yet
            SaveInProgressError: this draft is already being saved
            UploadError: image upload failed, nothing written
            PersistenceError: receipt or item insert failed
        """
        user_id = self.session.current_user_id()
        if not user_id:
            raise NotAuthenticatedError("No authenticated session")

        items = draft.items if items is None else items
        missing = [index for index, item in enumerate(items) if item.price is None]
        if missing:
            raise DraftIncompleteError(
                f"Items without price at positions {missing}", missing=missing
            )

        existing_id = self.guard.claim(user_id, draft.draft_id)
        if existing_id:
            logger.info("Draft already saved, returning existing receipt", extra={
                "draft_id": draft.draft_id,
                "receipt_id": existing_id
            })
            return existing_id

        saved_id = None
        try:
            # Step 1: upload image (aborts the save on failure)
            image_name = None
            image_url = None
            if image is not None:
                image_name, image_url = self.storage.upload_image(
                    image,
                    content_type=image_content_type,
                    access_token=getattr(self.session, 'access_token', None)
                )

            # Step 2: canonical timestamp
            if date_time_override is not None:
                timestamp = canonical_timestamp(date_time_override.date, date_time_override.time)
            else:
                timestamp = canonical_timestamp(draft.date, draft.time)

            # Step 3: receipt row
            receipt_data = self._receipt_row(draft, user_id, timestamp, image_url)
            try:
                receipt_id = self._insert_receipt(receipt_data)
            except PersistenceError:
                if image_name:
                    logger.warning("Cleaning up orphaned image", extra={"file_name": image_name})
                    self.storage.delete_image(image_name)
                raise

            # Step 4: item rows
            if items:
                self._insert_items(self._item_rows(items, receipt_id), receipt_id)

            logger.info("Receipt saved", extra={
                "receipt_id": receipt_id,
                "user_id": user_id,
                "item_count": len(items),
                "has_image": image_url is not None
            })

            saved_id = receipt_id
            return receipt_id

        finally:
            # Only a complete save marks the draft as saved
            self.guard.release(user_id, draft.draft_id, saved_id)

    def submit(
        self,
        draft: ReceiptDraft,
        items: Optional[List[ReceiptItemDraft]] = None,
        image: Optional[bytes] = None,
        date_time_override: Optional[DateTimeOverride] = None,
        image_content_type: str = "image/jpeg"
    ) -> SaveResult:
        """
        Save and report the outcome as pass/fail with a user-facing message.

        Never raises.
        """
        try:
            receipt_id = self.save(
                draft,
                items=items,
                image=image,
                date_time_override=date_time_override,
                image_content_type=image_content_type
            )
            return SaveResult(success=True, message=SAVE_SUCCESS_MESSAGE, receipt_id=receipt_id)

        except ReceiptSnapError as e:
            logger.warning("Receipt save failed", extra={
                "draft_id": draft.draft_id,
                "error_type": type(e).__name__,
                "error": e.detail
            })
            return SaveResult(
                success=False,
                message=e.message,
                receipt_id=getattr(e, 'receipt_id', None),
                error=type(e).__name__
            )

        except Exception as e:
            logger.error("Unexpected error saving receipt", extra={
                "draft_id": draft.draft_id,
                "error": str(e)
            }, exc_info=True)
            return SaveResult(
                success=False,
                message=PersistenceError.message,
                error=type(e).__name__
            )

    def find_orphaned_receipts(self, user_id: Optional[str] = None) -> List[Dict]:
        """
        Receipts with no item rows.

        A receipt saved from a draft with no items looks the same; review
        before deleting.
        """
        query = self.supabase.table('receipts').select(
            'id,user_id,store_name,image_url,created_at,items:receipt_items(id)'
        )
        if user_id:
            query = query.eq('user_id', user_id)

        response = query.execute()
        orphans = [row for row in response.data or [] if not row.get('items')]

        logger.info("Orphaned receipt scan complete", extra={
            "user_id": user_id,
            "orphans_found": len(orphans)
        })
        return orphans

    def reconcile_orphans(self, user_id: Optional[str] = None, delete: bool = False) -> Dict:
        """
        Sweep receipts left without items.

        Args:
            user_id: Limit the sweep to one user
            delete: Delete orphaned rows and their images (report only otherwise)

        Returns:
            Summary of the sweep
        """
        summary = {
            'orphans_found': 0,
            'orphans_deleted': 0,
            'receipt_ids': [],
            'errors': []
        }

        orphans = self.find_orphaned_receipts(user_id)
        summary['orphans_found'] = len(orphans)
        summary['receipt_ids'] = [row['id'] for row in orphans]

        if not delete:
            return summary

        for row in orphans:
            try:
                self.supabase.table('receipts').delete().eq('id', row['id']).execute()
                summary['orphans_deleted'] += 1

                file_name = self.storage.file_name_from_url(row.get('image_url'))
                if file_name:
                    self.storage.delete_image(file_name)

            except Exception as e:
                error_msg = f"Failed to delete orphaned receipt {row['id']}: {str(e)}"
                logger.error(error_msg, exc_info=True)
                summary['errors'].append(error_msg)

        logger.info("Orphan reconciliation complete", extra={
            "orphans_found": summary['orphans_found'],
            "orphans_deleted": summary['orphans_deleted']
        })
        return summary
