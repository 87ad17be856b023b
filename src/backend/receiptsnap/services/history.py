"""
Read side of the receipt store: browsing, item price history, spend trends.
"""

import logging
from datetime import date, datetime, timezone, tzinfo
from decimal import Decimal, InvalidOperation
from typing import Dict, Iterable, List, Optional

from supabase import Client

from receiptsnap.models.receipt import MonthlySpending, PriceHistoryPoint
from receiptsnap.services.storage import StorageService
from receiptsnap.utils.dates import resolve_timezone

logger = logging.getLogger(__name__)


def parse_stored_timestamp(value: Optional[str]) -> Optional[datetime]:
    """
    Parse a stored receipt timestamp.

    Accepts ISO instants ("2024-02-01T13:30:00+00:00", trailing "Z") and
    legacy date-only values ("2024-02-01", read as midnight UTC). Monthly
    bucketing keeps a date-only value in its own month, see ``_month_key``.
    """
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _month_key(value: Optional[str], tz: Optional[tzinfo] = None) -> Optional[str]:
    """
    Calendar month ("YYYY-MM") a stored timestamp falls in.

    Instants are read in ``tz`` (host zone when None). Date-only legacy values
    are already local calendar dates and keep their own month.
    """
    if value and len(value) == 10 and "T" not in value:
        try:
            return date.fromisoformat(value).strftime("%Y-%m")
        except ValueError:
            return None

    moment = parse_stored_timestamp(value)
    if moment is None:
        return None
    local = moment.astimezone(tz) if tz is not None else moment.astimezone()
    return local.strftime("%Y-%m")


def _to_decimal(value) -> Decimal:
    try:
        return Decimal(str(value)) if value is not None else Decimal('0')
    except (InvalidOperation, ValueError):
        return Decimal('0')


def _shift_month(month_start: date, offset: int) -> date:
    index = month_start.year * 12 + (month_start.month - 1) + offset
    return date(index // 12, index % 12 + 1, 1)


def window_start(now: datetime, months: int) -> date:
    """First day of the earliest month in a trailing window of ``months`` months."""
    return _shift_month(date(now.year, now.month, 1), -(months - 1))


def bucket_monthly_totals(
    receipts: Iterable[Dict],
    start: date,
    end: date,
    tz: Optional[tzinfo] = None
) -> List[MonthlySpending]:
    """
    Sum receipt totals per calendar month, zero-filling months without receipts.

    Args:
        receipts: Rows with 'timestamp' and 'total'
        start: Any day in the first month of the window
        end: Any day in the last month of the window
        tz: Zone used to decide which month a receipt falls in (host zone when None)

    Returns:
        One entry per month, oldest first
    """
    first = date(start.year, start.month, 1)
    last = date(end.year, end.month, 1)

    totals: Dict[str, Decimal] = {}
    month = first
    while month <= last:
        totals[month.strftime('%Y-%m')] = Decimal('0')
        month = _shift_month(month, 1)

    for receipt in receipts:
        key = _month_key(receipt.get('timestamp'), tz)
        if key in totals:
            totals[key] += _to_decimal(receipt.get('total'))

    return [
        MonthlySpending(
            month=key,
            label=datetime.strptime(key, '%Y-%m').strftime('%b'),
            amount=amount
        )
        for key, amount in totals.items()
    ]


class ReceiptHistoryService:
    """Queries over saved receipts and items."""

    def __init__(self, client: Client, storage: Optional[StorageService] = None):
        self.supabase = client
        self.storage = storage or StorageService(client)

    def list_receipts(self, user_id: str) -> List[Dict]:
        """Receipts with their items, newest purchase first."""
        response = self.supabase.table('receipts').select(
            '*, items:receipt_items(*)'
        ).eq('user_id', user_id).order('timestamp', desc=True).execute()
        return response.data or []

    def get_receipt(self, user_id: str, receipt_id: str) -> Optional[Dict]:
        response = self.supabase.table('receipts').select(
            '*, items:receipt_items(*)'
        ).eq('id', receipt_id).eq('user_id', user_id).execute()

        if not response.data:
            return None
        return response.data[0]

    def delete_receipt(self, user_id: str, receipt_id: str) -> bool:
        """
        Delete a receipt (items cascade in the database) and its image.

        Returns:
            False if the receipt does not exist for this user
        """
        receipt = self.get_receipt(user_id, receipt_id)
        if receipt is None:
            return False

        self.supabase.table('receipts').delete().eq('id', receipt_id).eq(
            'user_id', user_id
        ).execute()

        file_name = self.storage.file_name_from_url(receipt.get('image_url'))
        if file_name:
            self.storage.delete_image(file_name)
            logger.info("Deleted receipt and image", extra={
                "receipt_id": receipt_id,
                "file_name": file_name
            })
        else:
            logger.info("Deleted receipt without image", extra={"receipt_id": receipt_id})

        return True

    def item_price_history(self, user_id: str, name: str) -> List[PriceHistoryPoint]:
        """Every purchase of an item name, in the order the items were saved."""
        response = self.supabase.table('receipt_items').select(
            '*, receipt:receipts!inner(id,user_id,store_name,timestamp)'
        ).eq('name', name).eq('receipt.user_id', user_id).order('created_at').execute()

        points = []
        for row in response.data or []:
            receipt = row.get('receipt') or {}
            points.append(PriceHistoryPoint(
                receipt_id=row['receipt_id'],
                store_name=receipt.get('store_name'),
                timestamp=receipt.get('timestamp'),
                price=row.get('price'),
                quantity=row.get('quantity'),
            ))
        return points

    def monthly_spending(
        self,
        user_id: str,
        months: int = 12,
        now: Optional[datetime] = None,
        tz: Optional[tzinfo] = None
    ) -> List[MonthlySpending]:
        """
        Spend per month over the trailing ``months`` months, current month included.

        The window is built from local calendar months. Its query bounds also
        cover date-only legacy rows, which the database reads as midnight UTC.
        """
        now = now or datetime.now(timezone.utc)
        tz = tz or resolve_timezone()
        local_now = now.astimezone(tz) if tz is not None else now.astimezone()
        start = window_start(local_now, months)

        local_start = datetime(start.year, start.month, start.day)
        local_start = local_start.replace(tzinfo=tz) if tz is not None else local_start.astimezone()
        lower = min(
            local_start.astimezone(timezone.utc),
            datetime(start.year, start.month, start.day, tzinfo=timezone.utc)
        )
        upper = max(
            now.astimezone(timezone.utc),
            datetime(local_now.year, local_now.month, local_now.day, tzinfo=timezone.utc)
        )

        response = self.supabase.table('receipts').select('id,total,timestamp').eq(
            'user_id', user_id
        ).gte('timestamp', lower.isoformat()).lte(
            'timestamp', upper.isoformat()
        ).order('timestamp').execute()

        return bucket_monthly_totals(response.data or [], start, local_now.date(), tz=tz)
