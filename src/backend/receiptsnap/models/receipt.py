"""
Pydantic models for receipts.
"""

import uuid
from decimal import Decimal
from typing import ClassVar, Dict, List, Optional

from pydantic import BaseModel, Field

from receiptsnap.models.extraction import SchemaGeneration
from receiptsnap.utils.money import EditableNumber, FieldPolicy

# Draft fields edited as free text, and the coercion policy each one uses
RECEIPT_NUMERIC_FIELDS = {
    'total': FieldPolicy.TOTAL,
    'tax_amount': FieldPolicy.TAX,
    'quality_rating': FieldPolicy.RATING,
}
ITEM_NUMERIC_FIELDS = {
    'price': FieldPolicy.PRICE,
    'quantity': FieldPolicy.QUANTITY,
}


class _Editable(BaseModel):
    """Per-keystroke numeric edits: raw text in ``display_text``, value on the field."""

    display_text: Dict[str, str] = Field(default_factory=dict)

    _numeric_fields: ClassVar[Dict[str, FieldPolicy]] = {}

    def numeric_field(self, name: str) -> EditableNumber:
        policy = self._numeric_fields[name]
        value = getattr(self, name)
        if name in self.display_text:
            return EditableNumber(policy=policy, value=value, text=self.display_text[name])
        return EditableNumber.from_value(policy, value)

    def apply_edit(self, name: str, text: str) -> EditableNumber:
        """Coerce ``text`` into the named field and remember what was typed."""
        if name not in self._numeric_fields:
            raise KeyError(f"{name} is not an editable numeric field")
        edited = self.numeric_field(name).edit(text)
        setattr(self, name, edited.value)
        self.display_text[name] = edited.text
        return edited


class Address(BaseModel):
    street: Optional[str] = None
    postal_code: Optional[str] = None
    city: Optional[str] = None


class ReceiptItemDraft(_Editable):
    """An item on an unsaved receipt. ``price`` None means not yet known."""
    name: str
    price: Optional[Decimal] = None
    quantity: int = 1

    _numeric_fields: ClassVar[Dict[str, FieldPolicy]] = ITEM_NUMERIC_FIELDS


class ReceiptDraft(_Editable):
    """In-memory receipt built from an extraction result, edited before saving."""
    draft_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    generation: SchemaGeneration = SchemaGeneration.CURRENT
    store_name: str
    receipt_uid: Optional[str] = None
    address: Optional[Address] = None
    date: str
    time: Optional[str] = None
    total: Decimal = Decimal('0')
    tax_amount: Optional[Decimal] = None
    quality_rating: Optional[float] = None
    items: List[ReceiptItemDraft] = Field(default_factory=list)

    _numeric_fields: ClassVar[Dict[str, FieldPolicy]] = RECEIPT_NUMERIC_FIELDS

    def missing_prices(self) -> List[int]:
        """Positions of items whose price still needs user entry."""
        return [index for index, item in enumerate(self.items) if item.price is None]


class DateTimeOverride(BaseModel):
    """Explicit date/time to use instead of the draft's own fields."""
    date: str
    time: Optional[str] = None


class ReceiptItemResponse(BaseModel):
    """Model for receipt item API responses."""
    id: str
    receipt_id: str
    name: str
    price: Optional[Decimal] = None
    quantity: Optional[int] = None
    created_at: Optional[str] = None

    class Config:
        from_attributes = True


class ReceiptResponse(BaseModel):
    """Model for receipt API responses."""
    id: str
    user_id: str
    store_name: str
    receipt_uid: Optional[str] = None
    street: Optional[str] = None
    postal_code: Optional[str] = None
    city: Optional[str] = None
    timestamp: Optional[str] = None  # ISO instant, or YYYY-MM-DD for legacy rows
    total: Decimal
    tax_amount: Optional[Decimal] = None
    quality_rating: Optional[float] = None
    image_url: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    items: List[ReceiptItemResponse] = Field(default_factory=list)

    class Config:
        from_attributes = True


class ReceiptList(BaseModel):
    """Model for receipt list."""
    receipts: list[ReceiptResponse]
    total: int


class SaveResult(BaseModel):
    """Pass/fail outcome of a save, with the message shown to the user."""
    success: bool
    message: str
    receipt_id: Optional[str] = None
    error: Optional[str] = None


class MonthlySpending(BaseModel):
    month: str  # YYYY-MM
    label: str  # "Jan"
    amount: Decimal


class PriceHistoryPoint(BaseModel):
    receipt_id: str
    store_name: Optional[str] = None
    timestamp: Optional[str] = None
    price: Optional[Decimal] = None
    quantity: Optional[int] = None
