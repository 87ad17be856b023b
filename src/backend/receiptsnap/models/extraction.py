"""
Pydantic models for the JSON returned by the receipt extraction model.

Two schema generations are in circulation:

- legacy: store name/location, date, items (price required), total, tax
- current: adds receipt UID, address, time and an optional 1-10 quality
  rating; item prices may be missing

The presence of ``time`` or ``quality_rating`` marks a current-generation
payload.
"""

from decimal import Decimal
from enum import Enum
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class SchemaGeneration(str, Enum):
    LEGACY = "legacy"
    CURRENT = "current"


class _ExtractionModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ExtractedStore(_ExtractionModel):
    name: str = Field(min_length=1)
    location: Optional[str] = None


class ExtractedAddress(_ExtractionModel):
    street: Optional[str] = None
    postal_code: Optional[str] = None
    city: Optional[str] = None


class LegacyExtractedItem(_ExtractionModel):
    name: str
    price: Decimal
    quantity: Optional[Decimal] = None


class CurrentExtractedItem(_ExtractionModel):
    name: str
    price: Optional[Decimal] = None
    quantity: Optional[Decimal] = None


class LegacyExtraction(_ExtractionModel):
    generation: Literal[SchemaGeneration.LEGACY] = SchemaGeneration.LEGACY
    store: ExtractedStore
    date: str
    items: List[LegacyExtractedItem]
    total: Decimal = Field(ge=0)
    tax_amount: Optional[Decimal] = Field(default=None, alias="taxAmount")


class CurrentExtraction(_ExtractionModel):
    generation: Literal[SchemaGeneration.CURRENT] = SchemaGeneration.CURRENT
    store: ExtractedStore
    receipt_uid: Optional[str] = None
    address: Optional[ExtractedAddress] = None
    date: str
    time: str
    items: List[CurrentExtractedItem]
    total: Decimal = Field(ge=0)
    tax_amount: Optional[Decimal] = Field(default=None, alias="taxAmount")
    quality_rating: Optional[int] = Field(default=None, ge=1, le=10)


Extraction = Union[LegacyExtraction, CurrentExtraction]


def _nullable(schema_type: str, description: str) -> dict:
    return {"type": [schema_type, "null"], "description": description}


# JSON schema sent with the extraction request (strict mode: every key listed
# in "required", optional values expressed as nullable).
CURRENT_RESPONSE_SCHEMA = {
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "store": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "name": {"type": "string", "description": "Name of the store"},
            },
            "required": ["name"],
        },
        "receipt_uid": _nullable("string", "Receipt or transaction number printed on the receipt"),
        "address": {
            "type": ["object", "null"],
            "additionalProperties": False,
            "properties": {
                "street": _nullable("string", "Street and house number"),
                "postal_code": _nullable("string", "Postal code"),
                "city": _nullable("string", "City"),
            },
            "required": ["street", "postal_code", "city"],
        },
        "date": {"type": "string", "description": "Purchase date as DD.MM.YY"},
        "time": {"type": "string", "description": "Purchase time as HH:MM (24h)"},
        "items": {
            "type": "array",
            "items": {
                "type": "object",
                "additionalProperties": False,
                "properties": {
                    "name": {"type": "string", "description": "Name of the item"},
                    "price": _nullable("number", "Line price; negative for discounts"),
                    "quantity": _nullable("number", "Quantity of the item"),
                },
                "required": ["name", "price", "quantity"],
            },
        },
        "total": {"type": "number", "description": "Total amount of the receipt"},
        "taxAmount": _nullable("number", "Tax amount on the receipt"),
        "quality_rating": {
            "type": "integer",
            "description": "1-10: how completely and confidently the receipt could be read",
        },
    },
    "required": [
        "store", "receipt_uid", "address", "date", "time",
        "items", "total", "taxAmount", "quality_rating",
    ],
}
