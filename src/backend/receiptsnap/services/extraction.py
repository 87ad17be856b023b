"""Receipt extraction using an OpenAI vision model.

The photo is sent base64-encoded together with a fixed prompt and the
current-generation JSON schema (strict structured output). The reply text is
handed to the normalizer, which rejects anything that is not valid JSON for
one of the known schema generations.
"""

import base64
import logging
from typing import Optional

from openai import OpenAI, APIConnectionError, APITimeoutError, APIStatusError

from receiptsnap.config import settings
from receiptsnap.errors import ExtractionParseError, ExtractionServiceError
from receiptsnap.models.extraction import CURRENT_RESPONSE_SCHEMA
from receiptsnap.models.receipt import ReceiptDraft
from receiptsnap.services.normalizer import normalize_extraction

logger = logging.getLogger(__name__)

EXTRACTION_PROMPT = """Analyze this receipt and return the following information as strict JSON:
- Store name
- Receipt UID (transaction or receipt number), if printed
- Store address (street, postal code, city), if printed
- Date as DD.MM.YY and time as HH:MM (24h)
- Every line item with its name, price as printed and quantity (if shown).
  Discounts and deposit refunds are separate items with a negative price.
  Use null for a price you cannot read.
- Total amount and tax amount (null if not printed)
- quality_rating: an integer from 1 to 10 rating how completely and
  confidently you could read the receipt (10 = every field clearly legible)

Return ONLY JSON matching the provided schema."""


class ExtractionService:
    """Service responsible for turning a receipt photo into a draft."""

    def __init__(self, client: Optional[OpenAI] = None, model: Optional[str] = None) -> None:
        self.client = client or OpenAI(
            api_key=settings.OPENAI_API_KEY or None,
            timeout=settings.REQUEST_TIMEOUT_SECONDS,
            max_retries=0,
        )
        self.model: str = model or settings.EXTRACTION_MODEL

    def _image_to_base64(self, data: bytes) -> str:
        """Encode raw image bytes as a base64 string."""
        return base64.b64encode(data).decode("utf-8")

    def request_extraction(self, image_bytes: bytes, mime_type: str = "image/jpeg") -> str:
        """
        Call the model and return its raw JSON text.

        Raises:
            ExtractionServiceError: network, timeout or API status failure
            ExtractionParseError: the reply carried no content
        """
        b64 = self._image_to_base64(image_bytes)
        logger.info("Requesting receipt extraction", extra={
            "model": self.model,
            "size_bytes": len(image_bytes)
        })

        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": EXTRACTION_PROMPT},
                            {
                                "type": "image_url",
                                "image_url": {"url": f"data:{mime_type};base64,{b64}"},
                            },
                        ],
                    }
                ],
                response_format={
                    "type": "json_schema",
                    "json_schema": {
                        "name": "ReceiptAnalysis",
                        "schema": CURRENT_RESPONSE_SCHEMA,
                        "strict": True,
                    },
                },
            )
        except (APIConnectionError, APITimeoutError) as e:
            logger.error("Network/timeout while calling extraction model", extra={
                "model": self.model,
                "error": str(e)
            })
            raise ExtractionServiceError(f"Extraction request failed: {e}") from e
        except APIStatusError as e:
            logger.error("Extraction model returned an error status", extra={
                "model": self.model,
                "status_code": getattr(e, "status_code", None),
                "error": str(e)
            })
            raise ExtractionServiceError(f"Extraction API error: {e}") from e

        choices = getattr(response, "choices", None) or []
        text = choices[0].message.content if choices else None
        if not text:
            raise ExtractionParseError("Extraction model returned no content")

        logger.debug("Raw extraction response", extra={"raw": text[:500]})
        return text

    def analyze(self, image_bytes: bytes, mime_type: str = "image/jpeg") -> ReceiptDraft:
        """Extract a receipt draft from a photo."""
        raw = self.request_extraction(image_bytes, mime_type=mime_type)
        return normalize_extraction(raw)
