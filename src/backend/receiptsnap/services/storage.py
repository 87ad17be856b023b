"""
Storage service for uploading receipt photos to Supabase Storage.

Objects are named after the upload time (epoch milliseconds) plus a fixed
extension and served through the bucket's public URL.
"""

import logging
import time
from enum import Enum
from typing import Optional, Tuple
from urllib.parse import urlparse

import httpx
from supabase import Client

from receiptsnap.config import settings
from receiptsnap.errors import UploadError

logger = logging.getLogger(__name__)


class UploadTransport(Enum):
    """How image bytes travel to storage."""
    BLOB = "blob"  # raw bytes through the storage client
    MULTIPART = "multipart"  # multipart/form-data POST to the storage REST API


class StorageService:
    """Service for managing receipt image uploads to Supabase Storage."""

    def __init__(
        self,
        client: Client,
        bucket_name: Optional[str] = None,
        transport: Optional[UploadTransport] = None,
        http_client: Optional[httpx.Client] = None,
        supabase_url: Optional[str] = None,
        api_key: Optional[str] = None,
        extension: Optional[str] = None,
    ):
        """Initialize storage service."""
        self.supabase = client
        self.bucket_name = bucket_name or settings.RECEIPT_BUCKET
        self.transport = transport or UploadTransport(settings.UPLOAD_TRANSPORT)
        self.extension = extension or settings.IMAGE_EXTENSION
        self.supabase_url = (supabase_url or settings.SUPABASE_URL).rstrip('/')
        self.api_key = api_key or settings.SUPABASE_KEY
        self._http_client = http_client

    def generate_file_name(self, now_ms: Optional[int] = None) -> str:
        """
        Object name for a new upload: "<epoch millis><extension>".

        Args:
            now_ms: Upload time in milliseconds (defaults to now)
        """
        if now_ms is None:
            now_ms = int(time.time() * 1000)
        return f"{now_ms}{self.extension}"

    def _upload_blob(self, file_name: str, file_data: bytes, content_type: str) -> None:
        self.supabase.storage.from_(self.bucket_name).upload(
            path=file_name,
            file=file_data,
            file_options={"content-type": content_type}
        )

    def _upload_multipart(
        self,
        file_name: str,
        file_data: bytes,
        content_type: str,
        access_token: Optional[str] = None
    ) -> None:
        url = f"{self.supabase_url}/storage/v1/object/{self.bucket_name}/{file_name}"
        headers = {
            "apikey": self.api_key,
            "Authorization": f"Bearer {access_token or self.api_key}",
        }
        files = {"file": (file_name, file_data, content_type)}

        if self._http_client is not None:
            response = self._http_client.post(url, headers=headers, files=files)
        else:
            with httpx.Client(timeout=settings.REQUEST_TIMEOUT_SECONDS) as http:
                response = http.post(url, headers=headers, files=files)

        response.raise_for_status()

    def public_url(self, file_name: str) -> str:
        return self.supabase.storage.from_(self.bucket_name).get_public_url(file_name)

    def upload_image(
        self,
        file_data: bytes,
        content_type: str = "image/jpeg",
        access_token: Optional[str] = None
    ) -> Tuple[str, str]:
        """
        Upload a receipt photo and resolve its public URL.

        Args:
            file_data: Raw image bytes
            content_type: MIME type of the image
            access_token: User token for the multipart transport

        Returns:
            Tuple of (file_name, public_url)

        Raises:
            UploadError: upload or URL resolution failed
        """
        if not file_data:
            raise UploadError("Image is empty")

        file_name = self.generate_file_name()

        try:
            if self.transport == UploadTransport.MULTIPART:
                self._upload_multipart(file_name, file_data, content_type, access_token)
            else:
                self._upload_blob(file_name, file_data, content_type)

            url = self.public_url(file_name)

        except Exception as e:
            logger.error("Error uploading receipt image", extra={
                "file_name": file_name,
                "transport": self.transport.value,
                "error": str(e)
            }, exc_info=True)
            raise UploadError(f"Upload of {file_name} failed: {e}") from e

        if not url:
            raise UploadError(f"No public URL for {file_name}")

        logger.debug("Uploaded receipt image", extra={
            "file_name": file_name,
            "size_bytes": len(file_data),
            "transport": self.transport.value
        })

        return file_name, url

    def file_name_from_url(self, image_url: Optional[str]) -> Optional[str]:
        """Recover the object name from a public URL of this bucket."""
        if not image_url:
            return None
        path = urlparse(image_url).path
        marker = f"/{self.bucket_name}/"
        if marker not in path:
            return None
        return path.split(marker, 1)[1] or None

    def delete_image(self, file_name: str) -> bool:
        """
        Delete a file from storage.

        Args:
            file_name: Object name in the bucket

        Returns:
            True if deleted successfully, False otherwise
        """
        try:
            self.supabase.storage.from_(self.bucket_name).remove([file_name])
            logger.debug("Deleted file from storage", extra={"file_name": file_name})
            return True

        except Exception as e:
            logger.error("Error deleting file", extra={
                "file_name": file_name,
                "error": str(e)
            }, exc_info=True)
            return False
