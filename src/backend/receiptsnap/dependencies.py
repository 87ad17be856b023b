"""
FastAPI dependencies: per-request Supabase client, session and services.
"""

from functools import lru_cache
from typing import Optional

from fastapi import Depends, Header, HTTPException
from supabase import Client

from receiptsnap.services.extraction import ExtractionService
from receiptsnap.services.history import ReceiptHistoryService
from receiptsnap.services.persistence import ReceiptPersistenceService
from receiptsnap.services.session import SessionProvider, SupabaseSessionProvider
from receiptsnap.services.storage import StorageService
from receiptsnap.utils.supabase import get_supabase_anon_client


def get_access_token(authorization: Optional[str] = Header(None)) -> Optional[str]:
    """Bearer token from the Authorization header, if any."""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(' ')
    if scheme.lower() != 'bearer' or not token.strip():
        return None
    return token.strip()


def get_client(access_token: Optional[str] = Depends(get_access_token)) -> Client:
    return get_supabase_anon_client(access_token)


def get_session(
    access_token: Optional[str] = Depends(get_access_token),
    client: Client = Depends(get_client)
) -> SessionProvider:
    return SupabaseSessionProvider(client, access_token)


def require_user_id(session: SessionProvider = Depends(get_session)) -> str:
    user_id = session.current_user_id()
    if not user_id:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return user_id


def get_storage(client: Client = Depends(get_client)) -> StorageService:
    return StorageService(client)


def get_persistence(
    client: Client = Depends(get_client),
    session: SessionProvider = Depends(get_session),
    storage: StorageService = Depends(get_storage)
) -> ReceiptPersistenceService:
    return ReceiptPersistenceService(client, session, storage)


def get_history(
    client: Client = Depends(get_client),
    storage: StorageService = Depends(get_storage)
) -> ReceiptHistoryService:
    return ReceiptHistoryService(client, storage)


@lru_cache
def get_extraction_service() -> ExtractionService:
    return ExtractionService()
