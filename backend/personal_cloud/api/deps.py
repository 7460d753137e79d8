from functools import lru_cache

from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from personal_cloud.core.config import get_settings
from personal_cloud.core.security import decode_access_token
from personal_cloud.db.session import get_db_session  # re-exported for convenience
from personal_cloud.models.account import Account
from personal_cloud.services.capacity import PremiumCapacityService
from personal_cloud.services.documents import DocumentService
from personal_cloud.storage.blob_store import BlobStore


def _token_from_request(request: Request) -> str:
    settings = get_settings()
    token = request.cookies.get(settings.cookie_access_name)
    if token:
        return token
    auth = request.headers.get("authorization") or ""
    if auth.lower().startswith("bearer "):
        return auth[7:].strip()
    return ""


def get_current_account(
    request: Request,
    db: Session = Depends(get_db_session),
) -> Account:
    """Resolve the authenticated principal to an account. Raises 401 if invalid."""
    token = _token_from_request(request)
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")
    owner_id = decode_access_token(token)
    if not owner_id:
        raise HTTPException(status_code=401, detail="Invalid token")
    account = db.get(Account, owner_id)
    if not account:
        raise HTTPException(status_code=401, detail="User not found")
    return account


def get_current_owner_id(account: Account = Depends(get_current_account)) -> str:
    return account.id


@lru_cache()
def _blob_store_for(root: str) -> BlobStore:
    return BlobStore(root)


def get_blob_store() -> BlobStore:
    return _blob_store_for(get_settings().storage_root)


def get_document_service(
    db: Session = Depends(get_db_session),
    blobs: BlobStore = Depends(get_blob_store),
) -> DocumentService:
    return DocumentService(db, blobs, get_settings())


def get_capacity_service(
    db: Session = Depends(get_db_session),
    blobs: BlobStore = Depends(get_blob_store),
) -> PremiumCapacityService:
    return PremiumCapacityService(db, get_settings(), blobs.free_bytes)
