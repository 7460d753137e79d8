from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from personal_cloud.api.deps import get_current_account, get_document_service
from personal_cloud.models.account import Account
from personal_cloud.schemas.account import DashboardOut
from personal_cloud.services.documents import DocumentService

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


@router.get("", response_model=DashboardOut)
def dashboard(
    account: Account = Depends(get_current_account),
    service: DocumentService = Depends(get_document_service),
) -> DashboardOut:
    latest = service.latest_document(account.id)
    return DashboardOut(
        display_name=account.display_name or account.email or account.id,
        is_premium=bool(account.is_premium),
        account_type=account.tier_label,
        latest_file_name=latest.file_name if latest else None,
        latest_file_uploaded_at=latest.uploaded_at if latest else None,
        last_login_at=account.last_login_at,
        server_time_utc=datetime.now(timezone.utc),
    )
