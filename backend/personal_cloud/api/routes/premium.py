from fastapi import APIRouter, Depends

from personal_cloud.api.deps import get_capacity_service, get_current_account
from personal_cloud.models.account import Account
from personal_cloud.schemas.account import CapacityOut, PremiumStatusOut
from personal_cloud.services.capacity import CapacitySnapshot, PremiumCapacityService

router = APIRouter(prefix="/premium", tags=["premium"])


def _capacity_out(snap: CapacitySnapshot) -> CapacityOut:
    return CapacityOut(
        available_disk_gb=round(snap.available_gb, 2),
        gb_per_premium_user=snap.gb_per_premium_user,
        max_premium_users=snap.max_premium_users,
        current_premium_users=snap.current_premium_users,
        available_premium_slots=snap.available_slots,
        can_upgrade=snap.can_admit,
    )


def _status(account: Account, service: PremiumCapacityService, message: str = None) -> PremiumStatusOut:
    return PremiumStatusOut(
        is_premium=bool(account.is_premium),
        account_type=account.tier_label,
        capacity=_capacity_out(service.snapshot()),
        message=message,
    )


@router.get("", response_model=PremiumStatusOut)
def premium_status(
    account: Account = Depends(get_current_account),
    service: PremiumCapacityService = Depends(get_capacity_service),
) -> PremiumStatusOut:
    return _status(account, service)


@router.post("/upgrade", response_model=PremiumStatusOut)
def upgrade(
    account: Account = Depends(get_current_account),
    service: PremiumCapacityService = Depends(get_capacity_service),
) -> PremiumStatusOut:
    if account.is_premium:
        return _status(account, service, "You are already a premium user.")
    # Capacity is re-checked inside the service at the moment of the upgrade.
    account = service.upgrade_to_premium(account.id)
    return _status(account, service, "Congratulations! You have been upgraded to Premium!")


@router.post("/downgrade", response_model=PremiumStatusOut)
def downgrade(
    account: Account = Depends(get_current_account),
    service: PremiumCapacityService = Depends(get_capacity_service),
) -> PremiumStatusOut:
    if not account.is_premium:
        return _status(account, service, "You are not a premium user.")
    account = service.downgrade_from_premium(account.id)
    return _status(account, service, "You have been downgraded from Premium.")
