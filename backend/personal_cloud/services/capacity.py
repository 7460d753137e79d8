"""
Premium capacity admission.

Every premium account reserves `premium_gb_per_user` GB of the volume that
hosts the storage root. Nothing is persisted besides the account flag: the
capacity is recomputed from free disk space and the premium head count on
every call.

The admission check and the flag flip are a check-then-act pair. Two
concurrent upgrades can both pass when a single slot is left, so the
controller may over-admit by at most one slot per concurrent request. With
`serialize_admission` enabled the pair runs under a process-wide lock.
"""

import contextlib
import logging
import math
import threading
from dataclasses import dataclass
from typing import Callable

from sqlalchemy import func
from sqlalchemy.orm import Session

from personal_cloud.core.config import Settings
from personal_cloud.core.errors import AccountNotFound, CapacityUnavailable
from personal_cloud.models.account import Account
from personal_cloud.services.outcomes import Admission, Admitted, Rejected

logger = logging.getLogger("pc.capacity")

GIB = 1024 * 1024 * 1024

_admission_lock = threading.Lock()


@dataclass(frozen=True)
class CapacitySnapshot:
    available_gb: float
    gb_per_premium_user: float
    current_premium_users: int

    @property
    def max_premium_users(self) -> int:
        if self.gb_per_premium_user <= 0:
            return 0
        return max(0, int(math.floor(self.available_gb / self.gb_per_premium_user)))

    @property
    def available_slots(self) -> int:
        return max(0, self.max_premium_users - self.current_premium_users)

    @property
    def can_admit(self) -> bool:
        return self.current_premium_users < self.max_premium_users


class PremiumCapacityService:
    def __init__(self, db: Session, settings: Settings, free_bytes: Callable[[], int]):
        self.db = db
        self.settings = settings
        self._free_bytes = free_bytes

    def available_disk_gb(self) -> float:
        return self._free_bytes() / GIB

    def max_premium_users(self) -> int:
        return self.snapshot().max_premium_users

    def current_premium_user_count(self) -> int:
        count = self.db.query(func.count(Account.id)).filter(Account.is_premium.is_(True)).scalar()
        return int(count or 0)

    def snapshot(self) -> CapacitySnapshot:
        return CapacitySnapshot(
            available_gb=self.available_disk_gb(),
            gb_per_premium_user=float(self.settings.premium_gb_per_user),
            current_premium_users=self.current_premium_user_count(),
        )

    def evaluate(self) -> Admission:
        snap = self.snapshot()
        if snap.can_admit:
            return Admitted(used=snap.current_premium_users, limit=snap.max_premium_users)
        return Rejected(
            reason="capacity_unavailable",
            used=snap.current_premium_users,
            limit=snap.max_premium_users,
        )

    def can_admit_premium(self) -> bool:
        return isinstance(self.evaluate(), Admitted)

    def _account(self, owner_id: str) -> Account:
        account = self.db.get(Account, owner_id) if owner_id else None
        if account is None:
            raise AccountNotFound()
        return account

    def _admission_guard(self):
        if self.settings.serialize_admission:
            return _admission_lock
        return contextlib.nullcontext()

    def upgrade_to_premium(self, owner_id: str) -> Account:
        """
        Flip the premium flag if a slot is free right now.

        Capacity is re-evaluated here, not taken from whatever the client saw
        when the page was rendered.
        """
        account = self._account(owner_id)
        if account.is_premium:
            logger.info("User %s is already premium", owner_id)
            return account

        with self._admission_guard():
            outcome = self.evaluate()
            if isinstance(outcome, Rejected):
                logger.warning(
                    "Premium upgrade failed for user %s: no slots available (premium=%s max=%s)",
                    owner_id,
                    outcome.used,
                    outcome.limit,
                )
                self.db.rollback()
                raise CapacityUnavailable(self.snapshot())

            account.is_premium = True
            try:
                self.db.commit()
            except Exception:
                self.db.rollback()
                logger.exception("Failed to update user %s to premium", owner_id)
                raise
        self.db.refresh(account)
        logger.info("User %s upgraded to premium", owner_id)
        return account

    def downgrade_from_premium(self, owner_id: str) -> Account:
        """Unconditional; never blocked by capacity."""
        account = self._account(owner_id)
        if not account.is_premium:
            logger.info("User %s is not premium; nothing to downgrade", owner_id)
            return account

        account.is_premium = False
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            logger.exception("Failed to downgrade user %s from premium", owner_id)
            raise
        self.db.refresh(account)
        logger.info("User %s downgraded from premium", owner_id)
        return account
