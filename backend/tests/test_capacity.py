import pytest

from conftest import make_account
from personal_cloud.core.config import GIB, Settings
from personal_cloud.core.errors import AccountNotFound, CapacityUnavailable
from personal_cloud.models.account import Account
from personal_cloud.services.capacity import CapacitySnapshot, PremiumCapacityService
from personal_cloud.services.outcomes import Admitted, Rejected


def test_max_premium_users_is_floor_of_free_space(capacity, free_space):
    free_space.free_bytes = 120 * GIB
    assert capacity.available_disk_gb() == 120.0
    assert capacity.max_premium_users() == 2

    free_space.free_bytes = 49 * GIB
    assert capacity.max_premium_users() == 0


def test_third_upgrade_is_refused_until_a_downgrade(capacity, db_session):
    for owner in ("a", "b", "c"):
        make_account(db_session, owner)

    assert capacity.upgrade_to_premium("a").is_premium is True
    assert capacity.upgrade_to_premium("b").is_premium is True

    with pytest.raises(CapacityUnavailable) as exc:
        capacity.upgrade_to_premium("c")
    assert exc.value.status_code == 409
    assert exc.value.snapshot.max_premium_users == 2
    assert exc.value.snapshot.current_premium_users == 2
    assert db_session.get(Account, "c").is_premium is False

    capacity.downgrade_from_premium("a")
    assert capacity.upgrade_to_premium("c").is_premium is True
    assert capacity.current_premium_user_count() == 2


def test_upgrade_of_premium_account_is_a_no_op(capacity, db_session, free_space):
    make_account(db_session, "a", premium=True)
    free_space.free_bytes = 0

    assert capacity.upgrade_to_premium("a").is_premium is True


def test_downgrade_ignores_capacity(capacity, db_session, free_space):
    make_account(db_session, "a", premium=True)
    free_space.free_bytes = 0

    assert capacity.downgrade_from_premium("a").is_premium is False
    assert capacity.downgrade_from_premium("a").is_premium is False


def test_capacity_reacts_to_free_space_changes(capacity, db_session, free_space):
    make_account(db_session, "a")
    free_space.free_bytes = 10 * GIB
    assert isinstance(capacity.evaluate(), Rejected)
    assert capacity.can_admit_premium() is False

    free_space.free_bytes = 60 * GIB
    assert isinstance(capacity.evaluate(), Admitted)
    assert capacity.upgrade_to_premium("a").is_premium is True


def test_evaluate_reports_counts(capacity, db_session):
    make_account(db_session, "a", premium=True)
    make_account(db_session, "b", premium=True)

    outcome = capacity.evaluate()
    assert isinstance(outcome, Rejected)
    assert outcome.reason == "capacity_unavailable"
    assert (outcome.used, outcome.limit) == (2, 2)


def test_unknown_account(capacity):
    with pytest.raises(AccountNotFound):
        capacity.upgrade_to_premium("ghost")


def test_serialized_admission_behaves_the_same(db_session, free_space):
    service = PremiumCapacityService(db_session, Settings(serialize_admission=True), free_space)
    make_account(db_session, "a")
    assert service.upgrade_to_premium("a").is_premium is True


def test_snapshot_math():
    snap = CapacitySnapshot(available_gb=149.9, gb_per_premium_user=50.0, current_premium_users=1)
    assert snap.max_premium_users == 2
    assert snap.available_slots == 1
    assert snap.can_admit is True

    over = CapacitySnapshot(available_gb=10.0, gb_per_premium_user=50.0, current_premium_users=3)
    assert over.max_premium_users == 0
    assert over.available_slots == 0
    assert over.can_admit is False
