from conftest import make_account, seed_document
from personal_cloud.core.config import GIB
from personal_cloud.services.catalog import DocumentCatalog
from personal_cloud.services.outcomes import Admitted, Rejected
from personal_cloud.services.quota import QuotaAccountant, StorageUsage

MIB = 1024 * 1024


def _accountant(db_session, settings):
    return QuotaAccountant(DocumentCatalog(db_session), settings)


def test_ceiling_depends_on_tier(db_session, settings):
    quota = _accountant(db_session, settings)
    assert quota.ceiling(False) == 10 * GIB
    assert quota.ceiling(True) == 50 * GIB


def test_check_rejects_when_over_ceiling(db_session, settings):
    make_account(db_session, "alice")
    seed_document(db_session, "alice", int(9.9 * GIB))

    outcome = _accountant(db_session, settings).check("alice", False, 200 * MIB)

    assert isinstance(outcome, Rejected)
    assert outcome.reason == "quota_exceeded"
    assert outcome.used == int(9.9 * GIB)
    assert outcome.limit == 10 * GIB
    assert outcome.admitted is False


def test_check_admits_exact_fit(db_session, settings):
    make_account(db_session, "alice")
    seed_document(db_session, "alice", 9 * GIB)

    outcome = _accountant(db_session, settings).check("alice", False, GIB)

    assert isinstance(outcome, Admitted)
    assert outcome.admitted is True


def test_premium_ceiling_admits_the_same_upload(db_session, settings):
    make_account(db_session, "alice", premium=True)
    seed_document(db_session, "alice", int(9.9 * GIB))

    assert isinstance(_accountant(db_session, settings).check("alice", True, 200 * MIB), Admitted)


def test_usage_reports_percentage_and_formatting(db_session, settings):
    make_account(db_session, "alice")
    seed_document(db_session, "alice", GIB + GIB // 2)

    usage = _accountant(db_session, settings).usage("alice", False)

    assert usage.used_bytes == GIB + GIB // 2
    assert usage.percentage_used == 15.0
    assert usage.used_formatted == "1.5 GB"
    assert usage.max_formatted == "10 GB"


def test_usage_with_zero_ceiling_is_full():
    assert StorageUsage(used_bytes=0, max_bytes=0, is_premium=False).percentage_used == 100.0
