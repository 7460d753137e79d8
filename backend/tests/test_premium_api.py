from datetime import datetime, timezone

from fastapi import status

from conftest import auth_headers, make_account, seed_document
from personal_cloud.core.config import GIB


def test_premium_status_reports_capacity(client, db_session, free_space):
    make_account(db_session, "alice")
    free_space.free_bytes = 120 * GIB

    r = client.get("/premium", headers=auth_headers("alice"))
    assert r.status_code == status.HTTP_200_OK
    body = r.json()
    assert body["is_premium"] is False
    assert body["account_type"] == "Free"
    assert body["capacity"] == {
        "available_disk_gb": 120.0,
        "gb_per_premium_user": 50.0,
        "max_premium_users": 2,
        "current_premium_users": 0,
        "available_premium_slots": 2,
        "can_upgrade": True,
    }


def test_upgrade_until_full_then_downgrade_frees_a_slot(client, db_session, free_space):
    for owner in ("a", "b", "c"):
        make_account(db_session, owner)
    free_space.free_bytes = 120 * GIB

    for owner in ("a", "b"):
        r = client.post("/premium/upgrade", headers=auth_headers(owner))
        assert r.status_code == status.HTTP_200_OK
        assert r.json()["is_premium"] is True

    r = client.post("/premium/upgrade", headers=auth_headers("c"))
    assert r.status_code == status.HTTP_409_CONFLICT
    body = r.json()
    assert body["code"] == "capacity_unavailable"
    assert body["capacity"]["available_premium_slots"] == 0

    r = client.post("/premium/downgrade", headers=auth_headers("a"))
    assert r.status_code == status.HTTP_200_OK
    assert r.json()["is_premium"] is False

    r = client.post("/premium/upgrade", headers=auth_headers("c"))
    assert r.status_code == status.HTTP_200_OK
    assert r.json()["account_type"] == "Premium"


def test_upgrade_when_already_premium(client, db_session, free_space):
    make_account(db_session, "alice", premium=True)
    free_space.free_bytes = 0

    r = client.post("/premium/upgrade", headers=auth_headers("alice"))
    assert r.status_code == status.HTTP_200_OK
    assert r.json()["message"] == "You are already a premium user."


def test_premium_raises_the_upload_ceiling(client, db_session):
    make_account(db_session, "alice", premium=True)

    r = client.get("/documents/usage", headers=auth_headers("alice"))
    assert r.json()["max_formatted"] == "50 GB"
    assert r.json()["is_premium"] is True


def test_dashboard(client, db_session):
    make_account(
        db_session,
        "alice",
        display_name="Alice",
        last_login_at=datetime(2026, 10, 1, 8, 0, tzinfo=timezone.utc),
    )

    r = client.get("/dashboard", headers=auth_headers("alice"))
    assert r.status_code == status.HTTP_200_OK
    body = r.json()
    assert body["display_name"] == "Alice"
    assert body["account_type"] == "Free"
    assert body["latest_file_name"] is None
    assert body["last_login_at"].startswith("2026-10-01T08:00:00")

    seed_document(db_session, "alice", 10, file_name="latest.txt")
    r = client.get("/dashboard", headers=auth_headers("alice"))
    assert r.json()["latest_file_name"] == "latest.txt"
