from datetime import datetime, timedelta, timezone

import pytest

from conftest import make_account, seed_document
from personal_cloud.services.catalog import DocumentCatalog


def _at(minutes: int) -> datetime:
    return datetime(2026, 1, 1, tzinfo=timezone.utc) + timedelta(minutes=minutes)


@pytest.fixture
def catalog(db_session):
    make_account(db_session, "alice")
    make_account(db_session, "bob")
    return DocumentCatalog(db_session)


def test_get_is_scoped_to_owner(db_session, catalog):
    doc = seed_document(db_session, "alice", 10)

    assert catalog.get(doc.id, "alice").id == doc.id
    assert catalog.get(doc.id, "bob") is None


def test_owner_id_is_required(catalog):
    with pytest.raises(ValueError):
        catalog.list("")


def test_sum_sizes_counts_only_own_rows(db_session, catalog):
    seed_document(db_session, "alice", 100)
    seed_document(db_session, "alice", 50)
    seed_document(db_session, "bob", 999)

    assert catalog.sum_sizes("alice") == 150
    assert catalog.sum_sizes("bob") == 999
    assert catalog.count("alice") == 2


def test_sum_sizes_is_zero_without_rows(catalog):
    assert catalog.sum_sizes("alice") == 0


def test_list_is_newest_first(db_session, catalog):
    old = seed_document(db_session, "alice", 1, file_name="old.txt", uploaded_at=_at(0))
    new = seed_document(db_session, "alice", 1, file_name="new.txt", uploaded_at=_at(5))

    assert [d.id for d in catalog.list("alice")] == [new.id, old.id]
    assert catalog.latest("alice").id == new.id
    assert catalog.latest("bob") is None


def test_list_filters_by_content_type_prefix(db_session, catalog):
    img = seed_document(db_session, "alice", 1, file_name="a.png", content_type="image/png")
    seed_document(db_session, "alice", 1, file_name="a.mp3", content_type="audio/mpeg")

    assert [d.id for d in catalog.list("alice", content_type_prefix="image/")] == [img.id]


def test_list_folder_none_means_root_only(db_session, catalog):
    root_doc = seed_document(db_session, "alice", 1, file_name="root.txt")
    seed_document(db_session, "alice", 1, file_name="nested.txt", folder_path="work")

    assert [d.id for d in catalog.list("alice", folder_path=None)] == [root_doc.id]
    assert len(catalog.list("alice")) == 2


def test_list_search_matches_file_name(db_session, catalog):
    hit = seed_document(db_session, "alice", 1, file_name="Quarterly Report.pdf")
    seed_document(db_session, "alice", 1, file_name="holiday.jpg")

    assert [d.id for d in catalog.list("alice", search="report")] == [hit.id]


def test_folders_are_distinct_sorted_and_scoped(db_session, catalog):
    seed_document(db_session, "alice", 1, file_name="a", folder_path="work")
    seed_document(db_session, "alice", 1, file_name="b", folder_path="photos/2024")
    seed_document(db_session, "alice", 1, file_name="c", folder_path="work")
    seed_document(db_session, "alice", 1, file_name="d")
    seed_document(db_session, "bob", 1, file_name="e", folder_path="secret")

    assert catalog.folders("alice") == ["photos/2024", "work"]
