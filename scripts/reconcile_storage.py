#!/usr/bin/env python3
"""
Compare the document catalog with the blob store.

Reports blobs without a catalog row (orphans) and rows whose blob is missing.
Orphans are only removed with --apply.

Usage:
  DATABASE_URL=... STORAGE_ROOT=... python3 scripts/reconcile_storage.py [--apply]

Do not run --apply while uploads are in flight: a blob written just before its
catalog row is committed looks like an orphan.
"""

from __future__ import annotations

import argparse
import json
import sys

from personal_cloud.core.config import get_settings
from personal_cloud.core.tracing import configure_logging
from personal_cloud.db.session import SessionLocal
from personal_cloud.services.documents import DocumentService
from personal_cloud.storage.blob_store import BlobStore


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    parser.add_argument("--apply", action="store_true", help="delete orphaned blobs")
    args = parser.parse_args(argv)

    configure_logging()
    settings = get_settings()
    db = SessionLocal()
    try:
        service = DocumentService(db, BlobStore(settings.storage_root), settings)
        report = service.reconcile(dry_run=not args.apply)
    finally:
        db.close()

    print(
        json.dumps(
            {
                "orphaned_blobs": report.orphaned_blobs,
                "missing_blobs": report.missing_blobs,
                "escaped_rows": report.escaped_rows,
                "removed_blobs": report.removed_blobs,
                "applied": bool(args.apply),
            },
            indent=2,
        )
    )
    return 1 if report.escaped_rows else 0


if __name__ == "__main__":
    sys.exit(main())
