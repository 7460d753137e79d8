"""
Document service: quota-enforced uploads plus owner-scoped retrieval, rename,
move and delete on top of the blob store and the document catalog.

Upload order is fixed: validate extension, check quota, write the blob, insert
the catalog row. A failed insert removes the freshly written blob, so the only
partial state a crash can leave behind is an orphaned blob (never a row that
points at missing bytes). `reconcile()` sweeps such orphans.

The quota check and the blob write are a check-then-act sequence. Two
concurrent uploads for the same owner can both pass the check; the overshoot
is bounded by the smaller upload. With `serialize_uploads` enabled the
sequence runs under a per-owner lock inside this process.
"""

import contextlib
import hashlib
import logging
import mimetypes
import os
import re
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import BinaryIO, List, Optional, Tuple

from sqlalchemy.orm import Session

from personal_cloud.core.config import Settings
from personal_cloud.core.errors import (
    AccountNotFound,
    ForbiddenFileType,
    InvalidName,
    InvalidPath,
    NotFound,
    PathTraversal,
    QuotaExceeded,
)
from personal_cloud.core.tracing import UPLOAD_BYTES, UPLOADS_TOTAL
from personal_cloud.models.account import Account
from personal_cloud.models.document import Document
from personal_cloud.services.catalog import ANY_FOLDER, DocumentCatalog
from personal_cloud.services.outcomes import Rejected
from personal_cloud.services.quota import QuotaAccountant, StorageUsage
from personal_cloud.storage.blob_store import BlobStore, BlobTooLarge

logger = logging.getLogger("pc.documents")
security_logger = logging.getLogger("pc.security")

MAX_FILE_NAME_LENGTH = 500
MAX_CONTENT_TYPE_LENGTH = 100
MAX_FOLDER_PATH_LENGTH = 500

DOCUMENT_KINDS = {"image": "image/", "audio": "audio/"}

_SAFE_NAMESPACE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.@-]{0,63}$")

# Owners share a fixed pool of upload locks; two owners on one stripe only
# serialize each other.
UPLOAD_LOCK_STRIPES = 64
_owner_locks = tuple(threading.Lock() for _ in range(UPLOAD_LOCK_STRIPES))


def _owner_lock(owner_id: str) -> threading.Lock:
    digest = hashlib.sha256(owner_id.encode("utf-8")).digest()
    return _owner_locks[int.from_bytes(digest[:4], "big") % UPLOAD_LOCK_STRIPES]


@dataclass
class ReconcileReport:
    orphaned_blobs: List[str] = field(default_factory=list)
    missing_blobs: List[int] = field(default_factory=list)
    escaped_rows: List[int] = field(default_factory=list)
    removed_blobs: int = 0


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def clean_file_name(name: Optional[str]) -> str:
    """
    Validate a display name.

    Any directory component makes the whole name invalid; the name is rejected
    rather than silently truncated to its last segment.
    """
    candidate = (name or "").strip()
    if not candidate:
        raise InvalidName("File name cannot be empty.")
    if any(ord(c) < 32 for c in candidate):
        raise InvalidName()
    base = candidate.replace("\\", "/").rsplit("/", 1)[-1]
    if not base or base != candidate or base in {".", ".."}:
        raise InvalidName()
    if len(base) > MAX_FILE_NAME_LENGTH:
        raise InvalidName(f"File name must be at most {MAX_FILE_NAME_LENGTH} characters.")
    return base


def clean_folder_path(folder_path: Optional[str]) -> Optional[str]:
    """Normalize a logical folder path. Blank means the root folder (None)."""
    if folder_path is None or not folder_path.strip():
        return None
    normalized = folder_path.strip().replace("\\", "/").strip("/")
    if ".." in normalized or "~" in normalized or any(ord(c) < 32 for c in normalized):
        raise InvalidPath()
    segments = [s.strip() for s in normalized.split("/")]
    normalized = "/".join(s for s in segments if s and s != ".")
    if len(normalized) > MAX_FOLDER_PATH_LENGTH:
        raise InvalidPath(f"Folder path must be at most {MAX_FOLDER_PATH_LENGTH} characters.")
    return normalized or None


class DocumentService:
    def __init__(self, db: Session, blobs: BlobStore, settings: Settings):
        self.db = db
        self.blobs = blobs
        self.settings = settings
        self.catalog = DocumentCatalog(db)
        self.quota = QuotaAccountant(self.catalog, settings)
        self._forbidden = settings.forbidden_extension_set()

    # -------------------------------------------------------------------
    # Accounts / usage
    # -------------------------------------------------------------------

    def _account(self, owner_id: str) -> Account:
        account = self.db.get(Account, owner_id) if owner_id else None
        if account is None:
            raise AccountNotFound()
        return account

    def storage_usage(self, owner_id: str) -> StorageUsage:
        account = self._account(owner_id)
        return self.quota.usage(owner_id, bool(account.is_premium))

    def _namespace(self, owner_id: str) -> Optional[str]:
        if not self.settings.namespace_blobs_by_owner:
            return None
        if _SAFE_NAMESPACE.match(owner_id) and ".." not in owner_id:
            return owner_id
        return hashlib.sha256(owner_id.encode("utf-8")).hexdigest()[:32]

    def _upload_guard(self, owner_id: str):
        if self.settings.serialize_uploads:
            return _owner_lock(owner_id)
        return contextlib.nullcontext()

    # -------------------------------------------------------------------
    # Upload
    # -------------------------------------------------------------------

    def add_document(
        self,
        owner_id: str,
        file_name: str,
        content_type: Optional[str],
        size_bytes: int,
        source: BinaryIO,
    ) -> Document:
        name = clean_file_name(file_name)
        extension = os.path.splitext(name)[1].lower()
        if extension in self._forbidden:
            logger.warning("File upload blocked: disallowed extension %s for user %s", extension, owner_id)
            UPLOADS_TOTAL.labels("forbidden_file_type").inc()
            raise ForbiddenFileType(extension)

        size_bytes = int(size_bytes)
        if size_bytes < 0:
            raise ValueError("size_bytes must be non-negative")

        account = self._account(owner_id)
        with self._upload_guard(owner_id):
            outcome = self.quota.check(owner_id, bool(account.is_premium), size_bytes)
            if isinstance(outcome, Rejected):
                logger.warning(
                    "File upload blocked: storage limit exceeded for user %s (used=%s ceiling=%s requested=%s)",
                    owner_id,
                    outcome.used,
                    outcome.limit,
                    size_bytes,
                )
                UPLOADS_TOTAL.labels("quota_exceeded").inc()
                raise QuotaExceeded(outcome.used, outcome.limit, size_bytes)

            # No catalog transaction stays open across the blob write.
            self.db.commit()

            remaining = outcome.limit - outcome.used
            try:
                written = self.blobs.put(self._namespace(owner_id), source, name, max_bytes=remaining)
            except BlobTooLarge:
                logger.warning("File upload blocked: stream for user %s exceeded remaining quota", owner_id)
                UPLOADS_TOTAL.labels("quota_exceeded").inc()
                raise QuotaExceeded(outcome.used, outcome.limit, max(size_bytes, remaining + 1))

            if written.size != size_bytes:
                logger.info(
                    "Declared size %s differs from written size %s for user %s; recording written size",
                    size_bytes,
                    written.size,
                    owner_id,
                )

            document = Document(
                owner_id=owner_id,
                file_name=name,
                content_type=self._content_type(content_type, name),
                file_size=written.size,
                storage_path=str(written.path),
                folder_path=None,
                uploaded_at=_utcnow(),
            )
            try:
                self.catalog.add(document)
            except Exception:
                self.catalog.rollback()
                logger.exception("Catalog insert failed for user %s; removing blob %s", owner_id, written.path.name)
                try:
                    self.blobs.delete(written.path)
                except OSError:
                    logger.exception("Compensating delete failed for blob %s", written.path)
                UPLOADS_TOTAL.labels("error").inc()
                raise

        UPLOADS_TOTAL.labels("stored").inc()
        UPLOAD_BYTES.inc(written.size)
        logger.info("Document %s added for user %s", document.id, owner_id)
        return document

    @staticmethod
    def _content_type(content_type: Optional[str], name: str) -> str:
        value = (content_type or "").strip()
        if not value or value == "application/octet-stream":
            guessed, _ = mimetypes.guess_type(name)
            value = guessed or value or "application/octet-stream"
        return value[:MAX_CONTENT_TYPE_LENGTH]

    # -------------------------------------------------------------------
    # Retrieval
    # -------------------------------------------------------------------

    def get_document(self, document_id: int, owner_id: str) -> Document:
        document = self.catalog.get(document_id, owner_id)
        if document is None:
            raise NotFound()
        return document

    def list_documents(
        self,
        owner_id: str,
        kind: Optional[str] = None,
        folder=ANY_FOLDER,
        search: Optional[str] = None,
    ) -> List[Document]:
        prefix = None
        if kind:
            prefix = DOCUMENT_KINDS.get(kind.lower())
            if prefix is None:
                raise ValueError(f"unknown document kind: {kind}")
        if folder is not ANY_FOLDER:
            folder = clean_folder_path(folder)
        return self.catalog.list(owner_id, content_type_prefix=prefix, folder_path=folder, search=search)

    def list_images(self, owner_id: str) -> List[Document]:
        return self.list_documents(owner_id, kind="image")

    def list_audio(self, owner_id: str) -> List[Document]:
        return self.list_documents(owner_id, kind="audio")

    def latest_document(self, owner_id: str) -> Optional[Document]:
        return self.catalog.latest(owner_id)

    def list_folders(self, owner_id: str) -> List[str]:
        return self.catalog.folders(owner_id)

    def open_document(self, document_id: int, owner_id: str) -> Tuple[Document, BinaryIO]:
        """Ownership check, path re-validation, then an open binary stream."""
        document = self.get_document(document_id, owner_id)
        path = self._checked_path(document, owner_id)
        if not path.is_file():
            logger.error("Blob missing for document %s of user %s", document.id, owner_id)
            raise NotFound("File missing in storage")
        return document, self.blobs.open(path)

    def _checked_path(self, document: Document, owner_id: str) -> Path:
        try:
            return self.blobs.resolve(document.storage_path)
        except PathTraversal:
            security_logger.error(
                "Attempted path traversal detected for user %s on document %s", owner_id, document.id
            )
            raise

    # -------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------

    def rename_document(self, document_id: int, owner_id: str, new_name: str) -> Document:
        name = clean_file_name(new_name)
        document = self.get_document(document_id, owner_id)
        document.file_name = name
        self.catalog.save(document)
        logger.info("Document %s renamed to %s for user %s", document.id, name, owner_id)
        return document

    def move_document(self, document_id: int, owner_id: str, folder_path: Optional[str]) -> Document:
        folder = clean_folder_path(folder_path)
        document = self.get_document(document_id, owner_id)
        document.folder_path = folder
        self.catalog.save(document)
        logger.info("Document %s moved to folder %s for user %s", document.id, folder or "(root)", owner_id)
        return document

    def delete_document(self, document_id: int, owner_id: str) -> bool:
        document = self.catalog.get(document_id, owner_id)
        if document is None:
            logger.warning("Attempted to delete non-existent document %s for user %s", document_id, owner_id)
            return False

        path = self._checked_path(document, owner_id)
        if path.is_file():
            self.blobs.delete(path)
        self.catalog.delete(document)
        logger.info("Document %s deleted for user %s", document_id, owner_id)
        return True

    # -------------------------------------------------------------------
    # Maintenance
    # -------------------------------------------------------------------

    def reconcile(self, dry_run: bool = True) -> ReconcileReport:
        """
        Compare the catalog with the blob store.

        Blobs without a row are orphans (removed unless `dry_run`); rows whose
        blob is gone are only reported.
        """
        report = ReconcileReport()
        known = set()
        for document in self.catalog.all_documents():
            try:
                path = self.blobs.resolve(document.storage_path)
            except PathTraversal:
                report.escaped_rows.append(document.id)
                continue
            known.add(path)
            if not path.is_file():
                report.missing_blobs.append(document.id)

        for blob in self.blobs.iter_blobs():
            if blob in known:
                continue
            report.orphaned_blobs.append(str(blob))
            if not dry_run and self.blobs.delete(blob):
                report.removed_blobs += 1

        logger.info(
            "Reconcile finished: orphans=%s missing=%s escaped=%s removed=%s dry_run=%s",
            len(report.orphaned_blobs),
            len(report.missing_blobs),
            len(report.escaped_rows),
            report.removed_blobs,
            dry_run,
        )
        return report
