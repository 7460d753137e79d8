from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Query, Session

from personal_cloud.models.document import Document

# Sentinel so list(folder_path=None) can mean "root folder only".
ANY_FOLDER = object()


class DocumentCatalog:
    """
    Owner-scoped access to Document rows.

    Every query that returns or mutates documents takes the owner id and
    filters on it; there is no unscoped lookup by document id.
    """

    def __init__(self, db: Session):
        self.db = db

    def _owned(self, owner_id: str) -> Query:
        if not owner_id:
            raise ValueError("owner_id is required")
        return self.db.query(Document).filter(Document.owner_id == owner_id)

    def get(self, document_id: int, owner_id: str) -> Optional[Document]:
        return self._owned(owner_id).filter(Document.id == document_id).first()

    def sum_sizes(self, owner_id: str) -> int:
        total = self._owned(owner_id).with_entities(func.coalesce(func.sum(Document.file_size), 0)).scalar()
        return int(total or 0)

    def count(self, owner_id: str) -> int:
        return self._owned(owner_id).count()

    def list(
        self,
        owner_id: str,
        content_type_prefix: Optional[str] = None,
        folder_path=ANY_FOLDER,
        search: Optional[str] = None,
    ) -> List[Document]:
        query = self._owned(owner_id)
        if content_type_prefix:
            query = query.filter(func.lower(Document.content_type).like(f"{content_type_prefix.lower()}%"))
        if folder_path is not ANY_FOLDER:
            if folder_path:
                query = query.filter(Document.folder_path == folder_path)
            else:
                query = query.filter((Document.folder_path.is_(None)) | (Document.folder_path == ""))
        if search and search.strip():
            query = query.filter(Document.file_name.ilike(f"%{search.strip()}%"))
        return query.order_by(Document.uploaded_at.desc(), Document.id.desc()).all()

    def latest(self, owner_id: str) -> Optional[Document]:
        return self._owned(owner_id).order_by(Document.uploaded_at.desc(), Document.id.desc()).first()

    def folders(self, owner_id: str) -> List[str]:
        rows = (
            self._owned(owner_id)
            .with_entities(Document.folder_path)
            .filter(Document.folder_path.isnot(None), Document.folder_path != "")
            .distinct()
            .order_by(Document.folder_path.asc())
            .all()
        )
        return [r[0] for r in rows]

    def add(self, document: Document) -> Document:
        if not document.owner_id:
            raise ValueError("document.owner_id is required")
        self.db.add(document)
        self.db.commit()
        self.db.refresh(document)
        return document

    def save(self, document: Document) -> Document:
        self.db.add(document)
        self.db.commit()
        self.db.refresh(document)
        return document

    def delete(self, document: Document) -> None:
        self.db.delete(document)
        self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()

    def all_documents(self) -> List[Document]:
        """Unscoped listing for the reconciliation sweep; never exposed to tenants."""
        return self.db.query(Document).order_by(Document.id.asc()).all()
