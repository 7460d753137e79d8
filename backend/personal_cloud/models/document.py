from datetime import datetime, timezone

from sqlalchemy import BigInteger, Column, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import relationship

from personal_cloud.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Document(Base):
    __tablename__ = "documents"

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(String(64), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True)
    # Display name only; the blob on disk uses a generated name.
    file_name = Column(String(500), nullable=False)
    content_type = Column(String(100), nullable=False, default="application/octet-stream")
    file_size = Column(BigInteger, nullable=False, default=0)
    # Absolute path inside the storage root. Never serialized to clients.
    storage_path = Column(String(1024), nullable=False)
    folder_path = Column(String(500), nullable=True)
    uploaded_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, index=True)

    owner = relationship("Account", back_populates="documents")

    __table_args__ = (
        Index("ix_documents_file_name", "file_name"),
        Index("ix_documents_owner_uploaded", "owner_id", "uploaded_at"),
    )

    @property
    def is_image(self) -> bool:
        return (self.content_type or "").lower().startswith("image/")

    @property
    def is_audio(self) -> bool:
        return (self.content_type or "").lower().startswith("audio/")
