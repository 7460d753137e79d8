from sqlalchemy import Boolean, Column, DateTime, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from personal_cloud.db.base import Base


class Account(Base):
    """
    Account row owned by the identity collaborator.

    Storage only reads the premium flag and counts premium accounts; the
    capacity controller is the single writer of `is_premium`.
    """

    __tablename__ = "accounts"

    id = Column(String(64), primary_key=True)
    email = Column(String(255), unique=True, nullable=True, index=True)
    display_name = Column(String(255), nullable=True)
    is_premium = Column(Boolean, nullable=False, default=False, server_default="0", index=True)
    last_login_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    documents = relationship("Document", back_populates="owner", passive_deletes=True)

    @property
    def tier_label(self) -> str:
        return "Premium" if self.is_premium else "Free"
