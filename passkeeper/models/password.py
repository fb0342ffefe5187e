# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261018v1
# ---------------------------------------------------------------------------
"""Credential ORM model (table ``passwords``)."""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from passkeeper.database import Base
from passkeeper.models import utcnow


class Credential(Base):
    __tablename__ = "passwords"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(255), nullable=False)
    username = Column(String(255), nullable=True)
    # base64( AES-CBC body || HMAC tag ).  Never contains plaintext.
    encrypted_password = Column("password", Text, nullable=False)
    website = Column(String(2048), nullable=True)
    notes = Column(Text, nullable=True)
    category_id = Column(
        Integer,
        ForeignKey("categories.id", ondelete="SET NULL"),
        nullable=True,
    )
    favorite = Column(Boolean, nullable=False, default=False)
    # base64( 16-byte iv ) – unique per encryption, travels with the ciphertext
    iv = Column(String(64), nullable=False)
    # Cascade delete: removing a user removes all their credentials atomically.
    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    # Always loaded with the row; async sessions cannot lazy-load
    category = relationship("Category", lazy="joined")
