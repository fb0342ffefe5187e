# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261018v1
# ---------------------------------------------------------------------------
"""Category ORM model."""

from sqlalchemy import Column, DateTime, Integer, String

from passkeeper.database import Base
from passkeeper.models import utcnow


class Category(Base):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, autoincrement=True)
    # Stable symbolic id ("work", "banking" …); set for built-ins
    key = Column(String(64), nullable=True)
    name = Column(String(255), nullable=False)
    icon = Column(String(64), nullable=True)
    color = Column(String(16), nullable=True)
    # 0 = system-wide default visible to every user, otherwise the owner.
    # No foreign key: the sentinel owner has no users row.
    user_id = Column(Integer, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
