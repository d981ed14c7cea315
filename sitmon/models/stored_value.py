"""
Key/value row shared by the persistent cache tier and persisted settings.

Cache entries live under a fixed key prefix ('cache:') so that the
cache can enumerate and remove its own rows without touching other
values stored in the same table (e.g. the debug flag).
"""

from datetime import datetime, timezone

from sqlalchemy import String, Text, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from sitmon.models.base import Base


class StoredValue(Base):
    """A single persisted JSON value."""

    __tablename__ = 'kv_store'

    key: Mapped[str] = mapped_column(String(2048), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:
        return f'<StoredValue {self.key}>'
