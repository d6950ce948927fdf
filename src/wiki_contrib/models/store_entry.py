# src/wiki_contrib/models/store_entry.py
"""Key/value rows backing the SQL state store."""

from datetime import datetime

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from wiki_contrib.db.session import Base


class StoreEntry(Base):
    """A single keyed value with an absolute expiry."""

    __tablename__ = "store_entry"

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    # Rows past this instant are treated as absent and purged lazily.
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
    )
