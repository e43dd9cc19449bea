"""
SQLAlchemy Database Models

The pipeline persists user profiles and learned adaptation rules through a
key-value store; the SQL implementation keeps one row per key with the value
serialized as JSON text.

Version: 1.0.0
"""

from sqlalchemy import Column, DateTime, String, Text
from sqlalchemy.sql import func

from voice_ordering.database import Base


class KeyValueEntry(Base):
    """
    Key-value table backing SqlKeyValueStore.

    Keys are namespaced by the caller (e.g. `profile:<user_id>`,
    `learning:rules`).
    """
    __tablename__ = "key_value_entries"

    key = Column(String(255), primary_key=True)
    value = Column(Text, nullable=False)

    # =========================================================================
    # TIMESTAMPS
    # =========================================================================
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<KeyValueEntry(key={self.key!r})>"
