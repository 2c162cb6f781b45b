"""Database models for the trainer."""
from sqlalchemy import Column, Integer, String, Text

from flashlingo.models.base import Base, TimestampMixin


class StoredValue(Base, TimestampMixin):
    """Serialized value stored under a scope key.

    Keys look like ``user-42:Dutch:word-bank``; values are JSON text.
    """

    __tablename__ = "stored_values"

    id = Column(Integer, primary_key=True)
    scope_key = Column(String, unique=True, nullable=False, index=True)
    value = Column(Text, nullable=False)
