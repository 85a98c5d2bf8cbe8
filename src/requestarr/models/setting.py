"""Generic key/value application setting model."""

from sqlalchemy import Column, DateTime, String, Text

from requestarr.database import Base, utcnow


class AppSetting(Base):
    """
    Key/value setting row.

    Values are stored as text; typed accessors and JSON decoding live in the
    settings store.
    """

    __tablename__ = "app_setting"

    key = Column(String(255), primary_key=True)
    value = Column(Text, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<AppSetting(key='{self.key}')>"
