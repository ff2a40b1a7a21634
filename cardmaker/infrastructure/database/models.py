# cardmaker/infrastructure/database/models.py
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, JSON, String
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Card(Base):
    __tablename__ = "cards"

    slug = Column(String, primary_key=True)
    data = Column(JSON, nullable=False)  # TemplateConfig, camelCase wire shape
    is_active = Column(Boolean, nullable=False, default=True)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)


class AppSettings(Base):
    __tablename__ = "app_settings"

    key = Column(String, primary_key=True)
    data = Column(JSON, nullable=False)
