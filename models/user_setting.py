from sqlalchemy import Column, String, DateTime, Text
from core.timeutils import utcnow
from models.base import Base


class UserSetting(Base):
    """
    Key-value store for state that must survive restarts.

    The sync engine keeps its backfill progress here
    (``initial_sync_completed`` and ``initial_sync_last_chunk``).
    """
    __tablename__ = "user_settings"

    setting_key = Column(String(100), primary_key=True)
    setting_value = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
