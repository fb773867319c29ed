"""
SQLAlchemy ORM models for database tables.

Models:
    base: Base declarative class, SyncStatus / SyncType enums, reserved setting keys
    price_data: Hourly day-ahead prices keyed by (timestamp, country)
    sync_log: Append-only audit trail of sync attempts and health checks
    user_setting: Key-value settings, including backfill progress

Usage:
    from models import PriceData, SyncLog, UserSetting
    from models.base import SyncStatus, SyncType
"""

from models.base import Base, SyncStatus, SyncType
from models.price_data import PriceData
from models.sync_log import SyncLog
from models.user_setting import UserSetting

__all__ = [
    "Base",
    "SyncStatus",
    "SyncType",
    "PriceData",
    "SyncLog",
    "UserSetting",
]
