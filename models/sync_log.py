from sqlalchemy import Column, Integer, String, DateTime, Text, Index
from core.timeutils import utcnow
from models.base import Base


class SyncLog(Base):
    """
    Append-only audit trail of sync attempts.

    Purpose:
    - One row per terminal state of a sync (success, error, skipped)
    - Health checks and backfill chunk completions are recorded here too
    - Rows are never updated after insert
    """
    __tablename__ = "sync_log"

    id = Column(Integer, primary_key=True, autoincrement=True)

    sync_type = Column(String(50), nullable=False, index=True)
    status = Column(String(20), nullable=False, index=True)

    # Statistics
    records_processed = Column(Integer, nullable=False, default=0)
    records_created = Column(Integer, nullable=False, default=0)
    records_updated = Column(Integer, nullable=False, default=0)

    error_message = Column(Text, nullable=True)

    # Timing
    started_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    duration_ms = Column(Integer, nullable=True)

    __table_args__ = (
        Index("idx_sync_log_type_started", "sync_type", "started_at"),
        Index("idx_sync_log_status_started", "status", "started_at"),
    )
