from sqlalchemy.orm import declarative_base
import enum

Base = declarative_base()


# ============================================================================
# ENUMS
# ============================================================================

class SyncStatus(str, enum.Enum):
    """Terminal and transient states of a sync attempt"""
    PENDING = "pending"
    STARTED = "started"
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"
    SKIPPED = "skipped"


class SyncType(str, enum.Enum):
    """Tag identifying which job or manual trigger produced a sync log row"""
    COUNTRY_DAYS = "country_days"
    ALL_COUNTRIES_DAYS = "all_countries_days"
    HISTORICAL = "historical_data"
    HISTORICAL_ALL = "historical_data_all"
    YEAR = "year_data"
    YEAR_RANGE = "year_range"
    ALL_HISTORICAL = "all_historical"
    EFFICIENT = "efficient_sync"
    PUBLICATION_WINDOW = "publication_window_sync"
    NEXT_DAY = "next_day_sync"
    WEEKLY = "weekly_sync"
    STARTUP_RECOVERY = "startup_recovery"
    INITIAL_SYNC = "initial_sync"
    INITIAL_SYNC_CHUNK = "initial_sync_chunk"
    CATCHUP = "catchup_sync"
    HEALTH_CHECK = "health_check"
    RETRY = "retry_sync"


# Reserved user_settings keys
INITIAL_SYNC_COMPLETED_KEY = "initial_sync_completed"
INITIAL_SYNC_LAST_CHUNK_KEY = "initial_sync_last_chunk"
