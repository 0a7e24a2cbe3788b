from sqlalchemy import BigInteger, Integer, JSON, Enum
from sqlalchemy.orm import declarative_base
from sqlalchemy.dialects.postgresql import JSONB
import enum

Base = declarative_base()

# BIGINT keys on PostgreSQL; SQLite only autoincrements INTEGER PRIMARY KEY
BigIntPK = BigInteger().with_variant(Integer(), "sqlite")

JSONType = JSON().with_variant(JSONB(), "postgresql")


def enum_type(enum_cls):
    """Store enum values (not member names) in a portable VARCHAR column."""
    return Enum(
        enum_cls,
        values_callable=lambda members: [m.value for m in members],
        native_enum=False,
        length=32,
    )


# ============================================================================
# ENUMS
# ============================================================================

class SourceType(str, enum.Enum):
    """Data sources feeding the canonical market table"""
    API_A = "api_a"
    CSV = "csv"
    API_C = "api_c"


class RunStatus(str, enum.Enum):
    """ETL run status"""
    STARTED = "started"
    COMPLETED = "completed"
    FAILED = "failed"
    COMPLETED_WITH_WARNINGS = "completed_with_warnings"


class CheckpointStatus(str, enum.Enum):
    """Checkpoint status"""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class QuarantineReason(str, enum.Enum):
    """Why a record was routed to quarantine"""
    LOW_CONFIDENCE_SCHEMA = "low_confidence_schema"
    VALIDATION_ERROR = "validation_error"
    OTHER = "other"
