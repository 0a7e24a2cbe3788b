from sqlalchemy import Column, String, Float, Text, DateTime
from datetime import datetime
from models.base import Base, BigIntPK, JSONType, SourceType, QuarantineReason, enum_type


class QuarantinedRecord(Base):
    """
    Sink for records rejected by the schema reconciler or the validator.

    Rows are written per rejected item so the payload can be inspected and
    replayed once the upstream problem is fixed.
    """
    __tablename__ = "quarantined_records"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)

    run_id = Column(String(64), nullable=False, index=True)
    source = Column(enum_type(SourceType), nullable=False)
    reason = Column(enum_type(QuarantineReason), nullable=False)

    payload = Column(JSONType, nullable=False)
    confidence_score = Column(Float, nullable=True)
    detail = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
