from sqlalchemy import Column, String, BigInteger, Float, DateTime, Index
from datetime import datetime
from models.base import Base, BigIntPK, JSONType


class SchemaVersion(Base):
    """
    Audit trail of header drift accepted for the tabular source.

    A row is written only when drift was detected and the reconciler was
    confident enough to map it; rows are never updated.
    """
    __tablename__ = "schema_versions"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)

    source = Column(String(32), nullable=False)
    version = Column(BigInteger, nullable=False)

    observed_headers = Column(JSONType, nullable=False)
    # observed header -> canonical header
    mappings = Column(JSONType, nullable=True)
    confidence = Column(Float, nullable=False)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_schema_version_source_version", "source", "version", unique=True),
    )
