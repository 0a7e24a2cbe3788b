"""
Pydantic schema for canonical market records with validation
"""

from pydantic import BaseModel, Field, validator
from typing import Optional, Dict, Any
from datetime import datetime
import math
from models.base import SourceType


class MarketRecordCreate(BaseModel):
    """
    Canonical market record as it is handed to the loader.

    Ensures:
    - symbol is present and non-empty after normalization
    - price_usd is a non-null finite number
    - timestamp is a valid datetime
    """

    symbol: str = Field(..., min_length=1, max_length=50)
    price_usd: float
    volume: Optional[float] = None
    source: SourceType
    timestamp: datetime

    # Raw payload echo
    extra_metadata: Dict[str, Any] = Field(default_factory=dict)

    @validator("symbol", pre=True)
    def clean_symbol(cls, v):
        if v is None:
            raise ValueError("symbol is required")
        v = str(v).strip().upper()
        if not v:
            raise ValueError("symbol cannot be empty")
        return v

    @validator("price_usd")
    def finite_price(cls, v):
        if not math.isfinite(v):
            raise ValueError("price_usd must be a finite number")
        return v

    @validator("volume")
    def finite_volume(cls, v):
        if v is not None and not math.isfinite(v):
            return None
        return v

    @property
    def key(self):
        """Uniqueness key of the observation."""
        return (self.symbol, self.timestamp)
