"""
Abstract base class for data sources, extraction results and the
last-known-good snapshot cache
"""

from abc import ABC, abstractmethod
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Dict, Any, Optional, Tuple
from models.base import SourceType
import copy
import logging

logger = logging.getLogger(__name__)


@dataclass
class ExtractResult:
    """
    Output of one extraction.

    Attributes:
        source: Source the records came from
        records: Raw items, one dict per item or row
        headers: Observed header row (tabular sources only)
        start_offset: Index of the first row returned (tabular sources only)
        next_offset: Rows consumed after this extraction (tabular sources only)
        from_cache: True when served from the last-known-good snapshot
        throttle_events: Rate limiter rejections incurred while extracting
    """
    source: SourceType
    records: List[Dict[str, Any]]
    headers: List[str] = field(default_factory=list)
    start_offset: int = 0
    next_offset: int = 0
    from_cache: bool = False
    throttle_events: int = 0


class SnapshotCache:
    """
    Bounded cache of the last successful payload per source.

    Contract:
    - put() after every successful fetch
    - get() before giving up on a failed fetch
    Oldest entries are evicted once ``max_entries`` is exceeded.
    """

    def __init__(self, max_entries: int = 1):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.max_entries = max_entries
        self._entries: "OrderedDict[str, Tuple[datetime, List[Dict[str, Any]]]]" = OrderedDict()

    def put(self, key: str, records: List[Dict[str, Any]]) -> None:
        self._entries[key] = (datetime.utcnow(), copy.deepcopy(records))
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    def get(self, key: str) -> Optional[List[Dict[str, Any]]]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        return copy.deepcopy(entry[1])

    def cached_at(self, key: str) -> Optional[datetime]:
        entry = self._entries.get(key)
        return entry[0] if entry else None

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)


class DataSource(ABC):
    """
    Abstract base class for all source adapters.

    Responsibilities:
    - Fetch raw items from one source
    - Report offsets for resumable (tabular) sources

    Adapters never touch the database; run and checkpoint bookkeeping
    belongs to the orchestrator.
    """

    resumable = False

    def __init__(self, source_type: SourceType):
        self.source_type = source_type

    @property
    def source_name(self) -> str:
        return self.source_type.value

    @abstractmethod
    async def extract(self, offset: int = 0) -> ExtractResult:
        """
        Fetch data from the source.

        Args:
            offset: Rows already consumed (ignored by non-resumable sources)

        Returns:
            ExtractResult with the raw items
        """
        pass
