"""
Transform raw source items into canonical market record candidates
"""

from typing import Dict, Any, Optional, List, Callable
from datetime import datetime
from ingestion.transformers.field_rules import FieldRule, SOURCE_RULES
from models.base import SourceType
import logging

logger = logging.getLogger(__name__)


class DataNormalizer:
    """
    Normalize items from one source into the canonical shape.

    Handles:
    - Field mapping through the source's ordered FieldRule list
    - Type conversion (numbers, symbols, timestamps)
    - Timestamp fallback to "now" when the source has none

    The output is a plain dict; validity is decided afterwards by
    RecordValidator so that every source passes the same filter.
    """

    def __init__(
        self,
        source_type: SourceType,
        rules: Optional[List[FieldRule]] = None,
        clock: Callable[[], datetime] = datetime.utcnow
    ):
        if rules is None and source_type not in SOURCE_RULES:
            raise ValueError(f"Unknown source type: {source_type}")
        self.source_type = source_type
        self.rules = rules if rules is not None else SOURCE_RULES[source_type]
        self._clock = clock

    def normalize(self, raw_record: Dict[str, Any]) -> Dict[str, Any]:
        """Map one raw item to a canonical candidate."""
        candidate: Dict[str, Any] = {
            rule.target: rule.resolve(raw_record) for rule in self.rules
        }

        if candidate.get("timestamp") is None:
            candidate["timestamp"] = self._clock()

        candidate["source"] = self.source_type
        candidate["extra_metadata"] = dict(raw_record)
        return candidate

    def normalize_many(self, raw_records: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        candidates = [self.normalize(r) for r in raw_records]
        logger.debug(f"Normalized {len(candidates)} {self.source_type.value} records")
        return candidates
