"""
Header drift detection and reconciliation for the tabular source.

The observed header row is compared with the canonical headers. A perfect
match passes through untouched; a close match produces a rename mapping
(observed name -> canonical name) that is applied before normalization; a
weak match is refused and the whole batch is dropped.
"""

from collections import Counter
from dataclasses import dataclass, field
from difflib import SequenceMatcher
from typing import Any, Dict, List, Sequence
import enum
import re
import logging

logger = logging.getLogger(__name__)

_TOKEN_SPLIT = re.compile(r"[^a-z0-9]+")


def _bigrams(text: str) -> Counter:
    return Counter(text[i:i + 2] for i in range(len(text) - 1))


def dice_coefficient(a: str, b: str) -> float:
    """Sørensen–Dice coefficient over character bigrams."""
    if a == b:
        return 1.0
    if len(a) < 2 or len(b) < 2:
        return 0.0
    first, second = _bigrams(a), _bigrams(b)
    overlap = sum((first & second).values())
    return 2.0 * overlap / (sum(first.values()) + sum(second.values()))


def token_sort_ratio(a: str, b: str) -> float:
    """SequenceMatcher ratio of the strings with their tokens sorted."""
    def _sorted_tokens(text: str) -> str:
        return " ".join(sorted(t for t in _TOKEN_SPLIT.split(text.lower()) if t))

    return SequenceMatcher(None, _sorted_tokens(a), _sorted_tokens(b)).ratio()


def header_similarity(a: str, b: str) -> float:
    """
    Similarity in [0, 1]; exactly 1.0 only for identical strings.

    Best of the bigram Dice coefficient (order-aware) and the token-sort
    ratio (insensitive to word order, e.g. price_usd/usd_price).
    """
    if a == b:
        return 1.0
    score = max(dice_coefficient(a, b), token_sort_ratio(a, b))
    return min(score, 0.999999)


class ReconcileAction(str, enum.Enum):
    EXACT = "exact"
    MAPPED = "mapped"
    DROPPED = "dropped"


@dataclass
class ReconciliationResult:
    """
    Attributes:
        confidence: Whole-header similarity score
        action: exact, mapped or dropped
        mapping: observed header -> canonical header (mapped only)
        observed_headers: Header row that was evaluated
        unresolved: Canonical headers neither observed nor mapped
    """
    confidence: float
    action: ReconcileAction
    observed_headers: List[str]
    mapping: Dict[str, str] = field(default_factory=dict)
    unresolved: List[str] = field(default_factory=list)

    @property
    def drift_detected(self) -> bool:
        return self.action != ReconcileAction.EXACT


class SchemaReconciler:
    """
    Compare observed headers with the canonical header list.

    Policy, with ``threshold`` t (default 0.8):
    - score < t: drop the batch
    - t <= score < 1.0: map each canonical header to its best observed
      match scoring >= t
    - score == 1.0: exact match, nothing to do
    """

    def __init__(self, canonical_headers: Sequence[str], threshold: float = 0.8):
        if not canonical_headers:
            raise ValueError("canonical_headers cannot be empty")
        self.canonical_headers = list(canonical_headers)
        self.threshold = threshold

    def reconcile(self, observed_headers: Sequence[str]) -> ReconciliationResult:
        observed = list(observed_headers)
        confidence = header_similarity(",".join(self.canonical_headers), ",".join(observed))

        if confidence >= 1.0:
            return ReconciliationResult(1.0, ReconcileAction.EXACT, observed)

        if confidence < self.threshold:
            logger.warning(
                f"Schema drift with low confidence {confidence:.3f}: {observed}"
            )
            return ReconciliationResult(confidence, ReconcileAction.DROPPED, observed)

        mapping: Dict[str, str] = {}
        unresolved: List[str] = []
        for canonical in self.canonical_headers:
            if canonical in observed:
                continue
            scored = [
                (header_similarity(canonical, name), name)
                for name in observed
                if name not in mapping and name not in self.canonical_headers
            ]
            best_score, best_name = max(scored, default=(0.0, None))
            if best_score >= self.threshold:
                mapping[best_name] = canonical
            else:
                unresolved.append(canonical)

        if unresolved:
            logger.warning(
                f"Schema drift with confidence {confidence:.3f} left {unresolved} unmapped"
            )
        logger.info(
            f"Schema drift reconciled with confidence {confidence:.3f}, mapping {mapping}"
        )
        return ReconciliationResult(
            confidence, ReconcileAction.MAPPED, observed, mapping, unresolved
        )

    @staticmethod
    def apply(records: List[Dict[str, Any]], mapping: Dict[str, str]) -> List[Dict[str, Any]]:
        """Rename observed fields to canonical names in every record."""
        if not mapping:
            return records
        return [
            {mapping.get(key, key): value for key, value in record.items()}
            for record in records
        ]
