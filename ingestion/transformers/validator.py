"""
Uniform validity filter applied to every source's normalized records
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List
from pydantic import ValidationError as PydanticValidationError
from schemas.normalized import MarketRecordCreate
import logging

logger = logging.getLogger(__name__)


@dataclass
class RejectedRecord:
    """A candidate that failed validation, with the reason"""
    candidate: Dict[str, Any]
    reason: str


@dataclass
class ValidationOutcome:
    valid: List[MarketRecordCreate] = field(default_factory=list)
    rejected: List[RejectedRecord] = field(default_factory=list)


class RecordValidator:
    """
    Keep a record only if symbol is non-empty, price_usd is a finite number
    and timestamp is a valid datetime. Everything else is rejected with the
    validation message so it can be quarantined.
    """

    def validate(self, candidates: List[Dict[str, Any]]) -> ValidationOutcome:
        outcome = ValidationOutcome()

        for candidate in candidates:
            try:
                outcome.valid.append(MarketRecordCreate(**candidate))
            except PydanticValidationError as e:
                reason = "; ".join(
                    f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
                    for err in e.errors()
                )
                outcome.rejected.append(RejectedRecord(candidate=candidate, reason=reason))

        if outcome.rejected:
            logger.warning(
                f"Validation dropped {len(outcome.rejected)} of {len(candidates)} records"
            )

        return outcome
