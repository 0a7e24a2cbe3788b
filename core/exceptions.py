"""
Custom exceptions for the market data ETL pipeline.

Every exception carries a human-readable message, a context dictionary and
the original exception (if any), so that the orchestrator can store a
structured error record on the run and the metrics layer can count errors
by kind.

Exception Hierarchy:
    ETLException (base)
    ├── ExtractionError
    │   ├── APIExtractionError
    │   │   ├── NetworkError            (retryable)
    │   │   ├── RateLimitError          (retryable)
    │   │   ├── AuthenticationError     (non-retryable)
    │   │   └── ResourceNotFoundError   (non-retryable)
    │   └── CSVExtractionError
    ├── TransformationError
    │   ├── SchemaDriftError
    │   └── DataFormatError             (non-retryable)
    ├── LoadError
    │   └── UpsertError
    ├── CheckpointError
    └── RunInProgressError
"""

from typing import Optional, Dict, Any
from datetime import datetime


class ETLException(Exception):
    """
    Base exception for all ETL-related errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (source, status code, etc.)
        original_exception: The original exception that was caught (if any)
        kind: Short error category used for run error records and metrics
    """

    kind = "unexpected"

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        self.message = message
        self.context = dict(context or {})
        self.original_exception = original_exception
        self.timestamp = datetime.utcnow()

        super().__init__(message)
        if original_exception:
            self.__cause__ = original_exception

    def __str__(self) -> str:
        base_msg = f"{self.__class__.__name__}: {self.message}"

        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base_msg += f" | Context: {context_str}"

        if self.original_exception:
            base_msg += (
                f" | Caused by: {type(self.original_exception).__name__}: "
                f"{self.original_exception}"
            )

        return base_msg

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to a JSON-safe dictionary for logging/storage."""
        return {
            "error_type": self.__class__.__name__,
            "kind": self.kind,
            "message": self.message,
            "context": {k: _json_safe(v) for k, v in self.context.items()},
            "timestamp": self.timestamp.isoformat(),
            "original_error": str(self.original_exception) if self.original_exception else None
        }


def _json_safe(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, (list, tuple)):
        return [_json_safe(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _json_safe(v) for k, v in value.items()}
    return str(value)


# ============================================================================
# Retry Strategy Mixins
# ============================================================================

class RetryableError(ETLException):
    """
    Mixin for errors that should trigger retry logic.

    Used for transient source errors:
    - Rate limiting (HTTP 429)
    - Server errors (HTTP 5xx)
    - Network timeouts and connection failures
    """
    pass


class NonRetryableError(ETLException):
    """
    Mixin for errors that should NOT trigger retry logic.

    Used for permanent errors:
    - Authentication failures (HTTP 401, 403)
    - Resource not found (HTTP 404) and other client errors
    - Malformed payloads
    """
    pass


# ============================================================================
# Extraction Errors
# ============================================================================

class ExtractionError(ETLException):
    """Base exception for data extraction failures."""
    kind = "extraction"


class APIExtractionError(ExtractionError):
    """
    Exception raised when remote API extraction fails.

    Context should include:
        - source: Source the adapter serves
        - api_url: The API endpoint that failed
        - status_code: HTTP status code (if applicable)
        - retry_count: Number of retries attempted
    """
    pass


class CSVExtractionError(ExtractionError):
    """
    Exception raised when the tabular file cannot be read.

    Context should include:
        - file_path: Path to the CSV file
        - offset: Resume offset requested
    """
    pass


class NetworkError(RetryableError, APIExtractionError):
    """Timeouts, connection failures and server errors (HTTP 5xx)."""
    pass


class RateLimitError(RetryableError, APIExtractionError):
    """Rate limiting errors (HTTP 429)."""
    pass


class AuthenticationError(NonRetryableError, APIExtractionError):
    """Authentication failures (HTTP 401, 403)."""
    pass


class ResourceNotFoundError(NonRetryableError, APIExtractionError):
    """Resource not found (HTTP 404)."""
    pass


# ============================================================================
# Transformation Errors
# ============================================================================

class TransformationError(ETLException):
    """Base exception for data transformation failures."""
    kind = "transform"


class SchemaDriftError(TransformationError):
    """
    Raised (and recorded, not propagated) when the tabular source's headers
    drift too far from the canonical headers to be trusted.

    Context should include:
        - source: Source name
        - observed_headers: Header row of the current batch
        - confidence: Similarity score
    """
    kind = "schema_drift"


class DataFormatError(NonRetryableError, TransformationError):
    """Payload has an unexpected shape (e.g. JSON object where a list is expected)."""
    pass


# ============================================================================
# Load Errors
# ============================================================================

class LoadError(ETLException):
    """Base exception for persistence failures during the load phase."""
    kind = "load"


class UpsertError(LoadError):
    """
    Exception raised when upserting a batch of canonical records fails.

    Context should include:
        - run_id: Run the batch belongs to
        - source: Source of the batch
        - batch_no: Batch number
        - records: Number of records in the batch
    """
    pass


class CheckpointError(LoadError):
    """
    Exception raised when a checkpoint cannot be written, including a
    duplicate (run_id, source, batch_no).
    """
    pass


# ============================================================================
# Orchestration Errors
# ============================================================================

class RunInProgressError(ETLException):
    """Raised when a run is triggered while another run is still executing."""
    kind = "run_in_progress"
