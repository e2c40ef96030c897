"""
Booking error taxonomy plus error aggregation for low-noise logging.

Every failure the engine surfaces carries an ``ErrorKind``; callers branch on
the kind, never on message text.
"""
import hashlib
import time
from collections import defaultdict
from enum import Enum
from typing import Any, Dict, Optional

import structlog
from fastapi import HTTPException

logger = structlog.get_logger(__name__)


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    SLOT_UNAVAILABLE = "slot_unavailable"
    BUFFER_CONFLICT = "buffer_conflict"
    ALREADY_CANCELLED = "already_cancelled"
    EXTERNAL_SERVICE = "external_service"


class BookingError(Exception):
    """Base class for all typed engine errors."""

    kind: ErrorKind = ErrorKind.VALIDATION

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.kind.value, "detail": self.message}
        if self.details:
            payload["context"] = {k: str(v) for k, v in self.details.items()}
        return payload


class ValidationError(BookingError):
    """Malformed input: bad guest data, invalid timezone id, illegal transition."""
    kind = ErrorKind.VALIDATION


class NotFoundError(BookingError):
    kind = ErrorKind.NOT_FOUND


class SlotUnavailableError(BookingError):
    """The requested interval directly overlaps an active booking or busy time."""
    kind = ErrorKind.SLOT_UNAVAILABLE


class BufferConflictError(BookingError):
    """The requested interval only collides with another booking's buffer zone."""
    kind = ErrorKind.BUFFER_CONFLICT


class AlreadyCancelledError(BookingError):
    kind = ErrorKind.ALREADY_CANCELLED


class ExternalServiceError(BookingError):
    """A collaborator (meeting, reminder, calendar) failed."""
    kind = ErrorKind.EXTERNAL_SERVICE

    def __init__(self, message: str, service: str = "unknown", **details: Any):
        super().__init__(message, service=service, **details)
        self.service = service


class ErrorSeverity(Enum):
    """Error severity levels for smart alerting."""
    LOW = "low"           # not found, validation, expected conflicts
    MEDIUM = "medium"     # timeouts, collaborator failures
    HIGH = "high"         # database failures, data integrity
    CRITICAL = "critical" # service down, data loss

class ErrorPattern:
    """Track error patterns to reduce duplicate logging."""

    def __init__(self, error_type: str, message: str, context: Dict[str, Any]):
        self.error_type = error_type
        self.message = message[:100]  # Truncate for fingerprinting
        self.context = {k: v for k, v in context.items() if k in ['endpoint', 'user_id', 'service']}
        self.fingerprint = self._generate_fingerprint()
        self.first_seen = time.time()
        self.last_seen = time.time()
        self.count = 1

    def _generate_fingerprint(self) -> str:
        content = f"{self.error_type}:{self.message}:{self.context.get('endpoint', '')}:{self.context.get('service', '')}"
        return hashlib.md5(content.encode(), usedforsecurity=False).hexdigest()[:8]

    def update(self):
        self.last_seen = time.time()
        self.count += 1

class ErrorAggregator:
    """Aggregate and deduplicate errors for token-efficient logging."""

    def __init__(self, log_threshold: int = 10, time_window: int = 300):
        self.log_threshold = log_threshold  # Log every Nth occurrence
        self.time_window = time_window      # 5 minutes
        self.patterns: Dict[str, ErrorPattern] = {}
        self.severity_override = {
            ErrorKind.VALIDATION: ErrorSeverity.LOW,
            ErrorKind.NOT_FOUND: ErrorSeverity.LOW,
            ErrorKind.SLOT_UNAVAILABLE: ErrorSeverity.LOW,
            ErrorKind.BUFFER_CONFLICT: ErrorSeverity.LOW,
            ErrorKind.ALREADY_CANCELLED: ErrorSeverity.LOW,
            ErrorKind.EXTERNAL_SERVICE: ErrorSeverity.MEDIUM,
        }
        self.type_severity = {
            "TimeoutError": ErrorSeverity.MEDIUM,
            "ConnectionError": ErrorSeverity.MEDIUM,
            "IntegrityError": ErrorSeverity.HIGH,
            "OperationalError": ErrorSeverity.HIGH,
        }

    def _determine_severity(self, error: Exception) -> ErrorSeverity:
        if isinstance(error, BookingError):
            return self.severity_override[error.kind]

        error_type = type(error).__name__
        if error_type in self.type_severity:
            return self.type_severity[error_type]

        if isinstance(error, HTTPException):
            if error.status_code < 500:
                return ErrorSeverity.LOW
            elif error.status_code < 503:
                return ErrorSeverity.MEDIUM
            else:
                return ErrorSeverity.HIGH

        if "timeout" in str(error).lower():
            return ErrorSeverity.MEDIUM
        return ErrorSeverity.MEDIUM

    def should_log(self, pattern: ErrorPattern, severity: ErrorSeverity) -> bool:
        """Determine if error should be logged based on frequency and severity."""
        # Always log high/critical severity
        if severity in [ErrorSeverity.HIGH, ErrorSeverity.CRITICAL]:
            return True

        # Log first occurrence
        if pattern.count == 1:
            return True

        if severity == ErrorSeverity.MEDIUM and pattern.count % self.log_threshold == 0:
            return True

        if severity == ErrorSeverity.LOW and pattern.count % (self.log_threshold * 5) == 0:
            return True

        return False

    def log_error(self, error: Exception, context: Optional[Dict[str, Any]] = None,
                  severity: Optional[ErrorSeverity] = None) -> str:
        """Log error with deduplication and smart frequency control."""
        context = dict(context or {})
        if isinstance(error, ExternalServiceError):
            context.setdefault("service", error.service)

        if severity is None:
            severity = self._determine_severity(error)

        error_type = type(error).__name__
        message = str(error)

        pattern = ErrorPattern(error_type, message, context)
        fingerprint = pattern.fingerprint

        if fingerprint in self.patterns:
            self.patterns[fingerprint].update()
            pattern = self.patterns[fingerprint]
        else:
            self.patterns[fingerprint] = pattern

        if self.should_log(pattern, severity):
            log = logger.warning if severity == ErrorSeverity.LOW else logger.error
            log(
                "aggregated_error",
                error_hash=fingerprint,
                error_type=error_type,
                error=message,
                count=pattern.count,
                severity=severity.value,
                context=context,
            )

        return fingerprint

    def get_error_summary(self) -> Dict[str, Any]:
        """Get summary of recent errors for monitoring."""
        now = time.time()
        recent_errors = {
            fp: pattern for fp, pattern in self.patterns.items()
            if now - pattern.last_seen < self.time_window
        }

        by_type: Dict[str, int] = defaultdict(int)
        for pattern in recent_errors.values():
            by_type[pattern.error_type] += pattern.count

        top_errors = sorted(recent_errors.values(), key=lambda p: p.count, reverse=True)[:5]
        return {
            "total_unique_errors": len(recent_errors),
            "total_error_count": sum(p.count for p in recent_errors.values()),
            "by_type": dict(by_type),
            "top_errors": [
                {
                    "fingerprint": p.fingerprint,
                    "type": p.error_type,
                    "message": p.message,
                    "count": p.count
                }
                for p in top_errors
            ],
        }

# Global error aggregator instance
error_aggregator = ErrorAggregator()

def log_error(error: Exception, context: Optional[Dict[str, Any]] = None,
              severity: Optional[ErrorSeverity] = None) -> str:
    """Convenience function to log errors through the global aggregator."""
    return error_aggregator.log_error(error, context, severity)

def get_error_summary() -> Dict[str, Any]:
    """Get error summary from global aggregator."""
    return error_aggregator.get_error_summary()
