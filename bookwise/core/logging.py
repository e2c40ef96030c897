"""
Structured logging with correlation IDs and token-efficient design.
"""
import logging
import time
import uuid
from contextvars import ContextVar
from typing import Any, Dict, Optional

import structlog
from fastapi import Request

# Request correlation context
request_id: ContextVar[str] = ContextVar('request_id', default="")
user_context: ContextVar[Dict[str, Any]] = ContextVar('user_context', default={})

class TokenEfficientProcessor:
    """Processor to keep logs concise and token-efficient."""

    def __init__(self, max_length: int = 200, strip_tracebacks: bool = False):
        self.max_length = max_length
        self.strip_tracebacks = strip_tracebacks

    def __call__(self, logger, method_name, event_dict):
        # Truncate long messages
        if 'message' in event_dict:
            event_dict['message'] = str(event_dict['message'])[:self.max_length]

        # Truncate error messages
        if 'error' in event_dict:
            event_dict['error'] = str(event_dict['error'])[:self.max_length]

        # Remove verbose stack traces in production
        if self.strip_tracebacks and 'exc_info' in event_dict:
            del event_dict['exc_info']

        return event_dict

class CorrelationProcessor:
    """Add correlation ID and user context to all logs."""

    def __call__(self, logger, method_name, event_dict):
        correlation_id = request_id.get("")
        if correlation_id:
            event_dict['correlation_id'] = correlation_id

        context = user_context.get({})
        if context:
            for key, value in context.items():
                event_dict.setdefault(key, value)

        return event_dict

def setup_logging(debug: bool = False, max_log_length: int = 200, level: str = "INFO"):
    """Configure structured logging for the application."""

    processors = [
        structlog.stdlib.filter_by_level,
        CorrelationProcessor(),
        TokenEfficientProcessor(max_length=max_log_length, strip_tracebacks=not debug),
        structlog.stdlib.add_logger_name,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]

    if debug:
        processors.append(structlog.dev.ConsoleRenderer())
    else:
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    # Configure standard library logging
    logging.basicConfig(
        level=logging.DEBUG if debug else getattr(logging, level.upper(), logging.INFO),
        format="%(message)s",
    )

def get_logger(name: str = __name__):
    """Get a structured logger instance."""
    return structlog.get_logger(name)

def set_correlation_id(correlation_id: str):
    """Set correlation ID for current request context."""
    request_id.set(correlation_id)

def set_user_context(user_id: Optional[str] = None, endpoint: Optional[str] = None,
                    method: Optional[str] = None, **kwargs):
    """Set user context for current request."""
    context = {}
    if user_id:
        context['user_id'] = user_id
    if endpoint:
        context['endpoint'] = endpoint
    if method:
        context['method'] = method
    context.update(kwargs)
    user_context.set(context)

def clear_context():
    """Clear correlation ID and user context."""
    request_id.set("")
    user_context.set({})

class LoggingMiddleware:
    """FastAPI middleware for request logging with correlation IDs."""

    def __init__(self, log_requests: bool = False, log_responses: bool = False,
                 slow_threshold: float = 2.0):
        self.log_requests = log_requests
        self.log_responses = log_responses
        self.slow_threshold = slow_threshold
        self.logger = get_logger("middleware")

    async def __call__(self, request: Request, call_next):
        correlation_id = request.headers.get("x-request-id") or str(uuid.uuid4())[:8]
        set_correlation_id(correlation_id)

        set_user_context(
            endpoint=request.url.path,
            method=request.method,
        )

        request.state.correlation_id = correlation_id

        started = time.perf_counter()

        if self.log_requests:
            self.logger.info(
                "request_start",
                query_params=dict(request.query_params)
            )

        try:
            response = await call_next(request)

            duration = time.perf_counter() - started
            slow = duration > self.slow_threshold

            if self.log_responses or slow or response.status_code >= 400:
                self.logger.info(
                    "request_complete",
                    status_code=response.status_code,
                    duration=round(duration, 3),
                    slow=slow
                )

            response.headers["x-request-id"] = correlation_id
            return response

        except Exception as e:
            duration = time.perf_counter() - started
            self.logger.error(
                "request_error",
                error=str(e),
                duration=round(duration, 3),
                error_type=type(e).__name__
            )
            raise
        finally:
            clear_context()
