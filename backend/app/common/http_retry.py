"""Retry and structured logging helpers for outbound HTTP calls."""

from __future__ import annotations

import functools
import logging
import time
from typing import Any, Callable, Dict, Optional, TypeVar

import httpx
from tenacity import (
    after_log,
    before_sleep_log,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


RETRYABLE_HTTP_EXCEPTIONS = (
    httpx.TimeoutException,
    httpx.ConnectError,
    httpx.RemoteProtocolError,
)


def is_retryable_http_error(exception: BaseException) -> bool:
    """Check if HTTP error is retryable (5xx or connection issues)."""
    if isinstance(exception, RETRYABLE_HTTP_EXCEPTIONS):
        return True

    if isinstance(exception, httpx.HTTPStatusError):
        return 500 <= exception.response.status_code < 600

    return False


def log_http_response(
    service: str,
    method: str,
    url: str,
    duration_ms: float,
    success: bool,
    status_code: Optional[int] = None,
    error: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> None:
    """Log an outbound call with structured data.

    Args:
        service: Collaborator name (e.g., "firm_registry")
        method: HTTP method
        url: Request URL
        duration_ms: Request duration in milliseconds
        success: Whether the request succeeded
        status_code: HTTP status code if a response was received
        error: Error message if failed
        metadata: Additional metadata to log
    """
    log_data = {
        "event": "http_response",
        "service": service,
        "method": method,
        "url": url,
        "duration_ms": round(duration_ms, 2),
        "success": success,
        "status_code": status_code,
    }
    if error:
        log_data["error"] = error
    if metadata:
        log_data.update(metadata)

    if success:
        logger.info(f"{service} {method} {url} ({duration_ms:.0f}ms)", extra=log_data)
    else:
        logger.error(f"{service} request failed: {error}", extra=log_data)


def create_http_retry_decorator(
    max_attempts: int = 3,
    min_wait_seconds: float = 0.5,
    max_wait_seconds: float = 8.0,
) -> Callable:
    """Create a retry decorator for collaborator calls.

    Uses exponential backoff between attempts.

    Args:
        max_attempts: Maximum number of attempts
        min_wait_seconds: Minimum wait time between retries
        max_wait_seconds: Maximum wait time between retries

    Returns:
        Retry decorator
    """
    return retry(
        retry=retry_if_exception(is_retryable_http_error),
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(
            multiplier=1,
            min=min_wait_seconds,
            max=max_wait_seconds,
        ),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        after=after_log(logger, logging.INFO),
        reraise=True,
    )


def with_http_logging(service: str) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Decorator timing a call that returns an ``httpx.Response``-producing result.

    The wrapped function must accept ``method`` and ``url`` as its first
    positional arguments after ``self``.
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        def wrapper(self: Any, method: str, url: str, *args: Any, **kwargs: Any) -> T:
            start_time = time.time()
            try:
                result = func(self, method, url, *args, **kwargs)
            except httpx.HTTPStatusError as exc:
                duration_ms = (time.time() - start_time) * 1000
                log_http_response(
                    service, method, url, duration_ms, success=False,
                    status_code=exc.response.status_code, error=str(exc),
                )
                raise
            except httpx.HTTPError as exc:
                duration_ms = (time.time() - start_time) * 1000
                log_http_response(service, method, url, duration_ms, success=False, error=str(exc))
                raise
            duration_ms = (time.time() - start_time) * 1000
            log_http_response(service, method, url, duration_ms, success=True,
                              status_code=getattr(result, "status_code", None))
            return result

        return wrapper
    return decorator


def safe_timeout(timeout_value: Any, default: float = 15.0) -> Optional[float]:
    """Convert timeout configuration to a safe float value.

    Args:
        timeout_value: Timeout value from config (could be 0, None, string, etc.)
        default: Default timeout in seconds

    Returns:
        Float timeout value or None (for infinite wait)
    """
    try:
        numeric = float(timeout_value) if timeout_value is not None else default
    except (TypeError, ValueError):
        logger.warning(f"Invalid timeout value: {timeout_value}, using default {default}s")
        return default

    # 0 or negative means wait forever (None in httpx)
    if numeric <= 0:
        logger.info("Collaborator timeout set to infinite (0 or negative value)")
        return None

    if numeric > 300:  # 5 minutes
        logger.warning(f"Very long timeout configured: {numeric}s")

    return numeric
