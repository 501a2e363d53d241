"""
Observability Module - Logging, Metrics, and Health

Provides:
- Structured JSON logging with request IDs
- Request/response logging middleware
- Metrics collection (operation latency, committed/aborted counts, claims)
- Health check utilities

Configuration:
- ASTROFORGE_LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: INFO)
- ASTROFORGE_LOG_FORMAT: json, text (default: json in production)
- ASTROFORGE_PRODUCTION: Enable production mode

Usage:
    from astroforge.observability import get_logger

    logger = get_logger(__name__)
    logger.info("Asset forged", token_id=3, owner=owner)
"""

import json
import logging
import os
import sys
import threading
import time
import uuid
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

# Context variable for request tracking
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

_RESERVED_RECORD_FIELDS = frozenset((
    "name", "msg", "args", "created", "levelname", "levelno",
    "pathname", "filename", "module", "lineno", "funcName",
    "exc_info", "exc_text", "stack_info", "message", "msecs",
    "relativeCreated", "thread", "threadName", "processName",
    "process", "taskName",
))


# ============================================================
# CONFIGURATION
# ============================================================

def is_production() -> bool:
    return os.environ.get("ASTROFORGE_PRODUCTION", "").lower() in ("1", "true", "yes")


def _get_log_level() -> int:
    level_str = os.environ.get("ASTROFORGE_LOG_LEVEL", "INFO").upper()
    levels = {
        "DEBUG": logging.DEBUG,
        "INFO": logging.INFO,
        "WARNING": logging.WARNING,
        "ERROR": logging.ERROR,
        "CRITICAL": logging.CRITICAL,
    }
    return levels.get(level_str, logging.INFO)


def _use_json_logging() -> bool:
    format_str = os.environ.get("ASTROFORGE_LOG_FORMAT", "").lower()
    if format_str == "json":
        return True
    if format_str == "text":
        return False
    return is_production()


# ============================================================
# STRUCTURED LOGGING
# ============================================================

class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Output format:
    {
        "timestamp": "2024-01-15T10:30:00.000Z",
        "level": "INFO",
        "logger": "astroforge.core.assets",
        "message": "Asset forged",
        "request_id": "abc-123",
        "token_id": 3,
        ...extra fields...
    }
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        request_id = request_id_var.get()
        if request_id:
            log_data["request_id"] = request_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key in _RESERVED_RECORD_FIELDS or key.startswith("_"):
                continue
            try:
                json.dumps(value)
                log_data[key] = value
            except (TypeError, ValueError):
                log_data[key] = str(value)

        return json.dumps(log_data)


class TextFormatter(logging.Formatter):
    """Human-readable formatter for development."""

    def format(self, record: logging.LogRecord) -> str:
        prefix = ""
        request_id = request_id_var.get()
        if request_id:
            prefix = f"[{request_id[:8]}] "

        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
        msg = f"{timestamp} {record.levelname:8} {prefix}{record.name}: {record.getMessage()}"

        if record.exc_info:
            msg += "\n" + self.formatException(record.exc_info)

        return msg


class ContextLogger(logging.LoggerAdapter):
    """
    Logger adapter that accepts context fields as keyword arguments.

    Usage:
        logger = get_logger(__name__)
        logger.info("Claim redeemed", tx_id=tx_id, amount=amount)
    """

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        extra = kwargs.get("extra", {})

        for key in list(kwargs.keys()):
            if key not in ("exc_info", "stack_info", "stacklevel", "extra"):
                extra[key] = kwargs.pop(key)

        kwargs["extra"] = extra
        return msg, kwargs


def get_logger(name: str) -> ContextLogger:
    """
    Get a structured logger for the given name.

    Args:
        name: Logger name (typically __name__)

    Returns:
        ContextLogger instance with structured output
    """
    return ContextLogger(logging.getLogger(name), {})


def setup_logging() -> None:
    """
    Configure logging for the application.

    Call this once at application startup.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(_get_log_level())

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(_get_log_level())

    if _use_json_logging():
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(TextFormatter())

    root_logger.addHandler(handler)

    # Suppress noisy loggers
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ============================================================
# REQUEST CONTEXT MIDDLEWARE
# ============================================================

class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Middleware that sets up request context for logging.

    - Generates unique request ID for each request (or honours X-Request-ID)
    - Logs request/response with timing
    - Feeds request counters into the metrics collector
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4())[:8])
        token = request_id_var.set(request_id)

        logger = get_logger("astroforge.request")
        start_time = time.perf_counter()

        logger.debug(
            f"{request.method} {request.url.path}",
            method=request.method,
            path=request.url.path,
            client_ip=request.client.host if request.client else None,
        )

        try:
            response = await call_next(request)

            duration_ms = (time.perf_counter() - start_time) * 1000
            log_level = logging.INFO if response.status_code < 400 else logging.WARNING
            get_metrics().record_request(duration_ms, success=response.status_code < 500)

            logger.log(
                log_level,
                f"{request.method} {request.url.path} -> {response.status_code}",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round(duration_ms, 2),
            )

            response.headers["X-Request-ID"] = request_id
            return response

        except Exception as e:
            duration_ms = (time.perf_counter() - start_time) * 1000
            get_metrics().record_request(duration_ms, success=False)
            logger.exception(
                f"{request.method} {request.url.path} -> 500",
                method=request.method,
                path=request.url.path,
                status_code=500,
                duration_ms=round(duration_ms, 2),
                error=str(e),
            )
            raise

        finally:
            request_id_var.reset(token)


# ============================================================
# METRICS
# ============================================================

_MAX_SAMPLES = 1000


@dataclass
class MetricsCollector:
    """
    Simple in-memory metrics collector.

    For production, replace with Prometheus, StatsD, or similar.
    """

    # Counters
    operations_committed: int = 0
    operations_aborted: int = 0
    claims_redeemed: int = 0
    requests_total: int = 0
    requests_failed: int = 0

    # Histograms (simplified as lists)
    operation_latencies_ms: list = field(default_factory=list)
    request_latencies_ms: list = field(default_factory=list)

    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def record_operation(self, latency_ms: float, committed: bool) -> None:
        """Record one ledger operation, committed or rolled back."""
        with self._lock:
            if committed:
                self.operations_committed += 1
            else:
                self.operations_aborted += 1
            self.operation_latencies_ms.append(latency_ms)
            if len(self.operation_latencies_ms) > _MAX_SAMPLES:
                self.operation_latencies_ms = self.operation_latencies_ms[-_MAX_SAMPLES:]

    def record_claim(self) -> None:
        with self._lock:
            self.claims_redeemed += 1

    def record_request(self, latency_ms: float, success: bool) -> None:
        """Record a request."""
        with self._lock:
            self.requests_total += 1
            if not success:
                self.requests_failed += 1
            self.request_latencies_ms.append(latency_ms)
            if len(self.request_latencies_ms) > _MAX_SAMPLES:
                self.request_latencies_ms = self.request_latencies_ms[-_MAX_SAMPLES:]

    def reset(self) -> None:
        with self._lock:
            self.operations_committed = 0
            self.operations_aborted = 0
            self.claims_redeemed = 0
            self.requests_total = 0
            self.requests_failed = 0
            self.operation_latencies_ms = []
            self.request_latencies_ms = []

    def get_summary(self) -> Dict[str, Any]:
        """Get metrics summary."""
        def percentile(data: list, p: float) -> Optional[float]:
            if not data:
                return None
            sorted_data = sorted(data)
            idx = int(len(sorted_data) * p)
            return sorted_data[min(idx, len(sorted_data) - 1)]

        with self._lock:
            operations = list(self.operation_latencies_ms)
            requests = list(self.request_latencies_ms)
            return {
                "operations_committed": self.operations_committed,
                "operations_aborted": self.operations_aborted,
                "claims_redeemed": self.claims_redeemed,
                "requests_total": self.requests_total,
                "requests_failed": self.requests_failed,
                "operation_latency_p50_ms": percentile(operations, 0.5),
                "operation_latency_p95_ms": percentile(operations, 0.95),
                "operation_latency_p99_ms": percentile(operations, 0.99),
                "request_latency_p50_ms": percentile(requests, 0.5),
                "request_latency_p95_ms": percentile(requests, 0.95),
            }


# Global metrics instance
_metrics = MetricsCollector()


def get_metrics() -> MetricsCollector:
    """Get the global metrics collector."""
    return _metrics


# ============================================================
# HEALTH CHECKS
# ============================================================

@dataclass
class HealthStatus:
    """Health check result."""
    healthy: bool
    checks: Dict[str, Dict[str, Any]]
    duration_ms: float


def check_health(platform=None, verify_chain: bool = False) -> HealthStatus:
    """
    Run all health checks.

    Args:
        platform: Platform instance (store and ledgers)
        verify_chain: Also re-hash the whole event journal (expensive)

    Returns:
        HealthStatus with all check results
    """
    start = time.perf_counter()
    checks = {}
    all_healthy = True

    # Check 1: Basic liveness
    checks["liveness"] = {"status": "healthy"}

    # Check 2: Journal head
    if platform is not None:
        try:
            head = platform.store.journal.get_head()
            checks["journal"] = {
                "status": "healthy",
                "event_count": head.next_sequence,
                "last_hash": head.last_event_hash[:16] + "..." if head.last_event_hash else None,
            }
        except Exception as e:
            checks["journal"] = {
                "status": "unhealthy",
                "error": str(e),
            }
            all_healthy = False

        # Check 3: Fee bridge wiring
        checks["fee_bridge"] = {
            "status": "healthy" if platform.assets.fee_ledger is not None else "degraded",
            "fee_ledger": platform.assets.fee_ledger,
        }

    # Check 4: Chain integrity (expensive, only if explicitly requested)
    if platform is not None and verify_chain:
        journal = platform.store.journal
        try:
            is_valid = journal.verify_chain_integrity()
            checks["chain_integrity"] = {
                "status": "healthy" if is_valid else "unhealthy",
                "valid": is_valid,
                "event_count": journal.event_count,
            }
            if not is_valid:
                all_healthy = False
        except Exception as e:
            checks["chain_integrity"] = {
                "status": "unhealthy",
                "error": str(e),
            }
            all_healthy = False

    duration_ms = (time.perf_counter() - start) * 1000

    return HealthStatus(
        healthy=all_healthy,
        checks=checks,
        duration_ms=round(duration_ms, 2),
    )
