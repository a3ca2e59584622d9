"""Logging configuration and utilities."""
import logging
import sys
from typing import Any, Dict, Optional

import structlog
from structlog.stdlib import LoggerFactory

from ..config import settings


def configure_logging(log_level: Optional[str] = None):
    """Configure structured logging."""

    # Configure structlog
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer()
        ],
        context_class=dict,
        logger_factory=LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # Configure standard logging
    level = (log_level or settings.monitoring.log_level).upper()
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level),
    )

    # Set third-party log levels
    logging.getLogger("uvicorn").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.error").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a named structured logger."""
    return structlog.get_logger(name)


class RequestLogger:
    """Request logging utility."""

    @staticmethod
    def log_request(
        method: str,
        path: str,
        user_id: str = None,
        request_id: str = None,
        extra_data: Dict[str, Any] = None
    ):
        """Log incoming request."""
        logger = structlog.get_logger("api.request")
        logger.info(
            "Request started",
            method=method,
            path=path,
            user_id=user_id,
            request_id=request_id,
            **(extra_data or {})
        )

    @staticmethod
    def log_response(
        method: str,
        path: str,
        status_code: int,
        response_time_ms: float,
        user_id: str = None,
        request_id: str = None,
        slow_threshold_ms: float = None,
    ):
        """Log response; error and slow responses are raised to warning."""
        logger = structlog.get_logger("api.response")
        fields = dict(
            method=method,
            path=path,
            status_code=status_code,
            response_time_ms=response_time_ms,
            user_id=user_id,
            request_id=request_id,
        )
        if status_code >= 400:
            logger.warning("Error response", **fields)
        elif slow_threshold_ms is not None and response_time_ms > slow_threshold_ms:
            logger.warning("Slow request", **fields)
        else:
            logger.info("Request completed", **fields)


class SecurityLogger:
    """Security event logging utility."""

    @staticmethod
    def log_login_attempt(
        email: str,
        success: bool,
        ip_address: str = None,
        user_agent: str = None,
        failure_reason: str = None
    ):
        """Log login attempt."""
        logger = structlog.get_logger("security.auth")
        logger.info(
            "Login attempt",
            event_type="login_attempt",
            email=email,
            success=success,
            ip_address=ip_address,
            user_agent=user_agent,
            failure_reason=failure_reason
        )

    @staticmethod
    def log_unauthorized_access(
        path: str,
        method: str,
        ip_address: str = None,
        user_agent: str = None,
        reason: str = None
    ):
        """Log unauthorized access attempt."""
        logger = structlog.get_logger("security.access")
        logger.warning(
            "Unauthorized access attempt",
            event_type="unauthorized_access",
            path=path,
            method=method,
            ip_address=ip_address,
            user_agent=user_agent,
            reason=reason
        )

    @staticmethod
    def log_rate_limit_exceeded(
        ip_address: str,
        path: str,
        limit_type: str = "api"
    ):
        """Log rate limit exceeded."""
        logger = structlog.get_logger("security.rate_limit")
        logger.warning(
            "Rate limit exceeded",
            event_type="rate_limit_exceeded",
            ip_address=ip_address,
            path=path,
            limit_type=limit_type
        )

    @staticmethod
    def log_suspicious_request(
        request_id: str,
        method: str,
        path: str,
        ip_address: str = None,
        user_agent: str = None,
    ):
        """Log a request matching a known attack pattern."""
        logger = structlog.get_logger("security.suspicious")
        logger.warning(
            "Suspicious request detected",
            event_type="suspicious_request",
            request_id=request_id,
            method=method,
            path=path,
            ip_address=ip_address,
            user_agent=user_agent
        )

    @staticmethod
    def log_audit_event(
        user_id: str,
        action: str,
        details: Dict[str, Any] = None,
        ip_address: str = None,
        user_agent: str = None
    ):
        """Mirror an audit log entry to the log stream."""
        logger = structlog.get_logger("security.audit")
        logger.info(
            "Audit event",
            event_type="audit",
            user_id=user_id,
            action=action,
            details=details or {},
            ip_address=ip_address,
            user_agent=user_agent
        )
