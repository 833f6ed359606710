"""Structured logging with audit trail support."""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from sshca.config import get_settings


class AuditAction(str, Enum):
    """Audit log action types."""

    # Certificate operations
    CERT_SIGN_USER = "certificate.sign_user"
    CERT_SIGN_HOST = "certificate.sign_host"
    CERT_SIGN_DENIED = "certificate.sign_denied"

    # Trust operations
    CA_TRUST_USER = "ca.trust_user"
    CA_TRUST_HOST = "ca.trust_host"

    # sshd configuration
    SSHD_COMMIT = "sshd.commit"
    SSHD_ROLLBACK = "sshd.rollback"


class JSONFormatter(logging.Formatter):
    """Format log records as JSON."""

    def format(self, record: logging.LogRecord) -> str:
        """Format the log record as JSON."""
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        # Add extra fields
        if hasattr(record, "extra"):
            log_data.update(record.extra)

        # Add exception info if present
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Add location info for debug
        if record.levelno <= logging.DEBUG:
            log_data["location"] = {
                "file": record.filename,
                "line": record.lineno,
                "function": record.funcName,
            }

        return json.dumps(log_data, default=str)


class TextFormatter(logging.Formatter):
    """Format log records as human-readable text."""

    def format(self, record: logging.LogRecord) -> str:
        """Format the log record as text."""
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
        level = record.levelname.ljust(8)
        message = record.getMessage()

        base = f"{timestamp} {level} [{record.name}] {message}"

        if hasattr(record, "extra") and record.extra:
            extras = " ".join(f"{k}={v}" for k, v in record.extra.items())
            base = f"{base} | {extras}"

        if record.exc_info:
            base = f"{base}\n{self.formatException(record.exc_info)}"

        return base


class StructuredLogger(logging.LoggerAdapter):
    """Logger adapter that adds structured context."""

    def process(self, msg: str, kwargs: dict) -> tuple[str, dict]:
        """Merge adapter context into the record's ``extra`` mapping."""
        fields = dict(self.extra)
        fields.update(kwargs.pop("fields", {}))
        if fields:
            kwargs["extra"] = {"extra": fields}
        return msg, kwargs

    def with_context(self, **context) -> "StructuredLogger":
        """Create a new logger with additional context."""
        new_extra = {**self.extra, **context}
        return StructuredLogger(self.logger, new_extra)


class AuditLogger:
    """
    Audit logger for security-relevant operations.

    Successful actions are written at INFO level, failures at WARNING.
    """

    def __init__(self, logger: logging.Logger | None = None):
        self.logger = logger or logging.getLogger("sshca.audit")

    def log(
        self,
        action: AuditAction,
        actor: str,
        resource: str | None = None,
        details: dict[str, Any] | None = None,
        success: bool = True,
        error: str | None = None,
    ) -> None:
        """
        Log an audit event.

        Args:
            action: The action being performed
            actor: Who performed the action (operator, peer address or "local")
            resource: Fingerprint or path the action applies to
            details: Additional details about the action
            success: Whether the action succeeded
            error: Error message if action failed
        """
        audit_data: dict[str, Any] = {
            "audit": True,
            "action": action.value,
            "actor": actor,
            "success": success,
        }

        if resource:
            audit_data["resource"] = resource
        if details:
            audit_data["details"] = details
        if error:
            audit_data["error"] = error

        level = logging.INFO if success else logging.WARNING
        self.logger.log(
            level,
            f"{action.value}: {actor} {'succeeded' if success else 'failed'}",
            extra={"extra": audit_data},
        )

    def cert_signed(
        self,
        actor: str,
        cert_type: str,
        identity: str,
        fingerprint: str,
        principals: list[str],
        success: bool = True,
        error: str | None = None,
    ) -> None:
        """Log a certificate signing attempt."""
        action = (
            AuditAction.CERT_SIGN_USER
            if cert_type == "user"
            else AuditAction.CERT_SIGN_HOST
        )
        self.log(
            action=action,
            actor=actor,
            resource=fingerprint,
            details={
                "cert_type": cert_type,
                "identity": identity,
                "principals": principals,
            },
            success=success,
            error=error,
        )

    def sign_denied(self, actor: str, fingerprint: str, reason: str) -> None:
        """Log a signing request that was never confirmed."""
        self.log(
            action=AuditAction.CERT_SIGN_DENIED,
            actor=actor,
            resource=fingerprint,
            success=False,
            error=reason,
        )

    def ca_trusted(self, actor: str, ca_type: str, fingerprint: str, path: str) -> None:
        """Log installation of a CA public key."""
        action = (
            AuditAction.CA_TRUST_USER if ca_type == "user" else AuditAction.CA_TRUST_HOST
        )
        self.log(
            action=action,
            actor=actor,
            resource=fingerprint,
            details={"path": path},
        )

    def sshd_committed(self, actor: str, config_path: str, changes: list[str]) -> None:
        """Log a validated sshd configuration change."""
        self.log(
            action=AuditAction.SSHD_COMMIT,
            actor=actor,
            resource=config_path,
            details={"changes": changes},
        )

    def sshd_rolled_back(
        self, actor: str, config_path: str, error: str, restored: bool = True
    ) -> None:
        """Log a rejected sshd configuration change."""
        self.log(
            action=AuditAction.SSHD_ROLLBACK,
            actor=actor,
            resource=config_path,
            details={"restored": restored},
            success=False,
            error=error,
        )


def setup_logging(
    level: str = "INFO",
    format: str = "text",
    logger_name: str = "sshca",
) -> logging.Logger:
    """
    Set up logging configuration.

    Logs go to stderr: the CA server's stdout carries signing prompts.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format: Output format ("text" or "json")
        logger_name: Name of the root logger

    Returns:
        Configured logger
    """
    logger = logging.getLogger(logger_name)
    logger.setLevel(getattr(logging, level.upper()))

    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(getattr(logging, level.upper()))

    if format.lower() == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(TextFormatter())

    logger.addHandler(handler)

    # Prevent propagation to root logger
    logger.propagate = False

    return logger


def get_logger(name: str = "sshca") -> StructuredLogger:
    """
    Get a structured logger.

    Args:
        name: Logger name (will be prefixed with "sshca.")

    Returns:
        StructuredLogger instance
    """
    if not name.startswith("sshca"):
        name = f"sshca.{name}"

    logger = logging.getLogger(name)
    return StructuredLogger(logger, {})


def get_audit_logger() -> AuditLogger:
    """Get the audit logger."""
    return AuditLogger()


_initialized = False


def init_logging() -> None:
    """Initialize logging from settings."""
    global _initialized
    if _initialized:
        return

    settings = get_settings()
    setup_logging(
        level=settings.log_level,
        format=settings.log_format,
    )
    _initialized = True
