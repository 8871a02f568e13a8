"""
Logging configuration for govsig.

Provides structured JSON logging for audit trails and debugging. Library
modules only call ``logging.getLogger``; handlers are installed by
``configure_logging`` from the CLI entry points.
"""

import json
import logging
import sys
import time
import uuid
from contextvars import ContextVar
from typing import List, Optional

# Context variable for per-invocation operation tracking
operation_id_var: ContextVar[str] = ContextVar('operation_id', default='')


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Outputs one JSON object per line so release pipelines can ship
    verification logs to their aggregation system unchanged.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": time.strftime('%Y-%m-%dT%H:%M:%SZ', time.gmtime(record.created)),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        operation_id = operation_id_var.get()
        if operation_id:
            log_data["operation_id"] = operation_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if hasattr(record, 'extra_fields'):
            log_data.update(record.extra_fields)

        return json.dumps(log_data)


class AuditLogger:
    """
    Specialized logger for audit events.

    Records signing, verification and aggregation decisions. Never pass
    secret key material to any of these methods.
    """

    def __init__(self, name: str = "govsig.audit"):
        self._logger = logging.getLogger(name)

    def _log(self, level: int, event_type: str, **kwargs) -> None:
        """Internal logging method with extra fields."""
        if not self._logger.isEnabledFor(level):
            return
        extra = {
            "event_type": event_type,
            "operation_id": operation_id_var.get(),
            **kwargs
        }

        record = self._logger.makeRecord(
            self._logger.name,
            level,
            "",
            0,
            f"{event_type}: {kwargs.get('message', '')}",
            (),
            None
        )
        record.extra_fields = extra
        self._logger.handle(record)

    def key_generated(self, public_key: str, deterministic: bool) -> None:
        self._log(
            logging.INFO,
            "KEY_GENERATED",
            public_key=public_key,
            deterministic=deterministic,
            message=f"Generated keypair {public_key}"
        )

    def envelope_signed(
        self,
        target_type: str,
        target_hash: str,
        signer: str
    ) -> None:
        """Log creation of a single-signer envelope."""
        self._log(
            logging.INFO,
            "ENVELOPE_SIGNED",
            target_type=target_type,
            target_hash=target_hash,
            signer=signer,
            message=f"Signed {target_type} {target_hash[:16]}"
        )

    def verification_decision(
        self,
        target_type: str,
        target_hash: str,
        outcome: str,
        failure: Optional[str] = None,
        **details
    ) -> None:
        """Log the outcome of a verification."""
        level = logging.INFO if failure is None else logging.WARNING
        self._log(
            level,
            "VERIFICATION_DECISION",
            target_type=target_type,
            target_hash=target_hash,
            outcome=outcome,
            failure=failure,
            **details,
            message=f"Verification {outcome}" + (f" ({failure})" if failure else "")
        )

    def signature_rejected(self, signer: str, reason: str) -> None:
        """Log a signature that did not count toward quorum."""
        self._log(
            logging.WARNING,
            "SIGNATURE_REJECTED",
            signer=signer,
            reason=reason,
            message=f"Signature from {signer[:16]} rejected: {reason}"
        )

    def envelopes_aggregated(
        self,
        target_type: str,
        target_hash: str,
        inputs: int,
        signers: List[str]
    ) -> None:
        self._log(
            logging.INFO,
            "ENVELOPES_AGGREGATED",
            target_type=target_type,
            target_hash=target_hash,
            inputs=inputs,
            signers=signers,
            message=f"Aggregated {inputs} envelopes into {len(signers)} signatures"
        )


def configure_logging(
    level: str = "INFO",
    json_format: bool = True,
    log_file: Optional[str] = None
) -> None:
    """
    Configure logging for the CLI tools.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON formatting
        log_file: Optional file path for log output

    Logs go to stderr so stdout stays clean for tool output.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if json_format:
        formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


def set_operation_id(operation_id: Optional[str] = None) -> str:
    """
    Set the operation ID for the current context.

    Args:
        operation_id: ID to set, or None to generate one

    Returns:
        The operation ID that was set
    """
    if operation_id is None:
        operation_id = str(uuid.uuid4())
    operation_id_var.set(operation_id)
    return operation_id


def get_operation_id() -> str:
    """Get the current operation ID."""
    return operation_id_var.get()


# Global audit logger instance
audit_log = AuditLogger()
