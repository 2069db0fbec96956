"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict

from pythonjsonlogger import jsonlogger


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = "rentflow"


def setup_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging"""
    logger = logging.getLogger()
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers.clear()

    # JSON handler for stdout
    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s"
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_payment_recorded(
    application_id: str,
    payment_id: str,
    outcome: str,
    amount_cents: int,
    applied_cents: int,
    leftover_cents: int,
) -> None:
    """Log a payment notification applied to the ledger"""
    logging.info(
        "Payment recorded",
        extra={
            "application_id": application_id,
            "payment_id": payment_id,
            "step": "payment_recorded",
            "outcome": outcome,
            "amount_cents": amount_cents,
            "applied_cents": applied_cents,
            "leftover_cents": leftover_cents,
        },
    )


def log_duplicate_payment(application_id: str, payment_id: str) -> None:
    """Replayed success notification; returned the earlier result"""
    logging.info(
        "Duplicate payment replay ignored",
        extra={
            "application_id": application_id,
            "payment_id": payment_id,
            "event": "duplicate_payment",
        },
    )


def log_transition(application_id: str, event: str, from_state: str, to_state: str) -> None:
    logging.info(
        "Application transitioned",
        extra={
            "application_id": application_id,
            "step": "transition",
            "workflow_event": event,
            "from_state": from_state,
            "to_state": to_state,
        },
    )


def log_reconciliation_needed(application_id: str, state: str, remaining_cents: int) -> None:
    """Signing funds fell below the gate after the application moved past it"""
    logging.warning(
        "Application needs reconciliation",
        extra={
            "application_id": application_id,
            "event": "reconciliation_needed",
            "state": state,
            "stage1_remaining_cents": remaining_cents,
        },
    )
