"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict
from pythonjsonlogger import jsonlogger
from remittance_engine.config import settings
from remittance_engine.domain.exceptions import ReconciliationException


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.service_name


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


def log_cycle_event(step: str, cycle_id: str, contract_id: str, **fields: Any) -> None:
    """Log a cycle lifecycle step (created, calculated, locked, settled, exported, reconciled)"""
    logging.getLogger("remittance_engine.cycles").info(
        f"Cycle {step}",
        extra={
            "step": step,
            "cycle_id": cycle_id,
            "contract_id": contract_id,
            **fields,
        },
    )


def log_reconciliation_exception(exception: ReconciliationException, snapshot_id: str) -> None:
    """Warn on unexplained variance; the unbalanced snapshot is the record for manual review"""
    logging.getLogger("remittance_engine.reconciliation").warning(
        str(exception),
        extra={
            "step": "reconciliation_exception",
            "cycle_id": exception.cycle_id,
            "snapshot_id": snapshot_id,
            "diff_investor_minor": exception.diff_investor_minor,
            "diff_servicer_minor": exception.diff_servicer_minor,
            "diff_total_minor": exception.diff_total_minor,
        },
    )
