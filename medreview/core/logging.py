"""
JSON logging for the review service.

Every record is one JSON line. Bearer tokens and secrets that leak into a
message (typically through an exception string) are redacted. Audit lines
carry the actor and the review they touched as top-level fields.
"""
import json
import logging
import re
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from medreview.core.config import settings

_SECRET_PATTERN = re.compile(
    r'(password|secret|token|authorization|bearer)[\"\']?\s*[:= ]\s*[\"\']?(?:bearer\s+)?[^\s,;\"\'}{]+',
    re.IGNORECASE,
)

# Extra record attributes promoted into the JSON line
AUDIT_FIELDS = ("actor_id", "action", "entity_type", "entity_id")


def redact(message: str) -> str:
    return _SECRET_PATTERN.sub(r'\1=***REDACTED***', message)


class StructuredFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": redact(record.getMessage()),
        }
        for key in AUDIT_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                entry[key] = value
        if record.exc_info:
            entry["exception"] = redact(self.formatException(record.exc_info))
        return json.dumps(entry, default=str)


def setup_logging():
    """Configure the root logger once; later calls are no-ops."""
    root_logger = logging.getLogger()
    if root_logger.handlers:
        return

    root_logger.setLevel(logging.DEBUG if settings.DEBUG else logging.INFO)
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(StructuredFormatter())
    root_logger.addHandler(handler)

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("rq.worker").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


class AuditLogger:
    """Writes ``AUDIT: <action> on <entity_type>:<entity_id> - {details}`` lines."""

    def __init__(self, name: str = "audit"):
        self.logger = get_logger(name)

    def log(
        self,
        action: str,
        actor_id: Optional[str] = None,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        message = f"AUDIT: {action}"
        if entity_type and entity_id:
            message += f" on {entity_type}:{entity_id}"
        if details:
            message += f" - {json.dumps(details, default=str, sort_keys=True)}"

        self.logger.info(message, extra={
            "actor_id": actor_id,
            "action": action,
            "entity_type": entity_type,
            "entity_id": entity_id,
        })


audit_logger = AuditLogger()
