"""
Logging setup: JSON records in production, plain lines in development.

Every record passes through SecretRedactionFilter, so a verification code
or a session token that ends up in a message is masked before any handler
writes it.
"""

import logging
import re
import sys
from datetime import datetime, timezone
from typing import Any, Dict

from pythonjsonlogger import jsonlogger

# Six-digit codes as whole words; "ab123456@..." is left alone
CODE_PATTERN = re.compile(r"\b\d{6}\b")
# secrets.token_urlsafe(32) output
TOKEN_PATTERN = re.compile(r"(?<![A-Za-z0-9_-])[A-Za-z0-9_-]{43}(?![A-Za-z0-9_-])")

QUIET_LOGGERS = ("urllib3", "httpx", "httpcore", "sqlalchemy.engine", "redis")


class SecretRedactionFilter(logging.Filter):
    """Mask verification codes and session tokens in the rendered message."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = CODE_PATTERN.sub("[code]", TOKEN_PATTERN.sub("[token]", message))
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


class ServiceJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter stamping each record with the service and environment."""

    def __init__(self, *args, service: str = "", environment: str = "", **kwargs):
        super().__init__(*args, **kwargs)
        self.service = service
        self.environment = environment

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)

        log_record['timestamp'] = datetime.fromtimestamp(record.created, timezone.utc).isoformat()
        log_record['level'] = record.levelname
        log_record['logger'] = record.name
        log_record['service'] = self.service
        log_record['environment'] = self.environment

        if record.levelno >= logging.WARNING:
            log_record['location'] = f"{record.module}.{record.funcName}:{record.lineno}"


def setup_logging(
    log_level: str = "INFO",
    json_logs: bool = True,
    service: str = "",
    environment: str = "",
) -> None:
    """
    Install a single stdout handler on the root logger.

    Args:
        log_level: Level name; unknown names fall back to INFO
        json_logs: Emit JSON records (production) instead of plain lines
        service: Value of the "service" field in JSON records
        environment: Value of the "environment" field in JSON records
    """
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(SecretRedactionFilter())

    if json_logs:
        handler.setFormatter(ServiceJsonFormatter(
            '%(timestamp)s %(level)s %(logger)s %(message)s',
            service=service,
            environment=environment,
        ))
    else:
        handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S',
        ))

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    root_logger.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
