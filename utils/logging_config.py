"""
Logging setup for the group-buy service.

One rotating file (logs/groupbuy.log) plus console, both behind the same
formatter. Lifecycle lines use greppable prefixes (BASKET_TRANSITION,
CHATROOM_TRANSITION, POOL_CONVERTED) so a single chatroom can be traced
through the file.
"""

import logging
import logging.handlers
import re
from pathlib import Path
from typing import Pattern

import config

LOG_FORMAT = '%(asctime)s | %(name)-28s | %(levelname)-8s | %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

# Chatty third-party loggers, raised to WARNING unless SQL_ECHO asks for statements
NOISY_LOGGERS = ("aiosqlite", "redis", "asyncio")


class SecretMaskingFilter(logging.Filter):
    """
    Masks credentials and PII before a record reaches any handler:
    bearer/API tokens, passwords (including redis:// URLs), the storage signing
    secret, signatures of attachment URLs and e-mail addresses.
    """

    PATTERNS: list[tuple[Pattern, str]] = [
        (re.compile(r'(token["\']?\s*[:=]\s*["\']?)([A-Za-z0-9_\-:]{20,})(["\']?)', re.IGNORECASE), r'\1[REDACTED_TOKEN]\3'),
        (re.compile(r'(Bearer\s+)([A-Za-z0-9_\-\.]+)', re.IGNORECASE), r'\1[REDACTED_BEARER_TOKEN]'),
        (re.compile(r'(redis://[^:/\s]*:)([^@\s]+)(@)', re.IGNORECASE), r'\1[REDACTED_PASSWORD]\3'),
        (re.compile(r'(password["\']?\s*[:=]\s*["\']?)([^\s"\']+)(["\']?)', re.IGNORECASE), r'\1[REDACTED_PASSWORD]\3'),
        (re.compile(r'(secret["\']?\s*[:=]\s*["\']?)([^\s"\']+)(["\']?)', re.IGNORECASE), r'\1[REDACTED_SECRET]\3'),
        (re.compile(r'(signature=)([a-fA-F0-9]{16,})', re.IGNORECASE), r'\1[REDACTED_SIGNATURE]'),
        (re.compile(r'\b([a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,})\b'), '[REDACTED_EMAIL]'),
    ]

    @classmethod
    def mask(cls, text: str) -> str:
        for pattern, replacement in cls.PATTERNS:
            text = pattern.sub(replacement, text)
        return text

    def filter(self, record: logging.LogRecord) -> bool:
        # Never drops a record, only rewrites it
        if record.msg:
            record.msg = self.mask(str(record.msg))
        if record.args and isinstance(record.args, tuple):
            record.args = tuple(self.mask(arg) if isinstance(arg, str) else arg for arg in record.args)
        return True


def _attach(handler: logging.Handler, level: int, mask_secrets: bool) -> logging.Handler:
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
    handler.setLevel(level)
    if mask_secrets:
        handler.addFilter(SecretMaskingFilter())
    return handler


def setup_logging(log_dir: Path | str = "logs"):
    """
    Install file and console handlers on the root logger (call once, from run.py).

    Level comes from LOG_LEVEL, rotation happens at midnight and
    LOG_RETENTION_DAYS files are kept. Re-running replaces previously
    installed handlers instead of stacking them.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    level_name = config.LOG_LEVEL.upper()
    level = getattr(logging, level_name, logging.INFO)

    handlers = [
        _attach(logging.handlers.TimedRotatingFileHandler(
            filename=log_dir / "groupbuy.log",
            when="midnight",
            backupCount=config.LOG_RETENTION_DAYS,
            encoding="utf-8"
        ), level, config.LOG_MASK_SECRETS),
        _attach(logging.StreamHandler(), level, config.LOG_MASK_SECRETS),
    ]

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()
    for handler in handlers:
        root_logger.addHandler(handler)

    logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO if config.SQL_ECHO else logging.WARNING)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).info(
        f"Logging ready [{config.RUNTIME_ENVIRONMENT.value}]: level={level_name}, "
        f"retention={config.LOG_RETENTION_DAYS}d, masking={'on' if config.LOG_MASK_SECRETS else 'off'}"
    )
