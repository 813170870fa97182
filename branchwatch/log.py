"""Logging setup and token redaction."""

import logging
import re
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

_logger = logging.getLogger("branchwatch")

_SENSITIVE_PATTERNS = [
    # credentials embedded in clone URLs
    (re.compile(r"(https?://[^:/@\s]+:)[^@\s]+@"), r"\1[REDACTED]@"),
    (re.compile(r"(Bearer\s+)[A-Za-z0-9._\-+/=]+", re.IGNORECASE), r"\1[REDACTED]"),
    (
        re.compile(r"(access_token|token|password)(['\"]?\s*[:=]\s*['\"]?)[^'\"\s,}]+", re.IGNORECASE),
        r"\1\2[REDACTED]",
    ),
]


def redact(text: str) -> str:
    """Mask credentials in a message before it reaches a handler."""
    for pattern, replacement in _SENSITIVE_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


class RedactingFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        cleaned = redact(message)
        if cleaned != message:
            record.msg = cleaned
            record.args = None
        return True


def configure_logging(
    verbose: bool = False,
    log_file: Path | None = None,
    console: Console | None = None,
) -> None:
    """Install a rich stderr handler and an optional plain file handler."""
    for handler in list(_logger.handlers):
        _logger.removeHandler(handler)
        handler.close()

    _logger.setLevel(logging.DEBUG)
    _logger.propagate = False

    stream = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        markup=False,
        rich_tracebacks=verbose,
    )
    stream.setLevel(logging.DEBUG if verbose else logging.INFO)
    stream.addFilter(RedactingFilter())
    _logger.addHandler(stream)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )
        file_handler.addFilter(RedactingFilter())
        _logger.addHandler(file_handler)
