"""
Lending Market Logging

Console output goes through rich with deployment-specific highlighting;
an optional rotating file mirrors it.

Usage:
    >>> from lendmarket.logger import get_logger
    >>> logger = get_logger(__name__)
    >>> logger.info("[deploy] pool proxy at 0x...")
"""

import logging
import logging.handlers
import re
import sys
import threading
import time
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.highlighter import RegexHighlighter
from rich.logging import RichHandler
from rich.theme import Theme

from .constants import (
    LOG_LEVEL,
    LOG_FORMAT,
    LOG_DATE_FORMAT,
    LOG_MAX_FILE_SIZE,
    LOG_BACKUP_COUNT,
    LOG_CONSOLE_HIGHLIGHTING,
    LOG_TO_FILE,
)


LOG_FILE_PATH = Path(__file__).parent.parent / "logs" / "lendmarket.log"

THEME = Theme(
    {
        "lendmarket.address": "cyan",
        "lendmarket.level_error": "bold red",
        "lendmarket.level_warning": "bold yellow",
        "lendmarket.status_ok": "bold green",
        "lendmarket.status_warn": "bold yellow",
        "lendmarket.status_fail": "bold red",
        "lendmarket.tag": "bold magenta",
    }
)


class DeployLogHighlighter(RegexHighlighter):
    """Addresses, [stage] tags and the validator's OK / WARN / FAIL markers."""

    base_style = "lendmarket."
    highlights = [
        r"(?P<address>\b0x[0-9a-fA-F]{40}\b)",
        r"(?P<level_error>\bERROR\b)",
        r"(?P<level_warning>\bWARNING\b)",
        r"(?P<status_ok>\[OK\])",
        r"(?P<status_warn>\[WARN\])",
        r"(?P<status_fail>\[FAIL\])",
        r"(?P<tag>\[[a-z][a-z0-9_-]*\])",
    ]


class LedgerTextFormatter(logging.Formatter):
    """Drops escape sequences and control characters from formatted records.

    Token symbols and revert reasons are read back from the ledger and end
    up in log lines verbatim.
    """

    _unsafe_re = re.compile(r"\x1b\[[0-?]*[ -/]*[@-~]|\x1b[@-Z\\-_]|[\x00-\x08\x0B-\x1F\x7F]")

    @classmethod
    def sanitize(cls, text: str) -> str:
        return cls._unsafe_re.sub("", text) if text else text

    def format(self, record: logging.LogRecord) -> str:
        return self.sanitize(super().format(record))


class LogManager:
    """Configures the root logger once per process."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._configured = False

    def configure(self, log_level: Optional[str] = None, log_file: Optional[Path] = None,
                  file_output: Optional[bool] = None) -> None:
        with self._lock:
            if self._configured:
                return

            level = getattr(logging, str(log_level or LOG_LEVEL).upper(), logging.INFO)
            root = logging.getLogger()
            root.setLevel(level)
            root.handlers.clear()

            # JSON-RPC transport chatter
            for lib in ("web3", "urllib3"):
                logging.getLogger(lib).setLevel(logging.WARNING)

            formatter = LedgerTextFormatter(fmt=str(LOG_FORMAT), datefmt=str(LOG_DATE_FORMAT) + " UTC")
            formatter.converter = time.gmtime

            if LOG_CONSOLE_HIGHLIGHTING:
                handler = RichHandler(
                    console=Console(theme=THEME, highlight=False, stderr=True),
                    highlighter=DeployLogHighlighter(),
                    keywords=[],
                    rich_tracebacks=True,
                    show_path=False,
                    show_time=False,
                    show_level=False,
                    markup=False,
                )
            else:
                handler = logging.StreamHandler(sys.stderr)
            handler.setFormatter(formatter)
            root.addHandler(handler)

            if LOG_TO_FILE if file_output is None else file_output:
                path = log_file or LOG_FILE_PATH
                path.parent.mkdir(parents=True, exist_ok=True)
                file_handler = logging.handlers.RotatingFileHandler(
                    filename=str(path),
                    maxBytes=LOG_MAX_FILE_SIZE,
                    backupCount=LOG_BACKUP_COUNT,
                    encoding="utf-8",
                )
                file_handler.setFormatter(formatter)
                root.addHandler(file_handler)

            self._configured = True

    def get_logger(self, name: str) -> logging.Logger:
        if not self._configured:
            self.configure()
        return logging.getLogger(name)


_manager = LogManager()


def get_logger(name: str) -> logging.Logger:
    return _manager.get_logger(name)
