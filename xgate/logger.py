"""
XGate Logging
=============

Single entry point for gateway logging. The root logger is configured once,
on import, with a rich console handler (or a plain stream handler when
highlighting is off) and an optional rotating file.

Command payloads, token symbols and source chain names are attacker
supplied, so every record passes through TerminalSafeFormatter before it
reaches a terminal or a file.

Usage:
    >>> from xgate.logger import get_logger
    >>> logger = get_logger(__name__)
    >>> logger.info("Batch executed")
"""

import logging
import logging.handlers
import re
import sys
import threading
import time
from pathlib import Path
from typing import List, Optional

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
    LOG_FILE_OUTPUT,
)


LOG_FILE_PATH = Path(__file__).resolve().parent.parent / "logs" / "xgate.log"

GATEWAY_THEME = Theme({
    "xgate.address":         "cyan",
    "xgate.hash":            "dim cyan",
    "xgate.epoch":           "bold magenta",
    "xgate.command":         "bold white",
    "xgate.level_critical":  "bold red reverse",
    "xgate.level_error":     "bold red",
    "xgate.level_warning":   "bold yellow",
    "xgate.level_info":      "bold green",
    "xgate.level_debug":     "bold dim",
    "xgate.logger_name":     "magenta",
    "xgate.timestamp":       "bold cyan",
})

# %(name)s style fields; a match not preceded by '%' is a typo like "(message)s"
_FIELD_RE = re.compile(r"\([A-Za-z_]\w*\)[A-Za-z]")

_STRFTIME_RE = re.compile(
    r"^(?=.*%[EO]?[-_0^#]*[A-DF-HIM-NPR-VW-Za-hj-npr-uw-z])"
    r"(?:%%|%[EO]?[-_0^#]*[A-DF-HIM-NPR-VW-Za-hj-npr-uw-z]|[0-9 \t:\-/.,TZ+])+$"
)


def _fallback(setting, reason: str) -> str:
    # Logging is not up yet, so complaints go straight to stderr
    print(f"xgate.logger: {reason}, using default", file=sys.stderr)
    return str(setting.default())


class LogManager:
    """
    Process-wide logging singleton.

    ``configure`` is idempotent and guarded by a class lock, so concurrent
    first calls to ``get_logger`` install the handlers only once.
    """

    _instance: Optional["LogManager"] = None
    _lock: threading.Lock = threading.Lock()

    def __new__(cls) -> "LogManager":
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    instance = super().__new__(cls)
                    instance._configured = False
                    cls._instance = instance
        return cls._instance

    # ── Setting validation ────────────────────────────────────────────

    @staticmethod
    def validate_log_format(log_format: str) -> str:
        """
        Return *log_format* if ``logging`` can render a record with it,
        otherwise the LOG_FORMAT default.
        """
        if not log_format:
            return str(LOG_FORMAT.default())
        log_format = str(log_format)

        for match in _FIELD_RE.finditer(log_format):
            if match.start() == 0 or log_format[match.start() - 1] != "%":
                return _fallback(LOG_FORMAT, f"malformed field {match.group()!r} in LOG_FORMAT")

        try:
            formatter = logging.Formatter(fmt=log_format, validate=True)
            formatter.format(logging.makeLogRecord({"msg": "probe", "levelno": logging.INFO}))
        except (ValueError, KeyError, TypeError) as e:
            return _fallback(LOG_FORMAT, f"invalid LOG_FORMAT ({e})")
        return log_format

    @staticmethod
    def validate_date_format(date_format: str) -> str:
        """Accept only strftime directives and plain separators."""
        if not date_format:
            return str(LOG_DATE_FORMAT.default())
        date_format = str(date_format)
        if not _STRFTIME_RE.match(date_format):
            return _fallback(LOG_DATE_FORMAT, f"invalid LOG_DATE_FORMAT {date_format!r}")
        return date_format

    # ── Handlers ──────────────────────────────────────────────────────

    @staticmethod
    def _console_handler(highlight: bool) -> logging.Handler:
        if not highlight:
            return logging.StreamHandler(sys.stdout)
        return RichHandler(
            console=Console(theme=GATEWAY_THEME, highlight=False),
            highlighter=GatewayLogHighlighter(),
            keywords=[],
            markup=False,
            rich_tracebacks=True,
            show_time=False,
            show_level=False,
            show_path=False,
        )

    @staticmethod
    def _file_handler(path: Path) -> logging.Handler:
        path.parent.mkdir(parents=True, exist_ok=True)
        return logging.handlers.RotatingFileHandler(
            filename=str(path),
            maxBytes=LOG_MAX_FILE_SIZE,
            backupCount=LOG_BACKUP_COUNT,
            encoding="utf-8",
        )

    def configure(
        self,
        log_level: Optional[str] = None,
        log_file: Optional[Path] = None,
        console_output: bool = True,
        file_output: Optional[bool] = None,
    ) -> None:
        """
        Install handlers on the root logger. Later calls are no-ops.

        Args:
            log_level: Level name, LOG_LEVEL when omitted
            log_file: Rotating log file, ``logs/xgate.log`` when omitted
            console_output: Attach a console handler
            file_output: Attach the file handler, LOG_FILE_OUTPUT when omitted
        """
        with self._lock:
            if self._configured:
                return

            level = getattr(logging, str(log_level or LOG_LEVEL).upper(), logging.INFO)
            formatter = TerminalSafeFormatter(
                fmt=self.validate_log_format(LOG_FORMAT),
                datefmt=self.validate_date_format(LOG_DATE_FORMAT) + " UTC",
            )
            formatter.converter = time.gmtime

            handlers: List[logging.Handler] = []
            if console_output:
                handlers.append(self._console_handler(bool(LOG_CONSOLE_HIGHLIGHTING)))
            if file_output if file_output is not None else bool(LOG_FILE_OUTPUT):
                handlers.append(self._file_handler(log_file or LOG_FILE_PATH))

            root = logging.getLogger()
            root.handlers.clear()
            root.setLevel(level)
            for handler in handlers:
                handler.setLevel(level)
                handler.setFormatter(formatter)
                root.addHandler(handler)

            self._configured = True

    def get_logger(self, name: str) -> logging.Logger:
        if not self._configured:
            self.configure()
        return logging.getLogger(name)

    def set_level(self, log_level: str) -> None:
        """
        Change the root level and every installed handler's level.

        Raises:
            ValueError: *log_level* is not a logging level name
        """
        level = getattr(logging, str(log_level).upper(), None)
        if not isinstance(level, int):
            raise ValueError(f"Unknown log level: {log_level}")
        with self._lock:
            root = logging.getLogger()
            root.setLevel(level)
            for handler in root.handlers:
                handler.setLevel(level)

    @property
    def is_configured(self) -> bool:
        return self._configured


class TerminalSafeFormatter(logging.Formatter):
    """
    Formatter that strips ANSI escapes and control characters (CWE-117).
    Tabs and newlines survive; carriage returns do not.
    """

    _escape_re = re.compile(r"\x1b\[[0-?]*[ -/]*[@-~]|\x1b[@-Z\\-_]")
    _control_re = re.compile(r"[\x00-\x08\x0B-\x1F\x7F]")

    @classmethod
    def sanitize(cls, text: str) -> str:
        if not text:
            return text
        return cls._control_re.sub("", cls._escape_re.sub("", text))

    def format(self, record: logging.LogRecord) -> str:
        return self.sanitize(super().format(record))


class GatewayLogHighlighter(RegexHighlighter):
    """Colours addresses, 32-byte hashes, epochs, command kinds and levels."""

    base_style = "xgate."
    highlights = [
        r"(?P<hash>\b0x[0-9a-fA-F]{64}\b)",
        r"(?P<address>\b0x[0-9a-fA-F]{40}\b)",
        r"(?P<epoch>\bepoch[ =#]\d+\b)",
        r"(?P<command>\b(deployToken|mintToken|burnToken|approveContractCall"
        r"|approveContractCallWithMint|transferOperatorship)\b)",
        r"(?P<level_critical>\bCRITICAL\b)",
        r"(?P<level_error>\bERROR\b)",
        r"(?P<level_warning>\bWARNING\b)",
        r"(?P<level_info>\bINFO\b)",
        r"(?P<level_debug>\bDEBUG\b)",
        r"-\s+\w+\s+-\s+(?P<logger_name>[\w.]+)(?=\s-\s)",
        r"(?P<timestamp>^.*?UTC)",
    ]


_manager = LogManager()


def get_logger(name: str) -> logging.Logger:
    """Return the stdlib logger *name*, configuring logging first if needed."""
    return _manager.get_logger(name)


def set_log_level(level: str) -> None:
    _manager.set_level(level)


_manager.configure()
