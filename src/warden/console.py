"""
Console Logger - leveled, single-line messages on standard output.

Every line looks like:

    [2026/10/17 09:41:07] [   Info] Server started

The level label is right-justified to 7 characters. ANSI colors are only
emitted when the output stream is an interactive terminal. Console output is
best-effort diagnostics: a failed write (closed stdout after daemonizing,
broken pipe, ...) is dropped and never reaches the caller.

All modules log through logging.getLogger(__name__); setup_logging() installs
the console handler on the root logger so stdlib levels render with the same
labels (DEBUG renders as Info, CRITICAL as BUG). If the root logger has no
handlers yet, log(), announce() and fatal() install the console handler on
first use.
"""

import enum
import logging
import os
import sys
import threading
from datetime import datetime

EXIT_SUCCESS = 0
EXIT_FAILURE = 1

ANSI_RESET = "\033[0m"
ANSI_BOLD = "\033[1m"
ANSI_RED = "\033[31m"
ANSI_GREEN = "\033[32m"
ANSI_YELLOW = "\033[33m"
ANSI_BLUE = "\033[34m"
ANSI_MAGENTA = "\033[35m"
ANSI_CYAN = "\033[36m"
ANSI_WHITE = "\033[37m"
ANSI_BOLD_RED = ANSI_BOLD + ANSI_RED
ANSI_BOLD_GREEN = ANSI_BOLD + ANSI_GREEN
ANSI_BOLD_BLUE = ANSI_BOLD + ANSI_BLUE
ANSI_BOLD_MAGENTA = ANSI_BOLD + ANSI_MAGENTA
ANSI_BOLD_WHITE = ANSI_BOLD + ANSI_WHITE

LABEL_WIDTH = 7
TIME_FORMAT = "%Y/%m/%d %H:%M:%S"

_logger = logging.getLogger("warden")


class LogLevel(enum.Enum):
    """Console log levels: (label, color, stdlib logging level)."""

    INFO = ("Info", ANSI_GREEN, logging.INFO)
    WARNING = ("Warning", ANSI_YELLOW, logging.WARNING)
    ERROR = ("Error", ANSI_RED, logging.ERROR)
    BUG = (" BUG !", ANSI_BOLD_RED, logging.CRITICAL)

    def __init__(self, label: str, color: str, logging_level: int):
        self.label = label
        self.color = color
        self.logging_level = logging_level

    @classmethod
    def from_levelno(cls, levelno: int) -> "LogLevel":
        """Map a stdlib logging level number onto a console level."""
        if levelno >= logging.CRITICAL:
            return cls.BUG
        if levelno >= logging.ERROR:
            return cls.ERROR
        if levelno >= logging.WARNING:
            return cls.WARNING
        return cls.INFO


class ConsoleFormatter(logging.Formatter):
    """Render records as `[date] [  label] message` lines."""

    def __init__(self, dump_stacks: bool = False):
        super().__init__()
        self.dump_stacks = dump_stacks

    def format_line(self, record: logging.LogRecord, color: bool = False) -> str:
        level = LogLevel.from_levelno(record.levelno)
        stamp = datetime.fromtimestamp(record.created).strftime(TIME_FORMAT)
        label = level.label.rjust(LABEL_WIDTH)
        message = record.getMessage()

        if color:
            line = (
                f"{ANSI_BOLD}[{ANSI_RESET}{stamp}{ANSI_BOLD}]{ANSI_RESET} "
                f"{ANSI_BOLD}[{level.color}{label}{ANSI_WHITE}]{ANSI_RESET} "
                f"{message}{ANSI_RESET}"
            )
        else:
            line = f"[{stamp}] [{label}] {message}"

        if record.exc_info:
            if not record.exc_text:
                record.exc_text = self.formatException(record.exc_info)
            line = f"{line}\n{record.exc_text}"

        # BUG stack dumps go before the message line
        if record.stack_info and self.dump_stacks:
            line = f"{self.formatStack(record.stack_info)}\n{line}"
        return line

    def format(self, record: logging.LogRecord) -> str:
        return self.format_line(record, color=False)


class ConsoleHandler(logging.StreamHandler):
    """StreamHandler on stdout that colors only for terminals and never raises."""

    def __init__(self, stream=None, debug: bool = False):
        super().__init__(stream if stream is not None else sys.stdout)
        self.setFormatter(ConsoleFormatter(dump_stacks=debug))

    def is_terminal(self) -> bool:
        try:
            return self.stream.isatty()
        except (AttributeError, ValueError, OSError):
            return False

    def format(self, record: logging.LogRecord) -> str:
        if isinstance(self.formatter, ConsoleFormatter):
            return self.formatter.format_line(record, color=self.is_terminal())
        return super().format(record)

    def handleError(self, record: logging.LogRecord) -> None:
        # Output failures are dropped: logging must never crash the caller.
        pass


def setup_logging(level: str = "INFO", debug: bool = False, stream=None) -> ConsoleHandler:
    """Route all logging through a single console handler on stdout."""
    handler = ConsoleHandler(stream=stream, debug=debug)
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        handlers=[handler],
        force=True,
    )
    return handler


def _ensure_console() -> None:
    """Install the stdout console handler if the host never configured logging."""
    if not logging.getLogger().handlers:
        setup_logging()


def log(level: LogLevel, message: str, *args, logger: logging.Logger = None) -> None:
    """Emit one console line at the given level.

    BUG lines carry the caller's stack, printed when the handler runs in
    debug mode.
    """
    _ensure_console()
    target = logger if logger is not None else _logger
    target.log(
        level.logging_level,
        message,
        *args,
        stack_info=level is LogLevel.BUG,
        stacklevel=2,
    )


def announce(message: str, *args, logger: logging.Logger = None) -> None:
    """Emit an Info line that no level threshold filters out."""
    _ensure_console()
    target = logger if logger is not None else _logger
    caller = sys._getframe(1)
    record = target.makeRecord(
        target.name,
        logging.INFO,
        caller.f_code.co_filename,
        caller.f_lineno,
        message,
        args,
        None,
        func=caller.f_code.co_name,
    )
    target.handle(record)


def _flush_handlers() -> None:
    for handler in logging.getLogger().handlers + _logger.handlers:
        try:
            handler.flush()
        except (OSError, ValueError):
            pass
    for stream in (sys.stdout, sys.stderr):
        try:
            stream.flush()
        except (AttributeError, OSError, ValueError):
            pass


def fatal(message: str, *args) -> None:
    """Log an Error line and terminate the process with a failure status.

    On the main thread this raises SystemExit so the interpreter unwinds
    normally. Any other thread ends the whole process at once; SystemExit
    there would only stop that thread.
    """
    _ensure_console()
    _logger.error(message, *args, stacklevel=2)
    if threading.current_thread() is threading.main_thread():
        sys.exit(EXIT_FAILURE)
    _flush_handlers()
    os._exit(EXIT_FAILURE)
