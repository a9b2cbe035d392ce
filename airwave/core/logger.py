"""
Logging configuration for airwave.

This module sets up the logging system with multiple outputs:
    - Console: Colored, tqdm-compatible output (INFO and above)
    - log_full.log: Complete log of all events (DEBUG and above)
    - log_errors.log: Only ERROR and CRITICAL level messages
    - advance_stalls.log: Every failed advancement with its stall streak
    - quota_events.log: Credentials flagged exhausted and pool-wide exhaustion

The logging system follows the principle: everything to screen is also saved
to file, then filtered into specialized report files that operators read
when the stream goes quiet.

Log File Locations:
    All log files are created in <storage.directory>/logs with a per-run
    timestamp in the file name.

Usage:
    from airwave.core.logger import setup_logging, get_logger

    setup_logging(storage_dir)  # Call once at startup
    logger = get_logger(__name__)  # Get logger for each module

    logger.info("Advanced to next track")
    log_advance_stall(logger, streak=3, state="stuck", reason="history empty")
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import TextIO

from tqdm import tqdm


# Log format for file output (detailed with timestamp)
FILE_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
FILE_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Log format for console output (compact, tqdm-friendly)
CONSOLE_LOG_FORMAT = "%(levelname)s: %(message)s"


class Colors:
    """ANSI color codes for terminal output."""
    RESET = "\033[0m"
    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    CYAN = "\033[36m"
    WHITE = "\033[37m"
    BOLD = "\033[1m"


class ColoredConsoleFormatter(logging.Formatter):
    """
    Custom formatter that adds colors to console output.

    Colors:
        - DEBUG: Blue
        - INFO: Green
        - WARNING: Yellow
        - ERROR: Red
        - CRITICAL: Bold Red
    """

    LEVEL_COLORS = {
        logging.DEBUG: Colors.BLUE,
        logging.INFO: Colors.GREEN,
        logging.WARNING: Colors.YELLOW,
        logging.ERROR: Colors.RED,
        logging.CRITICAL: Colors.BOLD + Colors.RED,
    }

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, Colors.WHITE)
        colored_levelname = f"{color}{record.levelname}{Colors.RESET}"
        return f"{colored_levelname}: {record.getMessage()}"


class TqdmLoggingHandler(logging.Handler):
    """
    Logging handler that writes to console without breaking tqdm progress bars.

    The CLI draws no bars itself, but the engine can run inside scripts
    that do. tqdm.write() prints above any active bar instead of tearing it.
    """

    def __init__(self, stream: TextIO = sys.stderr) -> None:
        super().__init__()
        self.stream = stream

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = self.format(record)
            tqdm.write(msg, file=self.stream)
        except Exception:
            self.handleError(record)


class ReportFileHandler(logging.Handler):
    """
    Base for handlers that copy selected records into a plain-text report.

    A record is selected when it carries the handler's marker attribute
    (set through `extra=` by the log_* helpers below). Records without the
    marker are ignored, so the handler can sit on the root logger.

    Attributes:
        marker: Name of the extra field that selects a record.
        report_path: Path to the report file.
        report_file: Open file handle (set by open()).
    """

    marker = ""

    def __init__(self, report_path: Path) -> None:
        super().__init__()
        self.report_path = report_path
        self.report_file: TextIO | None = None

    def open(self) -> None:
        """Open the report file for writing (overwrites existing content)."""
        self.report_file = open(self.report_path, "w", encoding="utf-8")

    def emit(self, record: logging.LogRecord) -> None:
        if not hasattr(record, self.marker):
            return

        if self.report_file is None:
            return

        try:
            timestamp = datetime.fromtimestamp(record.created).strftime(FILE_DATE_FORMAT)
            self.report_file.write(f"{timestamp} {self.format_entry(record)}\n")
            self.report_file.flush()
        except Exception:
            self.handleError(record)

    def format_entry(self, record: logging.LogRecord) -> str:
        raise NotImplementedError

    def close(self) -> None:
        """Close the report file handle. Safe to call multiple times."""
        if self.report_file is not None:
            try:
                self.report_file.close()
            except OSError:
                pass
            self.report_file = None
        super().close()


class AdvanceStallHandler(ReportFileHandler):
    """
    Captures failed advancements for advance_stalls.log.

    Entry format:
        2024-05-01 12:00:30 streak=3 state=stuck next_retry=2024-05-01T12:01:30+00:00 | history empty

    Extra fields read:
        - 'stall_streak': Consecutive failed advancements
        - 'stall_state': "recovering" or "stuck"
        - 'stall_reason': Why the advance failed
        - 'stall_next_retry': ISO timestamp of the next scheduled retry (optional)
    """

    marker = "stall_streak"

    def format_entry(self, record: logging.LogRecord) -> str:
        streak = getattr(record, "stall_streak", 0)
        state = getattr(record, "stall_state", "unknown")
        reason = getattr(record, "stall_reason", "")
        next_retry = getattr(record, "stall_next_retry", None)
        entry = f"streak={streak} state={state}"
        if next_retry:
            entry += f" next_retry={next_retry}"
        return f"{entry} | {reason}"


class QuotaEventHandler(ReportFileHandler):
    """
    Captures key pool quota events for quota_events.log.

    Entry format:
        2024-05-01 12:00:30 key=key1 day=2024-05-01 used=10000 | flagged exhausted (403)

    Extra fields read:
        - 'quota_key_id': Credential id, or "*" for the whole pool
        - 'quota_day': Quota day the event belongs to
        - 'quota_used': Units used at the time of the event
        - 'quota_event': Short description
    """

    marker = "quota_key_id"

    def format_entry(self, record: logging.LogRecord) -> str:
        key_id = getattr(record, "quota_key_id", "?")
        day = getattr(record, "quota_day", "?")
        used = getattr(record, "quota_used", None)
        event = getattr(record, "quota_event", "")
        entry = f"key={key_id} day={day}"
        if used is not None:
            entry += f" used={used}"
        return f"{entry} | {event}"


class ErrorOnlyFilter(logging.Filter):
    """Filter that only allows ERROR and CRITICAL level records."""

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno >= logging.ERROR


def setup_logging(output_dir: Path, console_level: int = logging.INFO) -> None:
    """
    Configure the logging system for the engine.

    This function should be called ONCE at startup, after the configuration
    is loaded but before the scheduler starts.

    Args:
        output_dir: Directory where log files will be created.
                    Logs are stored in a 'logs' subdirectory.
        console_level: Minimum level printed to the console.

    Behavior:
        1. Create output_dir/logs if it doesn't exist
        2. Configure root logger level to DEBUG
        3. Console handler (TqdmLoggingHandler, colored)
        4. Full log file handler (DEBUG)
        5. Error-only log file handler
        6. Advance stall report handler
        7. Quota event report handler

    Thread Safety:
        This function is NOT thread-safe. Call it once from the main
        thread before starting any scheduler or worker threads.
    """
    logs_dir = output_dir / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.handlers.clear()

    console_handler = TqdmLoggingHandler()
    console_handler.setLevel(console_level)
    console_handler.setFormatter(ColoredConsoleFormatter())
    root_logger.addHandler(console_handler)

    full_handler = logging.FileHandler(logs_dir / f"log_full_{timestamp}.log", mode="w", encoding="utf-8")
    full_handler.setLevel(logging.DEBUG)
    full_handler.setFormatter(logging.Formatter(FILE_LOG_FORMAT, FILE_DATE_FORMAT))
    root_logger.addHandler(full_handler)

    error_handler = logging.FileHandler(logs_dir / f"log_errors_{timestamp}.log", mode="w", encoding="utf-8")
    error_handler.setLevel(logging.DEBUG)  # Filter handles the level restriction
    error_handler.setFormatter(logging.Formatter(FILE_LOG_FORMAT, FILE_DATE_FORMAT))
    error_handler.addFilter(ErrorOnlyFilter())
    root_logger.addHandler(error_handler)

    stall_handler = AdvanceStallHandler(logs_dir / f"advance_stalls_{timestamp}.log")
    stall_handler.open()
    root_logger.addHandler(stall_handler)

    quota_handler = QuotaEventHandler(logs_dir / f"quota_events_{timestamp}.log")
    quota_handler.open()
    root_logger.addHandler(quota_handler)

    # APScheduler logs every job run at INFO
    logging.getLogger("apscheduler").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for a module.

    Args:
        name: The logger name, typically __name__ of the calling module.
              This creates a hierarchy like 'airwave.engine.advancement'.

    Note:
        Loggers obtained before setup_logging() is called will have no
        handlers and will not produce output.
    """
    return logging.getLogger(name)


def log_advance_stall(
    logger: logging.Logger,
    streak: int,
    state: str,
    reason: str,
    next_retry: str | None = None
) -> None:
    """
    Log a failed advancement with the fields AdvanceStallHandler reads.

    A stream that is still recovering logs at WARNING; a stuck stream
    logs at ERROR so it also lands in log_errors.log.

    Example:
        log_advance_stall(logger, streak=1, state="recovering", reason="queue and history empty")
    """
    level = logging.ERROR if state == "stuck" else logging.WARNING
    logger.log(
        level,
        f"Advancement failed ({state}, {streak} in a row): {reason}",
        extra={
            "stall_streak": streak,
            "stall_state": state,
            "stall_reason": reason,
            "stall_next_retry": next_retry,
        }
    )


def log_quota_event(
    logger: logging.Logger,
    key_id: str,
    quota_day: str,
    event: str,
    used: int | None = None
) -> None:
    """
    Log a quota event with the fields QuotaEventHandler reads.

    Example:
        log_quota_event(logger, "key1", "2024-05-01", "flagged exhausted (403)", used=9800)
    """
    logger.warning(
        f"Quota event for {key_id} on {quota_day}: {event}",
        extra={
            "quota_key_id": key_id,
            "quota_day": quota_day,
            "quota_used": used,
            "quota_event": event,
        }
    )


def shutdown_logging() -> None:
    """
    Flush and close every root handler, then detach them.

    Typically called in a finally block at CLI exit.
    """
    root_logger = logging.getLogger()

    for handler in root_logger.handlers[:]:
        try:
            handler.flush()
            handler.close()
        except OSError:
            pass
        root_logger.removeHandler(handler)
