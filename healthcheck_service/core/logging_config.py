"""
Logging Configuration Module
Console logging with optional JSON-formatted rotating log files and a
separate performance log for per-request timings
"""
import json
import logging
import sys
import traceback
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

# LogRecord attributes copied into JSON entries when present
EXTRA_FIELDS = (
    "request_id",
    "method",
    "endpoint",
    "status_code",
    "processing_time",
    "metric",
    "delta",
)


class JSONFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging"""

    def format(self, record):
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno
        }

        # Add exception information if present
        if record.exc_info:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": traceback.format_exception(*record.exc_info)
            }

        for field in EXTRA_FIELDS:
            if hasattr(record, field):
                log_entry[field] = getattr(record, field)

        return json.dumps(log_entry, default=str)


class ColoredConsoleFormatter(logging.Formatter):
    """Colored formatter for better console readability"""

    # ANSI color codes
    COLORS = {
        'DEBUG': '\033[36m',      # Cyan
        'INFO': '\033[32m',       # Green
        'WARNING': '\033[33m',    # Yellow
        'ERROR': '\033[31m',      # Red
        'CRITICAL': '\033[35m',   # Magenta
        'RESET': '\033[0m'        # Reset
    }

    def format(self, record):
        color = self.COLORS.get(record.levelname, self.COLORS['RESET'])
        reset = self.COLORS['RESET']

        formatted_msg = super().format(record)

        return formatted_msg.replace(
            record.levelname,
            f"{color}{record.levelname}{reset}",
            1,
        )


def setup_logging(
    log_level: str = "INFO",
    log_format: str = "text",
    log_dir: Optional[str] = None,
    enable_colors: bool = True
):
    """
    Configure logging for the service

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Console output format, "text" or "json"
        log_dir: Directory for rotating log files; console only when None
        enable_colors: Enable colored output for text console logs
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove default handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)

    if log_format.lower() == "json":
        console_formatter = JSONFormatter()
    elif enable_colors and sys.stdout.isatty():
        console_formatter = ColoredConsoleFormatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
    else:
        console_formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

    console_handler.setFormatter(console_formatter)
    root_logger.addHandler(console_handler)

    perf_logger = logging.getLogger("performance")
    for handler in perf_logger.handlers[:]:
        perf_logger.removeHandler(handler)
    perf_logger.propagate = True

    if log_dir:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        file_formatter = JSONFormatter()

        app_handler = RotatingFileHandler(
            log_path / "app.log",
            maxBytes=10*1024*1024,  # 10MB
            backupCount=5,
            encoding='utf-8'
        )
        app_handler.setLevel(level)
        app_handler.setFormatter(file_formatter)
        root_logger.addHandler(app_handler)

        # Errors and critical only
        error_handler = RotatingFileHandler(
            log_path / "error.log",
            maxBytes=10*1024*1024,  # 10MB
            backupCount=5,
            encoding='utf-8'
        )
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(file_formatter)
        root_logger.addHandler(error_handler)

        # Per-request timings go to their own file only
        perf_handler = RotatingFileHandler(
            log_path / "performance.log",
            maxBytes=10*1024*1024,  # 10MB
            backupCount=3,
            encoding='utf-8'
        )
        perf_handler.setLevel(logging.INFO)
        perf_handler.setFormatter(file_formatter)
        perf_logger.addHandler(perf_handler)
        perf_logger.propagate = False

    # Suppress noisy third-party libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    root_logger.info(
        f"Logging initialized - Level: {log_level}, Format: {log_format}, Directory: {log_dir}"
    )

    return root_logger
