"""
Enhanced Logging Utility

Provides readable, structured console logging for the reference evaluator
and the console scripts:
- Color-coded log levels
- Pretty printing for structured data
- Section separators for multi-step flows
- Request/response and stream summaries
"""

import logging
import sys
from datetime import datetime
from typing import Any, Dict, Optional


class Colors:
    """ANSI color codes for terminal output."""
    RESET = '\033[0m'
    BOLD = '\033[1m'

    DEBUG = '\033[36m'      # Cyan
    INFO = '\033[32m'       # Green
    WARNING = '\033[33m'    # Yellow
    ERROR = '\033[31m'      # Red
    CRITICAL = '\033[35m'   # Magenta

    SECTION = '\033[94m'    # Bright Blue
    SUBSECTION = '\033[96m' # Bright Cyan

    KEY = '\033[93m'        # Bright Yellow
    VALUE = '\033[92m'      # Bright Green
    TIMESTAMP = '\033[90m'  # Dark Gray


LEVEL_COLORS = {
    'DEBUG': Colors.DEBUG,
    'INFO': Colors.INFO,
    'WARNING': Colors.WARNING,
    'ERROR': Colors.ERROR,
    'CRITICAL': Colors.CRITICAL,
}


def truncate(text: Optional[str], limit: int = 50) -> Optional[str]:
    """Shorten text for log previews."""
    if text is None or len(text) <= limit:
        return text
    return text[:limit] + "..."


class ColoredFormatter(logging.Formatter):
    """Formatter with colors and per-component icons."""

    ICONS = {
        'DEBUG': '🔍',
        'INFO': 'ℹ️',
        'WARNING': '⚠️',
        'ERROR': '❌',
        'CRITICAL': '🚨',
    }

    # Keyed by the last part of the logger name
    COMPONENT_ICONS = {
        'agent_chat': '💬',
        'evaluator_client': '🌐',
        'resume_resolver': '🔁',
        'finalizer': '🏁',
        'conversation_store': '💾',
        'main': '🧪',
    }

    def __init__(self, use_colors: bool = True):
        super().__init__()
        self.use_colors = use_colors and sys.stdout.isatty()

    def format(self, record: logging.LogRecord) -> str:
        icon = self.COMPONENT_ICONS.get(record.name.split('.')[-1], self.ICONS.get(record.levelname, '•'))
        timestamp = datetime.fromtimestamp(record.created).strftime('%H:%M:%S.%f')[:-3]

        if self.use_colors:
            level_color = LEVEL_COLORS.get(record.levelname, Colors.RESET)
            reset, timestamp_color, bold = Colors.RESET, Colors.TIMESTAMP, Colors.BOLD
        else:
            level_color = reset = timestamp_color = bold = ''

        formatted = (
            f"{timestamp_color}[{timestamp}]{reset} "
            f"{icon} {level_color}{record.levelname:8s}{reset} "
            f"{bold}{record.name}{reset} "
            f"| {record.getMessage()}"
        )

        if record.exc_info:
            formatted += f"\n{self.formatException(record.exc_info)}"

        return formatted


class StructuredLogger:
    """Structured logger with section grouping and pretty printing."""

    def __init__(self, name: str, logger: Optional[logging.Logger] = None):
        self.name = name
        self.logger = logger or logging.getLogger(name)
        self._section_stack = []

    def _format_data(self, data: Any, indent: int = 2) -> str:
        """Format nested data for display."""
        pad = ' ' * indent
        closing_pad = ' ' * (indent - 2)
        if isinstance(data, dict):
            items = [f"{pad}{key}: {self._format_data(value, indent + 2)}" for key, value in data.items()]
            return "{\n" + "\n".join(items) + f"\n{closing_pad}}}"
        if isinstance(data, list):
            if len(data) > 5:
                # Long lists are cut to the first three entries
                items = [self._format_data(item, indent + 2) for item in data[:3]]
                items.append(f"... ({len(data)} items total)")
            else:
                items = [self._format_data(item, indent + 2) for item in data]
            return "[" + ", ".join(items) + "]"
        return str(data)

    def _emit(self, level: int, message: str, data: Optional[Dict[str, Any]] = None, exc_info=None):
        if data:
            message = f"{message}\n{self._format_data(data)}"
        self.logger.log(level, message, exc_info=exc_info)

    def _banner(self, title: str, separator: str, color: str, data: Optional[Dict[str, Any]]):
        colored = sys.stdout.isatty()
        start, end = (color, Colors.RESET) if colored else ('', '')
        print(f"\n{start}{separator}{end}")
        print(f"{start}{title}{end}")
        if data:
            print(f"{start}{self._format_data(data)}{end}")
        print(f"{start}{separator}{end}\n")

    def section(self, title: str, data: Optional[Dict[str, Any]] = None):
        """Start a new log section."""
        self._section_stack.append(title)
        self._banner(f"📋 {title.upper()}", "=" * 80, Colors.SECTION, data)

    def subsection(self, title: str, data: Optional[Dict[str, Any]] = None):
        """Start a subsection within the current section."""
        self._banner(f"  → {title}", "-" * 60, Colors.SUBSECTION, data)

    def end_section(self):
        if self._section_stack:
            self._section_stack.pop()

    def debug(self, message: str, data: Optional[Dict[str, Any]] = None):
        self._emit(logging.DEBUG, message, data)

    def info(self, message: str, data: Optional[Dict[str, Any]] = None):
        self._emit(logging.INFO, message, data)

    def warning(self, message: str, data: Optional[Dict[str, Any]] = None):
        self._emit(logging.WARNING, message, data)

    def error(self, message: str, error: Optional[Exception] = None, data: Optional[Dict[str, Any]] = None):
        """Log an error with the exception (if any) attached."""
        if error:
            message = f"{message} Error: {type(error).__name__}: {error}"
        self._emit(logging.ERROR, message, data, exc_info=error)

    def success(self, message: str, data: Optional[Dict[str, Any]] = None):
        self._emit(logging.INFO, f"✅ {message}", data)

    def request(self, method: str, path: str, user_id: Optional[str] = None, data: Optional[Dict[str, Any]] = None):
        """Log an incoming request."""
        request_data = {"user_id": truncate(user_id, 20)}
        if data:
            request_data.update(data)
        self._emit(logging.INFO, f"📥 REQUEST: {method} {path}", request_data)

    def response(self, status: int, path: str, duration: Optional[float] = None, data: Optional[Dict[str, Any]] = None):
        """Log an outgoing response."""
        response_data = {"duration_ms": f"{duration * 1000:.2f}" if duration else None}
        if data:
            response_data.update(data)
        self._emit(logging.INFO, f"📤 RESPONSE: {status} {path}", response_data)

    def stream(self, session_id: Any, tokens: int, characters: int, complete: bool):
        """Summarize one streamed turn."""
        self._emit(logging.INFO, f"📡 STREAM: session {session_id}", {
            "tokens": tokens,
            "characters": characters,
            "assessment_complete": complete,
        })


def setup_logging(level: int = logging.INFO, use_colors: bool = True):
    """Install the colored console handler on the root logger."""
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(ColoredFormatter(use_colors=use_colors))

    root_logger.setLevel(level)
    root_logger.addHandler(console_handler)

    # Suppress noisy loggers
    logging.getLogger('asyncio').setLevel(logging.WARNING)
    logging.getLogger('httpx').setLevel(logging.WARNING)
    logging.getLogger('httpcore').setLevel(logging.WARNING)
    logging.getLogger('urllib3').setLevel(logging.WARNING)

    return root_logger


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger instance."""
    return StructuredLogger(name, logging.getLogger(name))
