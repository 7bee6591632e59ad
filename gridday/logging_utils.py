import json
import logging
import os
import sys
from contextvars import ContextVar
from typing import Any, Dict, List, Optional

# request id carried through the request lifecycle
request_id_ctx: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

# structured fields picked up from logger.extra
_EXTRA_FIELDS = (
    "path",
    "method",
    "status",
    "duration_ms",
    "client",
    "event",
    "day_id",
    "player_id",
    "reason",
    "kind",
    "scope",
    "errors",
    "error",
)


class JsonFormatter(logging.Formatter):
    """One JSON object per line, for log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "level": record.levelname,
            "time": self.formatTime(record, datefmt="%Y-%m-%dT%H:%M:%S%z"),
            "logger": record.name,
            "message": record.getMessage(),
        }
        rid = request_id_ctx.get()
        if rid:
            payload["request_id"] = rid
        for key in _EXTRA_FIELDS:
            val = getattr(record, key, None)
            if val is not None:
                payload[key] = val
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


class ColorFormatter(logging.Formatter):
    """Human-friendly single-line format for local development."""

    RESET = "\033[0m"
    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }

    def __init__(self, use_color: bool = True):
        super().__init__()
        self.use_color = use_color

    def _color(self, text: str, color: str) -> str:
        if not self.use_color or not color:
            return text
        return f"{color}{text}{self.RESET}"

    def format(self, record: logging.LogRecord) -> str:
        parts: List[str] = [
            self._color(record.levelname, self.COLORS.get(record.levelname, "")),
            self.formatTime(record, datefmt="%H:%M:%S"),
        ]
        rid = request_id_ctx.get()
        if rid:
            parts.append(self._color(f"rid={rid}", "\033[35m"))
        parts.append(self._color(record.name, "\033[34m"))
        method = getattr(record, "method", None)
        path = getattr(record, "path", None)
        if method and path:
            status = getattr(record, "status", None)
            duration = getattr(record, "duration_ms", None)
            parts.append(f"{method} {path} {status if status is not None else '-'} {duration if duration is not None else '-'}ms")
        parts.extend(["-", record.getMessage()])
        fields = [
            f"{key}={getattr(record, key)}"
            for key in ("day_id", "player_id", "reason", "kind", "scope", "error")
            if getattr(record, key, None) is not None
        ]
        if fields:
            parts.append(self._color("[" + " ".join(fields) + "]", "\033[90m"))
        if record.exc_info:
            parts.append("\n" + self.formatException(record.exc_info))
        return " ".join(parts)


def _isatty(stream) -> bool:
    isatty = getattr(stream, "isatty", None)
    return bool(isatty and isatty())


def setup_logging(level: int = logging.INFO) -> logging.Logger:
    """Configure root and uvicorn loggers.

    LOG_FORMAT=pretty|json picks the formatter (default: pretty on a TTY, JSON
    otherwise); LOG_COLOR=0 disables ANSI colours in pretty mode.
    """
    root = logging.getLogger()
    root.setLevel(level)
    for h in root.handlers[:]:
        root.removeHandler(h)

    fmt_env = os.getenv("LOG_FORMAT", "").lower()
    color_env = os.getenv("LOG_COLOR", "1").lower()
    use_pretty = fmt_env == "pretty" or (fmt_env == "" and _isatty(sys.stdout))

    handler = logging.StreamHandler(sys.stdout)
    if use_pretty:
        handler.setFormatter(ColorFormatter(use_color=color_env not in ("0", "false", "no")))
    else:
        handler.setFormatter(JsonFormatter())
    root.addHandler(handler)

    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        lg = logging.getLogger(name)
        lg.handlers = [handler]
        lg.setLevel(level)
        lg.propagate = False

    return root


def get_logger(name: str = "gridday") -> logging.Logger:
    return logging.getLogger(name)
