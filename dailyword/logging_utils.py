"""
Structured logging for the service.

Callers log short event names (``"replay_link_created"``) and attach context
through ``extra={...}``; the formatters below pick the known fields up.
"""
import json
import logging
import sys
from contextvars import ContextVar
from typing import Any, Dict, List, Optional, Union

from . import config

# Request id of the request being handled, set by the HTTP middleware
request_id_ctx: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

_GAME_FIELDS = ("user", "date", "outcome", "replay", "original_date", "key", "error")
_REQUEST_FIELDS = ("method", "path", "status", "duration_ms", "client", "user_agent")
_MISC_FIELDS = ("event", "errors")

_PALETTE = {
    "DEBUG": "36",
    "INFO": "32",
    "WARNING": "33",
    "ERROR": "31",
    "CRITICAL": "35",
    "name": "34",
    "rid": "35",
    "path": "36",
    "dim": "90",
    "method": "1",
}


def _fields(record: logging.LogRecord, names) -> Dict[str, Any]:
    return {n: getattr(record, n) for n in names if getattr(record, n, None) is not None}


class JsonFormatter(logging.Formatter):
    """One JSON object per line."""

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
        payload.update(_fields(record, _REQUEST_FIELDS + _GAME_FIELDS + _MISC_FIELDS))
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


class ColorFormatter(logging.Formatter):
    """Single-line console output: level, time, logger, request summary, message, game context."""

    def __init__(self, use_color: bool = True):
        super().__init__()
        self.use_color = use_color

    def _paint(self, text: str, role: str) -> str:
        code = _PALETTE.get(role)
        if not self.use_color or code is None:
            return text
        return f"\033[{code}m{text}\033[0m"

    def _status_role(self, status: int) -> str:
        if status < 400:
            return "INFO"
        return "WARNING" if status < 500 else "ERROR"

    def _request_line(self, record: logging.LogRecord) -> List[str]:
        req = _fields(record, ("method", "path", "status", "duration_ms"))
        parts = []
        if "method" in req:
            parts.append(self._paint(req["method"], "method"))
        if "path" in req:
            parts.append(self._paint(req["path"], "path"))
        if isinstance(req.get("status"), int):
            parts.append(self._paint(str(req["status"]), self._status_role(req["status"])))
        if "duration_ms" in req:
            parts.append(self._paint(f"{req['duration_ms']}ms", "dim"))
        return parts

    def format(self, record: logging.LogRecord) -> str:
        parts = [
            self._paint(record.levelname, record.levelname),
            self.formatTime(record, datefmt="%H:%M:%S"),
        ]
        rid = request_id_ctx.get()
        if rid:
            parts.append(self._paint(f"rid={rid}", "rid"))
        parts.append(self._paint(record.name, "name"))
        parts.extend(self._request_line(record))

        msg = record.getMessage()
        if msg:
            parts.extend(["-", msg])
        game = _fields(record, _GAME_FIELDS)
        if game:
            parts.append(self._paint("[" + " ".join(f"{k}={v}" for k, v in game.items()) + "]", "dim"))
        if record.exc_info:
            parts.append("\n" + self.formatException(record.exc_info))
        return " ".join(parts)


def _make_formatter(stream) -> logging.Formatter:
    # LOG_FORMAT=json|pretty; unset means pretty on a terminal, JSON otherwise
    fmt = config.LOG_FORMAT
    pretty = fmt == "pretty" or (fmt == "" and getattr(stream, "isatty", lambda: False)())
    if not pretty:
        return JsonFormatter()
    return ColorFormatter(use_color=config.LOG_COLOR)


def setup_logging(level: Union[int, str] = logging.INFO) -> logging.Logger:
    """Install one stdout handler on the root logger and route uvicorn's loggers through it."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(_make_formatter(sys.stdout))

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers = [handler]

    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        lg = logging.getLogger(name)
        lg.handlers = [handler]
        lg.setLevel(level)
        lg.propagate = False
    return root


def get_logger(name: str = "dailyword") -> logging.Logger:
    return logging.getLogger(name)
