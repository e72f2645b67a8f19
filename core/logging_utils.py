from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Any, Dict, Optional

from .paths import get_logs_dir, resolve_working_dir

_STANDARD_ATTRS = frozenset(vars(logging.makeLogRecord({})).keys()) | {"message", "asctime"}


class JsonLogFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # noqa: D401
        payload: Dict[str, Any] = {
            "ts": time.time(),
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        for key, value in getattr(record, "__dict__", {}).items():
            if key.startswith("_") or key in _STANDARD_ATTRS:
                continue
            if key in payload:
                continue
            try:
                json.dumps(value)
            except TypeError:
                continue
            payload[key] = value
        return json.dumps(payload, ensure_ascii=False)


PLAIN_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_json_logging(
    name: str = "evtracker",
    *,
    working_dir: Optional[Path] = None,
    level: str | int = logging.INFO,
    json_lines: bool = True,
) -> logging.Logger:
    """Attach a file handler under ``logs/``.

    ``json_lines`` selects ``evtracker.log.jsonl`` with ``JsonLogFormatter``;
    otherwise plain text goes to ``evtracker.log``.
    """

    base = Path(working_dir) if working_dir is not None else resolve_working_dir()
    logs_dir = get_logs_dir(base)
    logs_dir.mkdir(parents=True, exist_ok=True)
    log_path = (logs_dir / ("evtracker.log.jsonl" if json_lines else "evtracker.log")).resolve()
    logger = logging.getLogger(name)
    logger.setLevel(level if isinstance(level, int) else logging.getLevelName(str(level).upper()))
    for handler in list(logger.handlers):
        if isinstance(handler, logging.FileHandler) and getattr(handler, "baseFilename", None) == str(log_path):
            break
    else:
        handler = logging.FileHandler(log_path, encoding="utf-8")
        handler.setFormatter(JsonLogFormatter() if json_lines else logging.Formatter(PLAIN_LOG_FORMAT))
        logger.addHandler(handler)
    logger.propagate = False
    return logger


__all__ = ["JsonLogFormatter", "PLAIN_LOG_FORMAT", "configure_json_logging"]
