# topology/logutil.py
from __future__ import annotations
import json, logging, os, time
from logging.handlers import RotatingFileHandler
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Tuple

PACKAGE_LOGGER = "topology"

# attributes every LogRecord carries; anything else came in through `extra=`
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}

def _extras(record: logging.LogRecord) -> Iterator[Tuple[str, Any]]:
    for key, value in record.__dict__.items():
        if key in _RECORD_ATTRS or key.startswith("_"):
            continue
        yield key, value

class JSONLFormatter(logging.Formatter):
    """JSON Lines for the rotating file: ts (epoch ms), level, logger, message, extras."""
    def format(self, record: logging.LogRecord) -> str:
        doc: Dict[str, Any] = {
            "ts": int(record.created * 1000),
            "lvl": record.levelname,
            "name": record.name,
            "msg": record.getMessage(),
        }
        for key, value in _extras(record):
            try:
                json.dumps(value)
            except (TypeError, ValueError):
                value = repr(value)
            doc[key] = value
        if record.exc_info:
            doc["exc"] = self.formatException(record.exc_info)
        return json.dumps(doc, separators=(",", ":"), default=str)

class ConsoleFormatter(logging.Formatter):
    """`12:00:01 INFO  [topology.store] message key=value ...`"""
    def format(self, record: logging.LogRecord) -> str:
        clock = time.strftime("%H:%M:%S", time.localtime(record.created))
        pairs = " ".join(f"{k}={safe_preview(v, limit=160)}" for k, v in _extras(record))
        line = f"{clock} {record.levelname:<5} [{record.name}] {record.getMessage()}"
        if pairs:
            line += " " + pairs
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line

def _configure_package_logger() -> logging.Logger:
    """
    Attach handlers once, to the package logger:
      - console, level LOG_LEVEL_CONSOLE (INFO)
      - JSONL rotating file under TOPOLOGY_LOG_DIR when that is set,
        level LOG_LEVEL_FILE (DEBUG), LOG_MAX_BYTES x LOG_BACKUP_COUNT
    """
    pkg = logging.getLogger(PACKAGE_LOGGER)
    if getattr(pkg, "_logutil_configured", False):
        return pkg
    pkg.setLevel(os.getenv("LOG_LEVEL", "DEBUG"))

    console = logging.StreamHandler()
    console.setLevel(os.getenv("LOG_LEVEL_CONSOLE", "INFO"))
    console.setFormatter(ConsoleFormatter())
    pkg.addHandler(console)

    log_dir = os.getenv("TOPOLOGY_LOG_DIR")
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        rotating = RotatingFileHandler(
            os.path.join(log_dir, "topology.log"),
            maxBytes=int(os.getenv("LOG_MAX_BYTES", "10485760")),
            backupCount=int(os.getenv("LOG_BACKUP_COUNT", "5")),
            encoding="utf-8",
        )
        rotating.setLevel(os.getenv("LOG_LEVEL_FILE", "DEBUG"))
        rotating.setFormatter(JSONLFormatter())
        pkg.addHandler(rotating)

    pkg._logutil_configured = True  # type: ignore[attr-defined]
    return pkg

def get_logger(name: str) -> logging.Logger:
    """
    Child of the package logger, e.g. get_logger("server.ws") -> 'topology.server.ws'.
    Module names already under the package (topology.edges) are used as is.
    """
    _configure_package_logger()
    if name == PACKAGE_LOGGER or name.startswith(PACKAGE_LOGGER + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{PACKAGE_LOGGER}.{name}")

class ContextAdapter(logging.LoggerAdapter):
    """Adds the bound context (connection id, agent id) to every record."""
    def process(self, msg, kwargs):
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs

def bind(logger: logging.Logger, **ctx) -> ContextAdapter:
    return ContextAdapter(logger, ctx)

def safe_preview(val, *, limit: int = 256) -> str:
    text = str(val)
    if len(text) <= limit:
        return text
    return text[:limit] + "..."

@contextmanager
def span(logger: logging.Logger | ContextAdapter, event: str, **fields):
    """DEBUG `<event>.begin` / `<event>.end dur_ms=...`; failures go out as `<event>.error`."""
    started = time.perf_counter()
    logger.debug(f"{event}.begin", extra=fields)
    try:
        yield
    except Exception:
        logger.exception(f"{event}.error", extra=fields)
        raise
    logger.debug(f"{event}.end", extra={**fields, "dur_ms": int((time.perf_counter() - started) * 1000)})
