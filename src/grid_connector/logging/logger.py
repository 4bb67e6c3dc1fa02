import logging
from contextlib import suppress
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, MutableMapping, Tuple

_INITIALIZED = False

# Attributes every LogRecord carries; anything else came in through `extra=`.
_RESERVED = set(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}


class ExtraFieldsFormatter(logging.Formatter):
    """Append the structured ``extra`` fields of a record as ``key=value`` pairs."""

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        fields = {k: v for k, v in vars(record).items() if k not in _RESERVED and not k.startswith("_")}
        if not fields:
            return base
        tail = " ".join(f"{k}={v!r}" for k, v in sorted(fields.items()))
        return f"{base} | {tail}"


class QueryLoggerAdapter(logging.LoggerAdapter):
    """Carry per-query fields (query id, dialect) on every record.

    Unlike the stock adapter, call-site ``extra`` is merged with the bound
    fields instead of replacing them.
    """

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        merged: Dict[str, Any] = dict(self.extra or {})
        merged.update(kwargs.get("extra") or {})
        kwargs["extra"] = merged
        return msg, kwargs


class SizeTimestampRotatingFileHandler(RotatingFileHandler):
    """Size-triggered rotation that renames the whole file with a timestamp.

    The live log keeps its configured path; rotated files sit next to it as
    ``<stem>_<YYYYmmdd_HHMMSS>[_n]<suffix>``. backupCount=0 keeps every rotated
    file, otherwise only the newest N.
    """

    def _rotated_path(self) -> Path:
        base = Path(self.baseFilename)
        suffix = base.suffix or ".log"
        stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        candidate = base.with_name(f"{base.stem}_{stamp}{suffix}")
        n = 1
        while candidate.exists():
            candidate = base.with_name(f"{base.stem}_{stamp}_{n}{suffix}")
            n += 1
        return candidate

    def _prune(self) -> None:
        if self.backupCount <= 0:
            return
        base = Path(self.baseFilename)
        rotated = sorted(
            base.parent.glob(f"{base.stem}_*{base.suffix or '.log'}"),
            key=lambda p: p.stat().st_mtime,
            reverse=True,
        )
        for old in rotated[self.backupCount:]:
            with suppress(OSError):
                old.unlink()

    def doRollover(self) -> None:
        if self.stream:
            self.stream.close()
            self.stream = None

        base = Path(self.baseFilename)
        if base.exists():
            # A failed rename keeps logging into the current file rather than blocking queries.
            with suppress(OSError):
                base.replace(self._rotated_path())
        self._prune()

        if not self.delay:
            self.stream = self._open()


def init_logging(
    log_level: str = "INFO",
    log_file: str = "logs/grid_connector.log",
    max_bytes: int = 5 * 1024 * 1024,  # 5 MB
    backup_count: int = 0,             # 0 = keep all rotated logs
) -> None:
    global _INITIALIZED
    if _INITIALIZED:
        return

    Path(log_file).parent.mkdir(parents=True, exist_ok=True)
    level = getattr(logging, log_level.upper(), logging.INFO)
    formatter = ExtraFieldsFormatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s")

    file_handler = SizeTimestampRotatingFileHandler(
        log_file,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    stream_handler = logging.StreamHandler()
    for h in (file_handler, stream_handler):
        h.setFormatter(formatter)

    logging.basicConfig(level=level, handlers=[file_handler, stream_handler])
    _INITIALIZED = True


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"grid_connector.{name}")


def bind(logger: logging.Logger, **fields: Any) -> QueryLoggerAdapter:
    return QueryLoggerAdapter(logger, fields)
