import logging, json, sys, time, os

# Context fields providers attach via ``extra=`` and that end up in the JSON line
CONTEXT_FIELDS = ("remote_zid", "local_zid", "account", "table", "rows")


class JsonLineFormatter(logging.Formatter):
    """One JSON object per record, UTC timestamps, cache context fields inlined."""

    converter = time.gmtime

    def __init__(self):
        super().__init__(datefmt="%Y-%m-%dT%H:%M:%SZ")

    def format(self, record: logging.LogRecord) -> str:
        line = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "name": record.name,
            "msg": record.getMessage(),
        }
        for field in CONTEXT_FIELDS:
            if hasattr(record, field):
                line[field] = getattr(record, field)
        if record.exc_info:
            line["exc"] = self.formatException(record.exc_info)
        return json.dumps(line, ensure_ascii=False)


def get_logger(name="zrtpcache", level=None, to_file=None):
    """Unified structured logger for all cache components.

    ``level`` falls back to ZRTPCACHE_LOG_LEVEL (default INFO).
    """
    logger = logging.getLogger(name)
    if level is None:
        level = os.getenv("ZRTPCACHE_LOG_LEVEL", "INFO").upper()
    logger.setLevel(level)

    if not logger.handlers:
        formatter = JsonLineFormatter()
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

        if to_file:
            os.makedirs(os.path.dirname(to_file) or ".", exist_ok=True)
            file_handler = logging.FileHandler(to_file)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

    return logger
