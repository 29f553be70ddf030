import logging, json, sys, time, os

LEVEL_ENV = "IDEALAB_LOG_LEVEL"


class JsonLineFormatter(logging.Formatter):
    """One JSON object per line; message text is escaped, exceptions ride along."""

    converter = time.gmtime

    def __init__(self):
        super().__init__(datefmt="%Y-%m-%dT%H:%M:%SZ")

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "name": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


def _level_from_env(default=logging.INFO):
    name = os.getenv(LEVEL_ENV, "").upper()
    level = logging.getLevelName(name) if name else default
    return level if isinstance(level, int) else default


def get_logger(name="idealab", level=None, to_file=None):
    """Structured logger shared by the scanner, maintenance, migration and bridge code."""
    logger = logging.getLogger(name)
    logger.setLevel(level if level is not None else _level_from_env())

    if logger.handlers:
        return logger

    formatter = JsonLineFormatter()
    targets = [logging.StreamHandler(sys.stdout)]
    if to_file:
        os.makedirs(os.path.dirname(to_file) or ".", exist_ok=True)
        targets.append(logging.FileHandler(to_file))
    for handler in targets:
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    return logger
