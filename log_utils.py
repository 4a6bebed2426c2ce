import logging
from logging.handlers import RotatingFileHandler
import os

LOG_FILE = os.getenv("PNL_AGENT_LOG_FILE", os.path.join("logs", "pnl_agent.log"))
LOG_LEVEL = os.getenv("PNL_AGENT_LOG_LEVEL", "INFO")
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# One agent log keeps roughly five rounds of a busy 25-market portfolio.
MAX_LOG_BYTES = 1_000_000
LOG_BACKUPS = 5


def _level(raw: str) -> int:
    level = logging.getLevelName(str(raw).strip().upper())
    return level if isinstance(level, int) else logging.INFO


def setup_logger(name: str) -> logging.Logger:
    """Return the logger for ``name`` wired to the agent log and the console.

    Every decision-loop module calls this at import.  The handlers are
    attached once per name, so re-importing a module does not duplicate
    tick summaries.
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger
    logger.setLevel(_level(LOG_LEVEL))
    formatter = logging.Formatter(LOG_FORMAT)
    directory = os.path.dirname(LOG_FILE)
    if directory:
        os.makedirs(directory, exist_ok=True)
    file_handler = RotatingFileHandler(LOG_FILE, maxBytes=MAX_LOG_BYTES, backupCount=LOG_BACKUPS)
    file_handler.setFormatter(formatter)
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(file_handler)
    logger.addHandler(console_handler)
    return logger
