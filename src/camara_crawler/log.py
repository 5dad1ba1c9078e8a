import logging
import queue
from logging.handlers import QueueHandler, QueueListener
from pathlib import Path
from typing import Optional

from .config import LogCfg

logger = logging.getLogger("camara_crawler")

_FORMAT = "[%(asctime)s] %(levelname)s %(name)s %(message)s"


def setup_logging(cfg: LogCfg) -> Optional[QueueListener]:
    level = logging.getLevelName(cfg.level)
    if not isinstance(level, int):
        level = logging.INFO

    logger.setLevel(level)
    logger.handlers.clear()
    logger.propagate = False

    console = logging.StreamHandler()
    console.setFormatter(logging.Formatter(_FORMAT))
    logger.addHandler(console)

    if not cfg.error_log_file:
        return None

    Path(cfg.error_log_file).parent.mkdir(parents=True, exist_ok=True)

    q = queue.Queue()
    handler = logging.FileHandler(cfg.error_log_file, encoding="utf-8")
    handler.setFormatter(logging.Formatter(_FORMAT))
    handler.setLevel(logging.WARNING)

    listener = QueueListener(q, handler, respect_handler_level=True)
    listener.start()
    logger.addHandler(QueueHandler(q))
    return listener
