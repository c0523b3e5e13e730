from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler


def setup_logging(log_dir: str = "logs", level: str = "INFO") -> logging.Logger:
    """
    Idempotent. Calling again with another `log_dir` moves the file handler;
    `level` is always re-applied.
    """
    os.makedirs(log_dir, exist_ok=True)

    logger = logging.getLogger("gatekeeper")
    logger.setLevel(getattr(logging, str(level).upper(), logging.INFO))
    logger.propagate = False

    text_path = os.path.abspath(os.path.join(log_dir, "gatekeeper.log"))
    for h in list(logger.handlers):
        if isinstance(h, RotatingFileHandler) and h.baseFilename != text_path:
            logger.removeHandler(h)
            h.close()

    if not any(isinstance(h, RotatingFileHandler) for h in logger.handlers):
        h = RotatingFileHandler(text_path, maxBytes=1_000_000, backupCount=5, encoding="utf-8")
        fmt = logging.Formatter("%(asctime)s | %(levelname)s | %(message)s")
        h.setFormatter(fmt)
        logger.addHandler(h)

    if not any(isinstance(h, logging.StreamHandler) and not isinstance(h, RotatingFileHandler) for h in logger.handlers):
        sh = logging.StreamHandler()
        sh.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(sh)

    return logger


def get_logger(logger=None) -> logging.Logger:
    return logger if logger is not None else logging.getLogger("gatekeeper")
