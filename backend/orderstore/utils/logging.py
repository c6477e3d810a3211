import logging
import sys

from orderstore.config import settings


def get_logger(name: str, prefix: str = None) -> logging.Logger:
    """
    Return a named logger writing to stdout as ``[PREFIX] message``.

    Handlers are attached once per logger name, so calling this at import
    time from several modules is safe.
    """
    log = logging.getLogger(name)
    log.setLevel(settings.LOG_LEVEL.upper())
    if not log.handlers:
        h = logging.StreamHandler(sys.stdout)
        h.setFormatter(logging.Formatter(f"[{prefix or name.upper()}] %(message)s"))
        log.addHandler(h)
    return log
