import logging
import sys
import os

# Third-party loggers kept at WARNING unless loop4r itself runs at DEBUG
_LIBRARY_LOGGERS = ("pythonosc", "rtmidi", "asyncio")


def setup_logging(level: str = None) -> logging.Logger:
    """Configure the ``loop4r`` logger namespace.

    ``level`` comes from ``--log-level``; falls back to $LOG_LEVEL, then INFO.
    """
    log_level = (level or os.environ.get("LOG_LEVEL", "INFO")).upper()
    numeric_level = getattr(logging, log_level, None)
    unknown = not isinstance(numeric_level, int)
    if unknown:
        numeric_level = logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(
        fmt="%(asctime)s [%(levelname)-8s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    ))

    logger = logging.getLogger("loop4r")
    logger.setLevel(numeric_level)
    logger.handlers.clear()
    logger.addHandler(handler)
    logger.propagate = False

    logging.basicConfig(level=logging.WARNING)

    library_level = logging.DEBUG if numeric_level <= logging.DEBUG else logging.WARNING
    for name in _LIBRARY_LOGGERS:
        logging.getLogger(name).setLevel(library_level)

    if unknown:
        logger.warning("Unknown log level '%s', using INFO", log_level)
    return logger
