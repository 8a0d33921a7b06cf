"""
Logging setup shared by the CLI and the server core.
"""

import logging

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# uvicorn logs every request line; onion clients should not be traced that way.
_QUIET_LOGGERS = ("uvicorn.access",)


def setup_logger(log_level: int, name: str = "onioncourier") -> logging.Logger:
    """
    Attach a single StreamHandler to the package logger.

    Calling this twice does not duplicate handlers, so tests and the CLI
    can both invoke it.

    Args:
        log_level: The logging level to set
        name: Logger to configure, the package root by default

    Returns:
        The configured logger
    """
    logger = logging.getLogger(name)
    logger.setLevel(log_level)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setLevel(log_level)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
    for quiet in _QUIET_LOGGERS:
        logging.getLogger(quiet).setLevel(logging.WARNING)
    return logger
