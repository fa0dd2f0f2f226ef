"""Logging helpers shared by the package and its command line tool."""

import logging

_CONSOLE_FORMAT = "%(levelname)s: %(message)s"
_FILE_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"


def get_logger(name: str) -> logging.Logger:
    """Return a logger with the given name.

    Library modules only create loggers; handlers are attached by
    :func:`configure_logging` from the application side.

    Args:
        name: Logger name, usually ``__name__``.

    Returns:
        The named logger.
    """
    return logging.getLogger(name)


def configure_logging(verbose: bool = False, log_file: str | None = None) -> logging.Logger:
    """Attach console (and optionally file) handlers to the package logger.

    Args:
        verbose: Log DEBUG to the console instead of INFO.
        log_file: Optional path of a file receiving DEBUG output.

    Returns:
        The configured package logger.
    """
    logger = logging.getLogger("prvag")

    if not logger.handlers:  # avoid duplicate handlers on repeated calls
        logger.setLevel(logging.DEBUG)

        ch = logging.StreamHandler()
        ch.setFormatter(logging.Formatter(_CONSOLE_FORMAT))
        logger.addHandler(ch)

        if log_file is not None:
            fh = logging.FileHandler(log_file)
            fh.setLevel(logging.DEBUG)
            fh.setFormatter(logging.Formatter(_FILE_FORMAT))
            logger.addHandler(fh)

    for handler in logger.handlers:
        if not isinstance(handler, logging.FileHandler):
            handler.setLevel(logging.DEBUG if verbose else logging.INFO)

    return logger
