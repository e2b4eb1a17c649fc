import logging
import sys

DEFAULT_FMT = '[%(asctime)s][%(levelname)s][%(name)s] %(message)s'


def setup_logging(level="INFO", stream=None, fmt=DEFAULT_FMT):
    """Attach a single stream handler to the package logger."""
    logger = logging.getLogger("marathon_autoscale")
    logger.setLevel(level)

    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(logging.Formatter(fmt=fmt))
    logger.addHandler(handler)
    return logger
