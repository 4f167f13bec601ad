import sys
from loguru import logger

CONSOLE_FORMAT = "<green>{elapsed}</green> | <level>{level: <8}</level> | <level>{message}</level>"
DEBUG_FORMAT = ("<green>{elapsed}</green> | <level>{level: <8}</level> | "
                "<cyan>{name}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>")
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{line} - {message}"


def setup_logging(level="INFO"):
    """Send solver progress to stderr.

    Lines are stamped with the wall time since start-up; at DEBUG level the
    emitting module and line are added.

    Parameters
    ----------
    level : str
        Logging level (DEBUG, INFO, SUCCESS, WARNING, ERROR, CRITICAL)
    """
    logger.remove()
    log_format = DEBUG_FORMAT if str(level).upper() == "DEBUG" else CONSOLE_FORMAT
    logger.add(sys.stderr, format=log_format, level=level, colorize=True)
    return logger


def add_log_file(path, level="DEBUG"):
    """Mirror log output into a run log file (no colors). Returns the sink id."""
    return logger.add(str(path), format=FILE_FORMAT, level=level, colorize=False)
