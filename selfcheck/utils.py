# selfcheck/utils.py
import logging
import sys
from typing import Optional

from pythonjsonlogger.json import JsonFormatter

_HANDLER_MARK = "_selfcheck_handler"


def setup_logging(level: str = "INFO", log_file: Optional[str] = None):
    logger = logging.getLogger()
    logger.setLevel(level.upper())

    # Calling twice (reloads, test app factories) must not duplicate output
    for handler in list(logger.handlers):
        if getattr(handler, _HANDLER_MARK, False):
            logger.removeHandler(handler)
            handler.close()

    # Console handler with JSON format
    console_handler = logging.StreamHandler(sys.stdout)
    formatter = JsonFormatter(
        '%(asctime)s %(levelname)s %(name)s %(message)s',
        rename_fields={'levelname': 'severity', 'asctime': 'timestamp'}
    )
    console_handler.setFormatter(formatter)
    setattr(console_handler, _HANDLER_MARK, True)
    logger.addHandler(console_handler)

    # File handler for persistent logs
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        setattr(file_handler, _HANDLER_MARK, True)
        logger.addHandler(file_handler)

    return logger
