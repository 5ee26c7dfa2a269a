import logging

import colorlog

LOG_COLORS = {
    'DEBUG': 'cyan',
    'INFO': 'green',
    'WARNING': 'yellow',
    'ERROR': 'red',
    'CRITICAL': 'bold_red',
}


def setup_logging(level=logging.INFO):
    """Route launcher diagnostics to stderr as '[LEVEL] message'."""
    handler = colorlog.StreamHandler()
    handler.setFormatter(colorlog.ColoredFormatter(
        '%(log_color)s[%(levelname)s]%(reset)s %(message)s',
        log_colors=LOG_COLORS,
    ))

    logger = logging.getLogger('localnet')
    logger.handlers = []
    logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False
    return logger
