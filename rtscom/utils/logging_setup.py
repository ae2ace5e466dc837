"""
Logging configuration for RTSCOM

Sets up Python logging with a timestamped file handler and proper formatting.
"""

import logging
import sys
from pathlib import Path
from datetime import datetime

LOG_FORMAT = '[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def setup_logging(config=None):
    """
    Configure logging for RTSCOM

    Args:
        config: Dictionary with logging configuration
                - level: Logging level (DEBUG, INFO, WARNING, ERROR)
                - log_dir: Directory for log files (default: rtscom_logs)

    Returns:
        Logger instance
    """
    if config is None:
        config = {}

    level_str = str(config.get('level', 'INFO')).upper()
    level = getattr(logging, level_str, logging.INFO)

    logger = logging.getLogger('rtscom')
    logger.setLevel(level)

    # Re-running setup replaces handlers instead of stacking them
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    log_dir = Path(config.get('log_dir', 'rtscom_logs'))
    timestamp = datetime.now().strftime('%Y_%m_%d_%H_%M_%S')
    log_file = log_dir / f'rtscom_log_{timestamp}.log'

    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
    except OSError as e:
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setLevel(level)
        stderr_handler.setFormatter(formatter)
        logger.addHandler(stderr_handler)
        logger.warning('Failed to create log file at %s (%s) - logging to stderr', log_file, e)
        log_file = None

    logger.info('Logging initialized at level %s', level_str)
    if log_file:
        logger.info('Log file: %s', log_file)

    return logger


def get_logger(name='rtscom'):
    """
    Get a logger instance

    Args:
        name: Logger name (default: 'rtscom')

    Returns:
        Logger instance
    """
    return logging.getLogger(name)
