# utils/logger.py
import os
import logging
from typing import Optional, Union


def setup_logger(
    logger_name: str,
    log_file: Optional[str] = None,
    level: Union[int, str] = logging.INFO,
    log_dir: Optional[str] = "logs"
) -> logging.Logger:
    """
    Set up and return a logger with console and (optionally) file handlers.

    Args:
        logger_name: Name of the logger
        log_file: Optional specific log filename (default: {logger_name}.log)
        level: Logging level, as a number or a name such as "DEBUG" (default: INFO)
        log_dir: Directory for log files; None logs to the console only

    Returns:
        Configured logger instance
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    logger = logging.getLogger(logger_name)
    logger.setLevel(level)
    # Layer loggers already print through the root handler
    logger.propagate = False

    # Clear existing handlers to avoid duplicates if logger already exists
    if logger.handlers:
        for handler in list(logger.handlers):
            handler.close()
        logger.handlers.clear()

    formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        if log_file is None:
            log_file = f"{logger_name.lower().replace(' ', '_')}.log"
        log_path = os.path.join(log_dir, log_file)

        file_handler = logging.FileHandler(log_path, encoding='utf-8')
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

        logger.debug(f"Log file is being saved to: {os.path.abspath(log_path)}")

    return logger
