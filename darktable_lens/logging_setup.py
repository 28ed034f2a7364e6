"""
Logging configuration for the darktable lens fixer.
"""

import datetime
import logging
import os
import sys
from typing import List, Optional
from .config import AppConfig


LOG_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'


def log_file_path(config: AppConfig, log_prefix: Optional[str] = None) -> Optional[str]:
    """
    Work out where the log goes.

    An explicit log file wins. Otherwise a run in debug mode with a prefix gets
    its own timestamped file, and everything else logs to the console only.
    """
    if config.log_file:
        return config.log_file
    if log_prefix and config.debug_mode:
        return f"{log_prefix}_{datetime.datetime.now().strftime('%Y%m%d-%H%M%S')}.log"
    return None


def build_handlers(config: AppConfig, log_file: Optional[str]) -> List[logging.Handler]:
    """
    Create the root handlers for a run.

    Without a log file messages go to stderr, which keeps stdout for command
    output. With a log file, debug mode mirrors the log on stdout.
    """
    if not log_file:
        return [logging.StreamHandler()]

    log_dir = os.path.dirname(log_file)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)

    handlers: List[logging.Handler] = [logging.FileHandler(log_file)]
    if config.debug_mode:
        handlers.append(logging.StreamHandler(sys.stdout))
    return handlers


def setup_logging(config: AppConfig, log_prefix: Optional[str] = None) -> None:
    """
    Configure logging based on settings.

    Args:
        config: Application configuration
        log_prefix: Optional prefix for a timestamped log file in debug mode
    """
    log_file = log_file_path(config, log_prefix)
    logging.basicConfig(
        level=getattr(logging, config.log_level),
        format=LOG_FORMAT,
        handlers=build_handlers(config, log_file)
    )

    logger = get_logger(__name__)
    logger.info(f"Logging initialized. Library: {config.library_path}")
    if log_file:
        logger.info(f"Writing log to {log_file}")

    if config.debug_mode:
        logger.debug(f"Python {sys.version.split()[0]} on {sys.platform}")
        logger.debug(
            "Data db: %s, exiftool: %s, overwrite original: %s",
            config.data_path or '(next to library)',
            config.exiftool_path or 'exiftool',
            config.overwrite_original,
        )
        logger.debug(
            "Rule extensions: %d lens names, %d crop fixes, %d presets, %d cameras, %d films",
            len(config.lens_names), len(config.crop_factor_fix), len(config.lens_presets),
            len(config.cameras), len(config.films),
        )


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger with the specified name.

    Args:
        name: Name for the logger

    Returns:
        Logger instance
    """
    return logging.getLogger(name)
