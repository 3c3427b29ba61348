# logger_config.py
#
# Imports
import sys
import os
from typing import Optional

#
# 3rd-Party Imports
from loguru import logger
# Local Imports
#
#
############################################################################################################
#
# Functions:

DEFAULT_APP_LOG_PATH = '~/.local/edutube_sync/Logs/edutube_sync.log'
DEFAULT_METRICS_LOG_PATH = '~/.local/edutube_sync/Logs/edutube_sync_metrics.json'


def _ensure_log_dir_exists(file_path: str):
    """Ensure the directory for the log file exists."""
    expanded_path = os.path.expanduser(file_path)
    log_dir = os.path.dirname(expanded_path)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
    return expanded_path


def _not_metric(record) -> bool:
    return record["level"].name != "METRIC"


def _only_metric(record) -> bool:
    return record["level"].name == "METRIC"


def setup_logger(
    log_level: str = "INFO",
    console_format: str = "{time:YYYY-MM-DD HH:mm:ss} - {level} - {message}",
    app_log_path: Optional[str] = DEFAULT_APP_LOG_PATH,
    metrics_log_path: Optional[str] = DEFAULT_METRICS_LOG_PATH,
    console_metrics: bool = False,
):
    """
    Sets up Loguru sinks for console, a standard application log, and a JSON metrics log.

    Args:
        log_level (str): The minimum log level to output (e.g., "DEBUG", "INFO").
        console_format (str): The format string for console output.
        app_log_path (Optional[str]): Path for the standard text log file. If None, this sink is disabled.
        metrics_log_path (Optional[str]): Path for the structured JSON metrics log. If None, this sink is disabled.
        console_metrics (bool): Also echo METRIC records to the console.

    Returns:
        The configured logger instance.
    """
    logger.remove()

    # 1. Console Sink (stderr, so command output on stdout stays clean)
    logger.add(
        sys.stderr,
        level=log_level.upper(),
        format=console_format,
        filter=None if console_metrics else _not_metric,
    )

    # 2. Standard Application File Sink
    if app_log_path:
        path = _ensure_log_dir_exists(app_log_path)
        logger.add(
            path,
            level=log_level.upper(),
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
            filter=_not_metric,
            rotation="10 MB",
            retention="7 days",
            enqueue=True,
            backtrace=True,
        )
        logger.debug(f"Application logs will be written to: {path}")

    # 3. JSON Metrics File Sink
    if metrics_log_path:
        path = _ensure_log_dir_exists(metrics_log_path)
        logger.add(
            path,
            level="METRIC",
            filter=_only_metric,
            serialize=True,
            rotation="10 MB",
            retention=5,
            enqueue=True,
        )
        logger.debug(f"JSON metrics logs will be written to: {path}")

    return logger

#
# End of Functions
############################################################################################################
