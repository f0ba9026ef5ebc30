"""
@file logging.py
@brief Centralized logging configuration
@details
Configures logging for the API and the import CLI, to stdout and/or a log
file. Log directory creation failures fall back to stdout only.

@author GeoAdmin Project
@date 2026-10-07
@version 1.0
@license AGPL-3.0
"""

import logging
import sys
import os

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"


def _resolve_log_dir():
    log_dir = os.getenv("LOG_DIR", None)
    if log_dir is not None:
        return log_dir

    # Container volume first, then logs/ at the repository root
    app_logs = "/app/logs"
    try:
        if os.path.exists(app_logs) and os.access(app_logs, os.W_OK):
            return app_logs
    except OSError:
        pass

    base_dir = os.path.dirname(os.path.dirname(os.path.dirname(__file__)))
    log_dir = os.path.join(base_dir, "logs")
    try:
        os.makedirs(log_dir, exist_ok=True)
    except (OSError, PermissionError):
        return None
    return log_dir


def setup_logging(level: int = logging.INFO) -> logging.Logger:
    """
    @brief Configure and return the application logger
    @details
    LOG_OUTPUT selects the handlers:
    - 'file': logs/app.log
    - 'stdout': console
    - 'both': both (default)
    """
    log_output = os.getenv("LOG_OUTPUT", "both").lower()
    log_dir = _resolve_log_dir() if log_output in ("file", "both") else None

    handlers = []

    if log_output in ("stdout", "both"):
        handlers.append(logging.StreamHandler(sys.stdout))

    if log_dir:
        try:
            handlers.append(logging.FileHandler(os.path.join(log_dir, "app.log")))
        except (OSError, PermissionError):
            if not any(isinstance(h, logging.StreamHandler) for h in handlers):
                handlers.append(logging.StreamHandler(sys.stdout))

    # Safety net
    if not handlers:
        handlers.append(logging.StreamHandler(sys.stdout))

    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers)

    # Per-request urllib3 chatter drowns the import progress lines
    logging.getLogger("urllib3").setLevel(logging.WARNING)

    return logging.getLogger("geoadmin")
