"""
Logging configuration module for the chat file layer.

This module provides:
- Centralized logging setup driven by AppSettings
- Rotating application log plus a separate error log
- Helpers for logging with user and room context
"""

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Optional

from chatfiles.managers.config.config_models import AppSettings


def setup_logging(app_settings: Optional[AppSettings] = None) -> bool:
    """Setup logging configuration."""
    try:
        if app_settings is None:
            from chatfiles.managers.config.config_manager import config_manager
            app_settings = config_manager.app_settings
        log_level = getattr(logging, app_settings.log_level.upper(), logging.INFO)

        # Ensure logs directory exists
        logs_dir = Path(app_settings.app_log_dir or "logs")
        logs_dir.mkdir(parents=True, exist_ok=True)

        # Clear any existing handlers
        root_logger = logging.getLogger()
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)

        detailed_formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(module)s:%(funcName)s:%(lineno)d - %(message)s'
        )
        simple_formatter = logging.Formatter(
            '%(asctime)s - %(levelname)s - %(message)s'
        )

        # File handler for main application logs
        file_handler = logging.handlers.RotatingFileHandler(
            logs_dir / "app.log",
            maxBytes=10*1024*1024,  # 10MB
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setLevel(log_level)
        file_handler.setFormatter(detailed_formatter)

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(log_level)
        console_handler.setFormatter(simple_formatter)

        # Error file handler for failed transfers and other errors
        error_handler = logging.FileHandler(logs_dir / "errors.log", encoding="utf-8")
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(detailed_formatter)

        root_logger.setLevel(log_level)
        root_logger.addHandler(file_handler)
        root_logger.addHandler(console_handler)
        root_logger.addHandler(error_handler)

        setup_specific_loggers(log_level, debug_mode=app_settings.debug_mode)

        logging.info(f"Logging configured successfully with level: {app_settings.log_level}")
        return True

    except Exception as e:
        print(f"Failed to setup logging: {e}", file=sys.stderr)
        return False


def setup_specific_loggers(log_level, debug_mode=False):
    """Configure specific loggers for different modules."""
    logging.getLogger("chatfiles").setLevel(log_level)

    # Reduce noise from HTTP libraries unless debugging transfers
    http_level = logging.DEBUG if debug_mode else logging.WARNING
    logging.getLogger("httpx").setLevel(http_level)
    logging.getLogger("httpcore").setLevel(http_level)


def log_with_context(logger, level, message, user_email=None, room_id=None, **kwargs):
    """Log a message with user and room context."""
    record = logger.makeRecord(
        logger.name, level, "", 0, message, (), None,
        func="", extra={'user_email': user_email, 'room_id': room_id, **kwargs}
    )
    logger.handle(record)
