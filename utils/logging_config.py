# utils/logging_config.py

import logging
import logging.handlers
from pathlib import Path
import json
from datetime import datetime
from typing import Optional

CONSOLE_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
FILE_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'

MAX_LOG_BYTES = 10 * 1024 * 1024
BACKUP_COUNT = 5

_HANDLER_MARK = '_studio_handler'


def setup_logging(level: str = "INFO",
                  log_dir: Optional[str] = "logs",
                  json_logs: bool = True,
                  name: str = "studio") -> logging.Logger:
    """
    Configure the root logger with console, rotating file and JSON handlers

    Calling it again replaces the handlers it installed earlier, so the
    server and the CLI can both call it safely.

    Args:
        level: Console level name
        log_dir: Directory for the log files; None logs to the console only
        json_logs: Also write one JSON object per line
        name: Base name of the log files
    """
    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    for handler in list(root.handlers):
        if getattr(handler, _HANDLER_MARK, False):
            root.removeHandler(handler)
            handler.close()

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(getattr(logging, str(level).upper(), logging.INFO))
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    _install(root, console_handler)

    if log_dir:
        directory = Path(log_dir)
        directory.mkdir(parents=True, exist_ok=True)

        # File handler (rotating)
        file_handler = logging.handlers.RotatingFileHandler(
            directory / f"{name}.log",
            maxBytes=MAX_LOG_BYTES,
            backupCount=BACKUP_COUNT,
            encoding='utf-8'
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        _install(root, file_handler)

        if json_logs:
            json_handler = logging.handlers.RotatingFileHandler(
                directory / f"{name}_structured.json",
                maxBytes=MAX_LOG_BYTES,
                backupCount=BACKUP_COUNT,
                encoding='utf-8'
            )
            json_handler.setLevel(logging.INFO)
            json_handler.setFormatter(JSONFormatter())
            _install(root, json_handler)

    # Chatty third-party loggers
    for noisy in ('PIL', 'httpx', 'httpcore', 'multipart'):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    return logging.getLogger(name)


def _install(root: logging.Logger, handler: logging.Handler):
    setattr(handler, _HANDLER_MARK, True)
    root.addHandler(handler)


def log_operation(logger: logging.Logger, operation: str, **kwargs):
    """Log structured operation data"""
    data = {
        'operation': operation,
        'timestamp': datetime.now().isoformat(),
        **kwargs
    }
    logger.info(json.dumps(data, default=str))


class JSONFormatter(logging.Formatter):
    """Format logs as JSON"""

    def format(self, record):
        log_data = {
            'timestamp': datetime.fromtimestamp(record.created).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno
        }

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False)
