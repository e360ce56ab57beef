import logging
from logging.handlers import RotatingFileHandler
from typing import Optional

FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
ROOT = "site_scanner"


def _root() -> logging.Logger:
    root = logging.getLogger(ROOT)
    if not root.handlers:
        root.setLevel(logging.INFO)
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(logging.Formatter(FORMAT))
        root.addHandler(console_handler)
    return root


def configure(level: str = "INFO", log_file: Optional[str] = None) -> None:
    """Apply the configured level and, optionally, a rotating log file."""
    root = _root()
    root.setLevel(level.upper())

    if log_file and not any(isinstance(h, RotatingFileHandler) for h in root.handlers):
        file_handler = RotatingFileHandler(log_file, maxBytes=10_000_000, backupCount=5)
        file_handler.setFormatter(logging.Formatter(FORMAT))
        root.addHandler(file_handler)


def get_logger(name: str) -> logging.Logger:
    """
    Logger under the ``site_scanner`` hierarchy; records propagate to the
    package logger, which writes to the console (and a file once configured).
    """
    _root()
    if name.startswith(ROOT):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT}.{name}")
