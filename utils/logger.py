import logging
import os
from typing import Optional
from colorama import Fore, Style, init

init(autoreset=True)


def setup_logger(
    name: Optional[str] = None,
    level=logging.INFO,
    log_file: Optional[str] = "data/logs/import.log",
    console=True,
):
    """Setup logger with file and console handlers.

    With ``name=None`` the root logger is configured, so every module logger
    created through ``logging.getLogger(__name__)`` shares the handlers.
    """

    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Avoid duplicate handlers
    if logger.hasHandlers():
        logger.handlers.clear()

    # File handler
    if log_file:
        os.makedirs(os.path.dirname(log_file) or ".", exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        file_formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )
        file_handler.setFormatter(file_formatter)
        logger.addHandler(file_handler)

    # Console handler
    if console:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(
            ColoredFormatter("%(asctime)s - %(levelname_colored)s - %(message)s")
        )
        logger.addHandler(console_handler)

    return logger


class ColoredFormatter(logging.Formatter):
    """Colored formatter for console output"""

    COLORS = {
        "DEBUG": Fore.CYAN,
        "INFO": Fore.BLUE,
        "WARNING": Fore.YELLOW,
        "ERROR": Fore.RED,
        "CRITICAL": Fore.MAGENTA + Style.BRIGHT,
    }

    def format(self, record):
        record.levelname_colored = (
            self.COLORS.get(record.levelname, Fore.WHITE)
            + record.levelname
            + Style.RESET_ALL
        )
        return super().format(record)


def colored_print(level: str, message: str, color: Optional[str] = None):
    """Print colored message to console"""
    colors = {
        "INFO": Fore.BLUE,
        "SUCCESS": Fore.GREEN,
        "WARNING": Fore.YELLOW,
        "ERROR": Fore.RED,
        "DEBUG": Fore.CYAN,
    }
    print(f"{color or colors.get(level, Fore.WHITE)}{message}")


def log_import_step(step: str, url: Optional[str] = None, details: str = ""):
    """Log import pipeline steps with colors"""
    if url is not None:
        colored_print("INFO", f"Step: {step} - {url}", Fore.CYAN)
    else:
        colored_print("INFO", f"Step: {step}", Fore.CYAN)
    if details:
        print(details)


def get_logger(name: str) -> logging.Logger:
    """Get logger instance for the given name."""
    return logging.getLogger(name)
