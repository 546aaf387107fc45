"""
Logger Configuration
Rich console logging for the CLI and the API server
"""
import logging
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler


console = Console(stderr=True)

FILE_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"

LOG_DIR = Path(__file__).parent.parent / "logs"

# third-party loggers that drown out pipeline progress at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "openai")


def configure_root_logging(level: int = logging.INFO, log_file: Optional[str] = None) -> None:
    """
    Attach a RichHandler (and optionally a file under logs/) to the root logger.

    Modules log through ``logging.getLogger(__name__)``, so this is the only
    setup an entrypoint needs. Calling it twice is harmless.
    """
    root = logging.getLogger()
    root.setLevel(level)
    if any(isinstance(handler, RichHandler) for handler in root.handlers):
        return

    handler = RichHandler(console=console, show_time=True, show_path=False, rich_tracebacks=True)
    handler.setFormatter(logging.Formatter("%(message)s"))
    root.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    if log_file:
        LOG_DIR.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(LOG_DIR / log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        root.addHandler(file_handler)
