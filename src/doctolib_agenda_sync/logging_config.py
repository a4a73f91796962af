import logging
import os
from pathlib import Path
from typing import Optional


_NOISY_LOGGERS = ("playwright", "urllib3", "asyncio")


def configure_logging(level: str = "INFO", file_path: Optional[str] = None, *, noisy_level: Optional[str] = None) -> None:
    """
    Console logging, plus a UTF-8 log file when `file_path` is set (bundled on failure).

    Safe to call again: the CLI configures once from the environment and again after loading config.
    """
    numeric_level = getattr(logging, (level or "INFO").upper(), logging.INFO)

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if file_path:
        path = Path(file_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path, encoding="utf-8"))

    logging.basicConfig(
        level=numeric_level,
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
        handlers=handlers,
        force=True,
    )

    quiet = (noisy_level or os.getenv("NOISY_LOG_LEVEL", "WARNING")).upper()
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(quiet)
