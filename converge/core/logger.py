"""
Logging for the planning engine.

Every module logs through `get_logger(name)`, which namespaces under
`converge.*`. `setup_logging()` runs once from main.py. Full prompts and raw
model replies go through `dev_log` so they only appear when CONVERGE_ENV is
a development value.
"""

import logging
import os
import sys
import time
from functools import wraps

IS_DEV = os.getenv("CONVERGE_ENV", "development").lower() in ("development", "dev", "local")

# Snapshots carry income, assets and family data
REDACTED_MARKERS = ("api_key", "authorization", "income", "assets", "liabilities")

QUIET_LIBRARIES = ("httpx", "httpcore", "google_genai", "langchain_google_genai", "urllib3", "asyncio")


class RedactTravelerData(logging.Filter):
    """Replace any production record that mentions credentials or finances."""

    def filter(self, record: logging.LogRecord) -> bool:
        text = record.getMessage().lower()
        if any(marker in text for marker in REDACTED_MARKERS):
            record.msg = "[redacted: traveler or credential data]"
            record.args = ()
        return True


def setup_logging(dev: bool = IS_DEV) -> logging.Logger:
    """Configure stdout logging for the process. Returns the `converge` logger."""
    level = logging.DEBUG if dev else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
        force=True,
    )
    # Handler filters see records from every converge.* child logger
    if not dev:
        for handler in logging.getLogger().handlers:
            handler.addFilter(RedactTravelerData())

    for name in QUIET_LIBRARIES:
        logging.getLogger(name).setLevel(logging.WARNING)

    root = logging.getLogger("converge")
    root.setLevel(level)
    root.info(f"Logging initialized ({'development' if dev else 'production'}, level={logging.getLevelName(level)})")
    return root


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"converge.{name}")


def dev_log(logger: logging.Logger, message: str, *args, level: int = logging.DEBUG):
    """Log only in development; used for prompts and raw model output."""
    if IS_DEV:
        logger.log(level, message, *args)


def truncate_for_log(content: str, max_length: int = 100) -> str:
    if len(content) <= max_length:
        return content
    return content[:max_length] + "..."


def log_timing(logger: logging.Logger):
    """Debug-log how long a coroutine took (development only)."""
    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            if not IS_DEV:
                return await func(*args, **kwargs)
            start = time.perf_counter()
            try:
                return await func(*args, **kwargs)
            finally:
                logger.debug(f"{func.__qualname__} took {(time.perf_counter() - start) * 1000:.2f}ms")
        return wrapper
    return decorator
