"""Process-wide logging configuration for the CLI and API entry points."""

import logging
from typing import Optional, Union

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# Third-party loggers that are noisy at INFO
_QUIET_LOGGERS = ("httpx", "httpcore", "openai", "botocore", "boto3", "urllib3", "aiosqlite")


def configure_logging(level: Optional[Union[str, int]] = None) -> None:
    """Install a single stream handler on the root logger."""
    if level is None:
        from config.settings import get_settings
        level = get_settings().log_level.value
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
    root.setLevel(level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
