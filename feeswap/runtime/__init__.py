from .logging import JsonFormatter, setup_logger
from .settings import AppSettings

__all__ = [
    "AppSettings",
    "JsonFormatter",
    "setup_logger",
]
