"""SQLAlchemy models package."""

from .base import Base
from .access_log import AccessLogEntry
from .crawler_range import CrawlerRange

__all__ = [
    "Base",
    "AccessLogEntry",
    "CrawlerRange",
]
