"""Crawler range model: address blocks attributed to search-engine crawlers."""

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class CrawlerRange(Base):
    __tablename__ = "crawler_ranges"
    __table_args__ = (
        UniqueConstraint("crawler_id", "network", name="uq_crawler_network"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    crawler_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    crawler_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    network: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )
