"""Access log model: one row per classified inbound request."""

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class AccessLogEntry(Base):
    __tablename__ = "access_logs"
    __table_args__ = (
        Index("idx_access_ip_time", "address", "timestamp"),
        Index("idx_access_resource_time", "resource_id", "timestamp"),
        Index("idx_access_subject_time", "subject_id", "timestamp"),
        Index("idx_access_suspicious", "suspicious", "timestamp"),
        Index("idx_access_action", "action_kind", "timestamp"),
        Index("idx_access_result", "result", "timestamp"),
        Index("idx_access_crawler", "is_crawler", "timestamp"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False, index=True
    )
    address: Mapped[str] = mapped_column(String(45), nullable=False)
    subject_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    resource_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    action_kind: Mapped[str] = mapped_column(String(50), nullable=False)
    result: Mapped[str] = mapped_column(String(20), nullable=False)
    bypassed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    suspicious: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_crawler: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    user_agent: Mapped[str] = mapped_column(Text, default="", nullable=False)
    referrer: Mapped[str] = mapped_column(Text, default="", nullable=False)
    request_path: Mapped[str] = mapped_column(Text, default="", nullable=False)
