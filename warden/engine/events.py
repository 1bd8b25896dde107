"""Access events and the value types passed between protection components."""

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


class ActionKind(str, Enum):
    PAGE_VIEW = "page_view"
    CONTENT_VIEW = "content_view"
    API_ACCESS = "api_access"
    RSS_ACCESS = "rss_access"
    LOGIN = "login"
    LOGOUT = "logout"
    BYPASS_ATTEMPT = "bypass_attempt"
    RSS_BYPASS_ATTEMPT = "rss_bypass_attempt"
    API_BYPASS_ATTEMPT = "api_bypass_attempt"
    BLOCKED_ACCESS = "blocked_access"
    IP_BLOCKED = "ip_blocked"
    SUSPICIOUS_ACTIVITY = "suspicious_activity"
    DIRECT_FILE_ACCESS = "direct_file_access"


class AccessResult(str, Enum):
    ALLOWED = "allowed"
    DENIED = "denied"
    BLOCKED = "blocked"
    VIEWED = "viewed"
    ATTEMPTED = "attempted"
    FILTERED = "filtered"
    PREVIEW = "preview"
    DETECTED = "detected"
    SUCCESS = "success"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_utc_naive(value: datetime) -> datetime:
    """Normalise to naive UTC, the form timestamps are stored in."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


@dataclass(frozen=True)
class AccessEvent:
    """One classified inbound request. Immutable once created."""

    address: str
    action_kind: ActionKind
    result: AccessResult
    timestamp: datetime = field(default_factory=utc_now)
    subject_id: Optional[int] = None
    resource_id: Optional[int] = None
    bypassed: bool = False
    suspicious: bool = False
    is_crawler: bool = False
    user_agent: str = ""
    referrer: str = ""
    request_path: str = ""

    def to_dict(self) -> dict:
        data = asdict(self)
        data["action_kind"] = self.action_kind.value
        data["result"] = self.result.value
        data["timestamp"] = self.timestamp.isoformat()
        return data


@dataclass
class LogFilters:
    """Filters shared by access log retrieval and counting."""

    address: Optional[str] = None
    action_kind: Optional[ActionKind] = None
    suspicious_only: bool = False
    is_crawler: Optional[bool] = None
    since: Optional[datetime] = None
    until: Optional[datetime] = None


@dataclass
class AccessStats:
    total: int = 0
    denied: int = 0
    suspicious: int = 0
    bypassed: int = 0
    blocked_unique_addresses: int = 0
    crawler_count: int = 0
    human_count: int = 0
    authenticated_human_count: int = 0
    unique_addresses: int = 0
    unique_resources: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class CrawlerMiningDetail:
    crawler_id: int
    crawler_name: str
    address_count: int = 0
    access_count: int = 0
    ranges_added: int = 0


@dataclass
class MiningReport:
    examined: int = 0
    crawlers_found: int = 0
    ranges_added: int = 0
    ranges_superseded: int = 0
    details: list[CrawlerMiningDetail] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)
