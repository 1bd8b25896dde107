"""Bypass detector: flags logged events that look like protection bypass attempts.

Three variants share one detector:

* page access: automation signatures in the user agent, then missing
  browser headers, then repeated hits on the same resource;
* feed access: anything that is neither a known feed reader nor a search
  engine;
* API access: hourly call volume, then recognised API parameters as proof
  of a legitimate client, then scripting-runtime user agents.

The heuristics are evaluated in the listed order and the first match wins.
Thresholds are constructor arguments; the defaults have not been
calibrated against real traffic.
"""

from dataclasses import dataclass, field
from typing import Mapping, Optional

from ..utils.logging import get_logger
from .events import AccessEvent, ActionKind

logger = get_logger("engine.bypass_detector")

AUTOMATION_SIGNATURES = (
    "curl", "wget", "bot", "spider", "scraper", "headless", "phantom", "selenium",
)
FEED_READERS = ("feedly", "inoreader", "newsblur", "feedbin")
SCRIPTING_CLIENTS = ("python", "java", "node", "php", "ruby")
LEGITIMATE_API_PARAMS = ("_embed", "context")

FEED_ACTIONS = {ActionKind.RSS_ACCESS, ActionKind.RSS_BYPASS_ATTEMPT}
API_ACTIONS = {ActionKind.API_ACCESS, ActionKind.API_BYPASS_ATTEMPT}


@dataclass
class BypassContext:
    """Short-lived request context that is not stored on the event."""

    headers: Mapping[str, str] = field(default_factory=dict)
    query_params: Mapping[str, str] = field(default_factory=dict)
    recent_same_resource_count: Optional[int] = None
    hourly_api_count: Optional[int] = None
    is_search_engine: bool = False


def _contains_any(value: Optional[str], tokens: tuple[str, ...]) -> bool:
    lowered = (value or "").lower()
    return any(token in lowered for token in tokens)


class BypassDetector:
    def __init__(
        self,
        same_resource_threshold: int = 5,
        same_resource_window_seconds: int = 300,
        api_hourly_threshold: int = 20,
    ):
        self.same_resource_threshold = max(1, same_resource_threshold)
        self.same_resource_window_seconds = max(1, same_resource_window_seconds)
        self.api_hourly_threshold = max(1, api_hourly_threshold)

    def is_suspicious(
        self,
        user_agent: Optional[str],
        headers: Optional[Mapping[str, str]],
        recent_same_resource_count: int,
    ) -> bool:
        if _contains_any(user_agent, AUTOMATION_SIGNATURES):
            return True

        present = {k.lower() for k, v in (headers or {}).items() if v}
        if "accept" not in present and "accept-language" not in present:
            return True

        return recent_same_resource_count > self.same_resource_threshold

    def is_suspicious_feed(self, user_agent: Optional[str], is_search_engine: bool = False) -> bool:
        if _contains_any(user_agent, FEED_READERS):
            return False
        return not is_search_engine

    def is_suspicious_api(
        self,
        user_agent: Optional[str],
        query_params: Optional[Mapping[str, str]],
        hourly_api_count: int,
    ) -> bool:
        if hourly_api_count > self.api_hourly_threshold:
            return True
        params = query_params or {}
        if any(name in params for name in LEGITIMATE_API_PARAMS):
            return False
        return _contains_any(user_agent, SCRIPTING_CLIENTS)

    def evaluate(self, event: AccessEvent, context: Optional[BypassContext] = None) -> bool:
        """Dispatch to the variant matching the event's action kind."""
        context = context or BypassContext()
        if event.action_kind in FEED_ACTIONS:
            verdict = self.is_suspicious_feed(event.user_agent, context.is_search_engine)
        elif event.action_kind in API_ACTIONS:
            verdict = self.is_suspicious_api(
                event.user_agent, context.query_params, context.hourly_api_count or 0
            )
        else:
            verdict = self.is_suspicious(
                event.user_agent, context.headers, context.recent_same_resource_count or 0
            )
        if verdict:
            logger.info(
                "bypass_suspected",
                ip=event.address,
                action=event.action_kind.value,
                resource_id=event.resource_id,
            )
        return verdict
