"""Static allow/deny lists that override rate limiting unconditionally."""

from enum import Enum
from functools import lru_cache

from ..utils.ip_network import ip_in_list, parse_ip_list


class ListDecision(str, Enum):
    ALLOW = "allow"
    DENY = "deny"
    UNMATCHED = "unmatched"


@lru_cache(maxsize=32)
def _entries(text: str) -> tuple[str, ...]:
    return tuple(parse_ip_list(text))


class AllowDenyList:
    """Allow list first, then deny list; everything else is unmatched.

    Lists are kept as the raw configuration text. Parsed entries are
    memoised by text, so replacing the text takes effect on the next check.
    """

    def __init__(self, allow_text: str = "", deny_text: str = ""):
        self._lists = (allow_text or "", deny_text or "")

    def update(self, allow_text: str = "", deny_text: str = "") -> None:
        self._lists = (allow_text or "", deny_text or "")

    @property
    def allow_entries(self) -> tuple[str, ...]:
        return _entries(self._lists[0])

    @property
    def deny_entries(self) -> tuple[str, ...]:
        return _entries(self._lists[1])

    def decide(self, address: str) -> ListDecision:
        allow_text, deny_text = self._lists
        if ip_in_list(address, _entries(allow_text)):
            return ListDecision.ALLOW
        if ip_in_list(address, _entries(deny_text)):
            return ListDecision.DENY
        return ListDecision.UNMATCHED
