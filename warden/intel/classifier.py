"""Address classifier: decides whether a client is a known crawler."""

from typing import Optional

from .crawler_signatures import CrawlerIdentity, match_user_agent
from .range_store import RangeStore


class AddressClassifier:
    """Matches the user agent against the known-crawler table first, then
    the client address against ranges learned from earlier traffic.
    """

    def __init__(self, range_store: RangeStore):
        self._range_store = range_store

    def lookup_crawler(self, address: str, user_agent: Optional[str] = None) -> Optional[CrawlerIdentity]:
        identity = match_user_agent(user_agent)
        if identity is not None:
            return identity

        record = self._range_store.contains(address)
        if record is not None:
            return CrawlerIdentity(record.crawler_id, record.crawler_name)
        return None

    def is_crawler(self, address: str, user_agent: Optional[str] = None) -> bool:
        return self.lookup_crawler(address, user_agent) is not None

    def is_search_engine(self, user_agent: Optional[str]) -> bool:
        """User-agent-only check, used where the address is not trusted."""
        return match_user_agent(user_agent) is not None
