"""Crawler intelligence: user-agent signatures and learned address ranges."""

from .classifier import AddressClassifier
from .crawler_signatures import CrawlerIdentity, classify_for_mining, match_user_agent
from .range_store import RangeRecord, RangeStore
