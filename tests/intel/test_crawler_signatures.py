"""Tests for crawler user-agent signatures and the address classifier."""

from unittest.mock import MagicMock

from warden.intel.classifier import AddressClassifier
from warden.intel.crawler_signatures import (
    GENERIC_CRAWLER,
    classify_for_mining,
    crawler_name_for,
    match_user_agent,
)
from warden.intel.range_store import RangeRecord

GOOGLEBOT_UA = "Mozilla/5.0 (compatible; Googlebot/2.1; +http://www.google.com/bot.html)"
BROWSER_UA = "Mozilla/5.0 (X11; Linux x86_64) Gecko/20100101 Firefox/121.0"


class TestSignatures:
    def test_known_crawler(self):
        identity = match_user_agent(GOOGLEBOT_UA)
        assert identity.crawler_id == 12
        assert identity.crawler_name == "Googlebot"

    def test_case_insensitive(self):
        assert match_user_agent("BINGBOT/2.0").crawler_id == 16

    def test_browser_is_not_a_crawler(self):
        assert match_user_agent(BROWSER_UA) is None
        assert match_user_agent("") is None
        assert match_user_agent(None) is None

    def test_mining_table_is_wider(self):
        assert match_user_agent("Mozilla/5.0 (compatible; AhrefsBot/7.0)") is None
        assert classify_for_mining("Mozilla/5.0 (compatible; AhrefsBot/7.0)").crawler_id == 21

    def test_generic_bucket(self):
        assert classify_for_mining("SomeIndexer/0.1") == GENERIC_CRAWLER
        assert classify_for_mining(BROWSER_UA) is None

    def test_names(self):
        assert crawler_name_for(12) == "Googlebot"
        assert crawler_name_for(99) == "Generic crawler"
        assert crawler_name_for(12345) == "Unknown crawler"


class TestAddressClassifier:
    def _classifier(self, record=None):
        store = MagicMock()
        store.contains.return_value = record
        return AddressClassifier(store), store

    def test_user_agent_checked_before_ranges(self):
        classifier, store = self._classifier()
        identity = classifier.lookup_crawler("198.51.100.1", GOOGLEBOT_UA)
        assert identity.crawler_id == 12
        store.contains.assert_not_called()

    def test_range_match(self):
        record = RangeRecord(id=1, crawler_id=21, crawler_name="AhrefsBot", network="54.36.148.0/24")
        classifier, _ = self._classifier(record)
        identity = classifier.lookup_crawler("54.36.148.9", BROWSER_UA)
        assert identity.crawler_id == 21
        assert classifier.is_crawler("54.36.148.9", BROWSER_UA) is True

    def test_no_match(self):
        classifier, _ = self._classifier()
        assert classifier.lookup_crawler("198.51.100.1", BROWSER_UA) is None
        assert classifier.is_search_engine(BROWSER_UA) is False
