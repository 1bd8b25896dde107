"""Crawler signatures: user-agent tokens mapped to crawler identities.

Matching is a case-insensitive substring test and the first entry that
matches wins, so more specific tokens must precede generic ones. A matching
user agent is taken at face value; it is not verified against the source
address.
"""

from typing import NamedTuple, Optional


class CrawlerIdentity(NamedTuple):
    crawler_id: int
    crawler_name: str


GENERIC_CRAWLER = CrawlerIdentity(99, "Generic crawler")
UNKNOWN_CRAWLER_NAME = "Unknown crawler"

# Well-known search and social crawlers, used on the request path.
KNOWN_CRAWLERS: tuple[tuple[str, CrawlerIdentity], ...] = (
    ("googlebot", CrawlerIdentity(12, "Googlebot")),
    ("bingbot", CrawlerIdentity(16, "Bingbot")),
    ("slurp", CrawlerIdentity(15, "Yahoo Slurp")),
    ("baiduspider", CrawlerIdentity(13, "Baiduspider")),
    ("sogou", CrawlerIdentity(17, "Sogou Spider")),
    ("yandexbot", CrawlerIdentity(18, "YandexBot")),
    ("360spider", CrawlerIdentity(11, "360Spider")),
    ("bytespider", CrawlerIdentity(14, "Bytespider")),
    ("yisouspider", CrawlerIdentity(19, "YisouSpider")),
    ("duckduckbot", CrawlerIdentity(35, "DuckDuckBot")),
    ("facebookexternalhit", CrawlerIdentity(27, "Facebook Crawler")),
    ("applebot", CrawlerIdentity(26, "Applebot")),
)

# Wider table for offline log mining: SEO tools and link-preview fetchers.
MINING_CRAWLERS: tuple[tuple[str, CrawlerIdentity], ...] = (
    ("googlebot", CrawlerIdentity(12, "Googlebot")),
    ("bingbot", CrawlerIdentity(16, "Bingbot")),
    ("msnbot", CrawlerIdentity(16, "Bingbot")),
    ("slurp", CrawlerIdentity(15, "Yahoo Slurp")),
    ("baiduspider", CrawlerIdentity(13, "Baiduspider")),
    ("sogou", CrawlerIdentity(17, "Sogou Spider")),
    ("yandexbot", CrawlerIdentity(18, "YandexBot")),
    ("360spider", CrawlerIdentity(11, "360Spider")),
    ("360", CrawlerIdentity(11, "360Spider")),
    ("bytespider", CrawlerIdentity(14, "Bytespider")),
    ("yisouspider", CrawlerIdentity(19, "YisouSpider")),
    ("yisou", CrawlerIdentity(19, "YisouSpider")),
    ("semrushbot", CrawlerIdentity(20, "SemrushBot")),
    ("ahrefsbot", CrawlerIdentity(21, "AhrefsBot")),
    ("majestic", CrawlerIdentity(22, "Majestic")),
    ("dotbot", CrawlerIdentity(23, "DotBot")),
    ("mj12bot", CrawlerIdentity(24, "MJ12bot")),
    ("petalbot", CrawlerIdentity(25, "PetalBot")),
    ("applebot", CrawlerIdentity(26, "Applebot")),
    ("facebookexternalhit", CrawlerIdentity(27, "Facebook Crawler")),
    ("twitterbot", CrawlerIdentity(28, "Twitterbot")),
    ("linkedinbot", CrawlerIdentity(29, "LinkedInBot")),
    ("whatsapp", CrawlerIdentity(30, "WhatsApp")),
    ("telegrambot", CrawlerIdentity(31, "TelegramBot")),
    ("discordbot", CrawlerIdentity(32, "Discordbot")),
    ("pinterest", CrawlerIdentity(33, "Pinterest")),
    ("redditbot", CrawlerIdentity(34, "RedditBot")),
    ("duckduckbot", CrawlerIdentity(35, "DuckDuckBot")),
    ("exabot", CrawlerIdentity(36, "ExaBot")),
)

GENERIC_CRAWLER_TOKENS = ("bot", "crawler", "spider", "scraper", "indexer", "fetcher")

CRAWLER_NAMES: dict[int, str] = {
    identity.crawler_id: identity.crawler_name for _, identity in MINING_CRAWLERS
}
CRAWLER_NAMES[GENERIC_CRAWLER.crawler_id] = GENERIC_CRAWLER.crawler_name


def match_user_agent(
    user_agent: Optional[str],
    table: tuple[tuple[str, CrawlerIdentity], ...] = KNOWN_CRAWLERS,
) -> Optional[CrawlerIdentity]:
    """Return the identity of the first table token found in ``user_agent``."""
    if not user_agent or not isinstance(user_agent, str):
        return None
    lowered = user_agent.lower()
    for token, identity in table:
        if token in lowered:
            return identity
    return None


def classify_for_mining(user_agent: Optional[str]) -> Optional[CrawlerIdentity]:
    """Classify with the mining table, falling back to the generic bucket."""
    identity = match_user_agent(user_agent, MINING_CRAWLERS)
    if identity is not None:
        return identity
    lowered = (user_agent or "").lower()
    if any(token in lowered for token in GENERIC_CRAWLER_TOKENS):
        return GENERIC_CRAWLER
    return None


def crawler_name_for(crawler_id: int) -> str:
    return CRAWLER_NAMES.get(crawler_id, UNKNOWN_CRAWLER_NAME)
