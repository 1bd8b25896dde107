"""Log miner: learns crawler address ranges from the access log.

Busy (address, user agent) pairs are classified with the mining signature
table. Each crawler's addresses are clustered into IPv4 /24 or IPv6 /64
networks: a cluster holding several addresses is stored as the whole
network, a cluster holding one address is stored as that single /32 or
/128 unless an existing range of the crawler already covers it.
"""

from collections import defaultdict
from datetime import timedelta

from ..intel.crawler_signatures import CrawlerIdentity, classify_for_mining
from ..intel.range_store import RangeStore
from ..utils.ip_network import cluster_network, is_valid_ip, parse_address, single_address_network
from ..utils.logging import get_logger
from .access_log import AccessLog
from .events import CrawlerMiningDetail, MiningReport, utc_now

logger = get_logger("engine.log_miner")


class LogMiner:
    def __init__(self, access_log: AccessLog, range_store: RangeStore):
        self._access_log = access_log
        self._range_store = range_store

    async def mine(self, window_days: int = 7, min_hits: int = 3) -> MiningReport:
        window_days = max(1, min(int(window_days), 365))
        min_hits = max(1, int(min_hits))
        since = utc_now() - timedelta(days=window_days)

        rows = await self._access_log.address_agent_hits(since, min_hits)
        report = MiningReport(examined=len(rows))
        if not rows:
            return report

        identities: dict[int, CrawlerIdentity] = {}
        addresses: dict[int, list[str]] = defaultdict(list)
        access_counts: dict[int, int] = defaultdict(int)

        for address, user_agent, hits in rows:
            identity = classify_for_mining(user_agent)
            if identity is None:
                continue
            identities.setdefault(identity.crawler_id, identity)
            if not is_valid_ip(address):
                continue
            normalized = str(parse_address(address))
            if normalized not in addresses[identity.crawler_id]:
                addresses[identity.crawler_id].append(normalized)
            access_counts[identity.crawler_id] += hits

        report.crawlers_found = len(identities)

        for crawler_id, identity in identities.items():
            detail = CrawlerMiningDetail(
                crawler_id=crawler_id,
                crawler_name=identity.crawler_name,
                address_count=len(addresses[crawler_id]),
                access_count=access_counts[crawler_id],
            )
            clusters: dict[str, list[str]] = defaultdict(list)
            for address in addresses[crawler_id]:
                clusters[cluster_network(address)].append(address)

            for network, members in clusters.items():
                if len(members) == 1:
                    if await self._range_store.covers(crawler_id, members[0]):
                        continue
                    candidate = single_address_network(members[0])
                else:
                    candidate = network

                if await self._range_store.add_range(crawler_id, identity.crawler_name, candidate):
                    detail.ranges_added += 1
                    if len(members) > 1:
                        report.ranges_superseded += await self._range_store.supersede(crawler_id, candidate)

            report.ranges_added += detail.ranges_added
            report.details.append(detail)

        logger.info(
            "crawler_mining_complete",
            examined=report.examined,
            crawlers_found=report.crawlers_found,
            ranges_added=report.ranges_added,
            ranges_superseded=report.ranges_superseded,
        )
        return report
