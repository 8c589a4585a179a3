# backend/xdr_engine/services/enrichment/threat_feed_service.py
import logging
from typing import Any, Callable, Dict, List, Optional

import httpx

from xdr_engine.core.config import settings
from xdr_engine.schemas.detection import (
    IndicatorContext,
    ThreatIndicatorCreate,
    ThreatIntelligenceFeed,
)
from xdr_engine.services.enrichment.core_service.retry import async_retry
from xdr_engine.services.risk_scoring.risk_utils import severity_from_score

logger = logging.getLogger(__name__)


OTX_TYPE_MAP = {
    "ipv4": "ip",
    "ipv6": "ip",
    "domain": "domain",
    "hostname": "domain",
    "url": "url",
    "uri": "url",
    "email": "email",
    "filehash-md5": "hash",
    "filehash-sha1": "hash",
    "filehash-sha256": "hash",
}


# --------------------------------------------------------
# Parsers: raw feed JSON -> indicator payloads
# --------------------------------------------------------
def parse_abuseipdb_blacklist(
    data: Dict[str, Any], feed: ThreatIntelligenceFeed
) -> List[ThreatIndicatorCreate]:
    """
    AbuseIPDB /blacklist:
      {"data": [{"ipAddress": "1.2.3.4", "countryCode": "CN",
                 "abuseConfidenceScore": 100, "lastReportedAt": "..."}]}
    """
    out: List[ThreatIndicatorCreate] = []
    for row in data.get("data") or []:
        ip = row.get("ipAddress")
        if not ip:
            continue
        score = int(row.get("abuseConfidenceScore") or 0)
        out.append(
            ThreatIndicatorCreate(
                type="ip",
                value=ip,
                confidence=min(1.0, score / 100.0),
                severity=severity_from_score(score),
                source=feed.name,
                tags=["blacklist", "abuseipdb"],
                context=IndicatorContext(
                    geolocation=row.get("countryCode"),
                    last_seen=row.get("lastReportedAt"),
                ),
            )
        )
    return out


def parse_otx_export(
    data: Dict[str, Any], feed: ThreatIntelligenceFeed
) -> List[ThreatIndicatorCreate]:
    """
    AlienVault OTX /indicators/export:
      {"results": [{"indicator": "evil.example", "type": "domain"}], "next": ...}
    """
    out: List[ThreatIndicatorCreate] = []
    for row in data.get("results") or []:
        value = row.get("indicator")
        ioc_type = OTX_TYPE_MAP.get(str(row.get("type") or "").lower())
        if not value or not ioc_type:
            continue
        out.append(
            ThreatIndicatorCreate(
                type=ioc_type,
                value=value,
                confidence=feed.reliability,
                severity="medium",
                source=feed.name,
                tags=["otx"],
            )
        )
    return out


FeedParser = Callable[[Dict[str, Any], ThreatIntelligenceFeed], List[ThreatIndicatorCreate]]

FEED_PARSERS: Dict[str, FeedParser] = {
    "AbuseIPDB": parse_abuseipdb_blacklist,
    "AlienVault OTX": parse_otx_export,
}


def _feed_headers(feed: ThreatIntelligenceFeed) -> Optional[Dict[str, str]]:
    if feed.name == "AbuseIPDB" and settings.ABUSEIPDB_API_KEY:
        return {"Key": settings.ABUSEIPDB_API_KEY, "Accept": "application/json"}
    if feed.name == "AlienVault OTX" and settings.OTX_API_KEY:
        return {"X-OTX-API-KEY": settings.OTX_API_KEY}
    return None


async def _get_json(url: str, headers: Dict[str, str]) -> Dict[str, Any]:
    async with httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS) as client:
        resp = await client.get(url, headers=headers)
        resp.raise_for_status()
        return resp.json()


async def fetch_feed_indicators(feed: ThreatIntelligenceFeed) -> List[ThreatIndicatorCreate]:
    """
    Pull a feed and turn it into indicator payloads.
    Feeds without a parser or without credentials yield nothing.
    """
    parser = FEED_PARSERS.get(feed.name)
    if parser is None:
        logger.info("No parser for feed %s (%s); skipping.", feed.name, feed.format)
        return []

    headers = _feed_headers(feed)
    if headers is None:
        logger.info("Feed %s has no API key configured; skipping fetch.", feed.name)
        return []

    try:
        data = await async_retry(lambda: _get_json(feed.source, headers), attempts=3, base_delay=0.5)
    except httpx.HTTPError as e:
        logger.warning("Fetching feed %s failed: %s: %s", feed.name, type(e).__name__, e)
        return []

    indicators = parser(data, feed)
    logger.info("Feed %s returned %d indicators", feed.name, len(indicators))
    return indicators
