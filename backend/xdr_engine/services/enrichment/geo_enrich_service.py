# backend/xdr_engine/services/enrichment/geo_enrich_service.py
import logging
from dataclasses import dataclass
from ipaddress import ip_address
from typing import Optional

from xdr_engine.services.enrichment.core_service.ipinfo_service import fetch_ipinfo
from xdr_engine.services.enrichment.core_service.retry import async_retry

logger = logging.getLogger(__name__)

UNKNOWN = "Unknown"


@dataclass
class GeoContext:
    geolocation: str = UNKNOWN
    asn: str = UNKNOWN


def _asn_from_org(org: Optional[str]) -> Optional[str]:
    # ipinfo "org" looks like "AS15169 Google LLC"
    if not org:
        return None
    head = org.split()[0]
    return head if head.upper().startswith("AS") else org


async def lookup_ip_context(ip_str: str) -> GeoContext:
    """
    Geolocation (country code) and ASN for an IP indicator.
    Falls back to "Unknown" for unparseable / internal IPs, a missing token
    or lookup failures.
    """
    try:
        ip_obj = ip_address(ip_str.strip())
    except ValueError:
        logger.debug("Indicator value %r is not an IP address; skipping geo lookup", ip_str)
        return GeoContext()

    if ip_obj.is_private or ip_obj.is_loopback or ip_obj.is_reserved:
        return GeoContext(geolocation="Internal", asn=UNKNOWN)

    try:
        raw = await async_retry(lambda: fetch_ipinfo(str(ip_obj)), attempts=3, base_delay=0.5)
    except Exception as e:
        logger.warning("ipinfo lookup failed for %s: %s: %s", ip_obj, type(e).__name__, e)
        return GeoContext()

    if not raw:
        return GeoContext()

    return GeoContext(
        geolocation=raw.get("country") or UNKNOWN,
        asn=_asn_from_org(raw.get("org")) or UNKNOWN,
    )
