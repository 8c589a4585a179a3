"""
Shared fixtures. The environment is pinned before any xdr_engine import so
settings / the SQLAlchemy engine pick up the in-memory database and no
external API is ever called.
"""

import os

os.environ["DATABASE_URL"] = "sqlite://"
for _key in (
    "IPINFO_TOKEN",
    "ABUSEIPDB_API_KEY",
    "OTX_API_KEY",
    "SLACK_ALERT_WEBHOOK_URL",
    "GENERIC_ALERT_WEBHOOK_URL",
):
    os.environ.pop(_key, None)

import random

import pytest

from xdr_engine.db.init_db import init_db
from xdr_engine.services.detection.detection_engine import AdvancedDetectionEngine
from xdr_engine.services.enrichment.geo_enrich_service import GeoContext
from xdr_engine.services.network.network_analysis import AdvancedNetworkAnalysis
from xdr_engine.services.response.action_dispatcher import ActionDispatcher


@pytest.fixture(scope="session", autouse=True)
def database():
    init_db()


async def fake_geo_lookup(ip: str) -> GeoContext:
    if ip.startswith("10."):
        return GeoContext(geolocation="Internal")
    return GeoContext(geolocation="US", asn="AS15169")


async def no_feed_data(feed):
    return []


@pytest.fixture
def engine():
    return AdvancedDetectionEngine(
        ActionDispatcher(),
        geo_lookup=fake_geo_lookup,
        feed_fetcher=no_feed_data,
        rng=random.Random(7),
        training_delay=0,
    )


@pytest.fixture
def analysis():
    return AdvancedNetworkAnalysis(malicious_ja3={"bad-ja3-fingerprint"})
