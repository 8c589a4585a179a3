import httpx
import pytest

from xdr_engine.core.config import settings
from xdr_engine.schemas.detection import ThreatIntelligenceFeed
from xdr_engine.services.enrichment import geo_enrich_service, threat_feed_service
from xdr_engine.services.enrichment.core_service.retry import async_retry, is_retryable_http_error
from xdr_engine.services.enrichment.geo_enrich_service import lookup_ip_context
from xdr_engine.services.enrichment.threat_feed_service import (
    fetch_feed_indicators,
    parse_abuseipdb_blacklist,
    parse_otx_export,
)


def feed(name, reliability=0.8):
    return ThreatIntelligenceFeed(
        id="feed_x",
        name=name,
        source="https://feeds.example/x",
        type="open",
        format="json",
        update_frequency=60,
        last_update="2024-01-01T00:00:00Z",
        reliability=reliability,
    )


class TestParsers:
    def test_abuseipdb(self):
        data = {
            "data": [
                {"ipAddress": "203.0.113.5", "countryCode": "CN", "abuseConfidenceScore": 100},
                {"ipAddress": "198.51.100.1", "abuseConfidenceScore": 30},
                {"countryCode": "RU"},
            ]
        }
        out = parse_abuseipdb_blacklist(data, feed("AbuseIPDB"))

        assert [i.value for i in out] == ["203.0.113.5", "198.51.100.1"]
        assert out[0].severity == "critical"
        assert out[0].confidence == 1.0
        assert out[0].context.geolocation == "CN"
        assert out[1].severity == "medium"
        assert out[1].source == "AbuseIPDB"

    def test_otx_maps_types_and_drops_unknown(self):
        data = {
            "results": [
                {"indicator": "evil.example", "type": "domain"},
                {"indicator": "d41d8cd98f00b204e9800998ecf8427e", "type": "FileHash-MD5"},
                {"indicator": "CVE-2024-0001", "type": "CVE"},
            ]
        }
        out = parse_otx_export(data, feed("AlienVault OTX", reliability=0.9))

        assert [(i.type.value, i.value) for i in out] == [
            ("domain", "evil.example"),
            ("hash", "d41d8cd98f00b204e9800998ecf8427e"),
        ]
        assert all(i.confidence == 0.9 for i in out)


class TestFeedFetch:
    @pytest.mark.asyncio
    async def test_without_key_nothing_is_fetched(self, monkeypatch):
        monkeypatch.setattr(settings, "ABUSEIPDB_API_KEY", None)
        assert await fetch_feed_indicators(feed("AbuseIPDB")) == []

    @pytest.mark.asyncio
    async def test_unknown_feed(self):
        assert await fetch_feed_indicators(feed("Homegrown CSV")) == []

    @pytest.mark.asyncio
    async def test_fetch_parses_payload(self, monkeypatch):
        async def fake_get_json(url, headers):
            assert headers["Key"] == "k"
            return {"data": [{"ipAddress": "203.0.113.5", "abuseConfidenceScore": 80}]}

        monkeypatch.setattr(settings, "ABUSEIPDB_API_KEY", "k")
        monkeypatch.setattr(threat_feed_service, "_get_json", fake_get_json)

        out = await fetch_feed_indicators(feed("AbuseIPDB"))
        assert [i.value for i in out] == ["203.0.113.5"]

    @pytest.mark.asyncio
    async def test_http_failure_yields_nothing(self, monkeypatch):
        async def failing_get_json(url, headers):
            raise httpx.ConnectError("no route")

        monkeypatch.setattr(settings, "OTX_API_KEY", "k")
        monkeypatch.setattr(threat_feed_service, "_get_json", failing_get_json)

        assert await fetch_feed_indicators(feed("AlienVault OTX")) == []


class TestGeoLookup:
    @pytest.mark.asyncio
    async def test_non_ip_and_internal(self):
        assert (await lookup_ip_context("not-an-ip")).geolocation == "Unknown"
        assert (await lookup_ip_context("192.168.1.10")).geolocation == "Internal"

    @pytest.mark.asyncio
    async def test_public_ip_uses_ipinfo(self, monkeypatch):
        async def fake_ipinfo(ip):
            return {"country": "US", "org": "AS15169 Google LLC"}

        monkeypatch.setattr(geo_enrich_service, "fetch_ipinfo", fake_ipinfo)

        ctx = await lookup_ip_context("8.8.8.8")
        assert ctx.geolocation == "US"
        assert ctx.asn == "AS15169"

    @pytest.mark.asyncio
    async def test_no_token_is_unknown(self, monkeypatch):
        monkeypatch.setattr(settings, "IPINFO_TOKEN", None)
        ctx = await lookup_ip_context("8.8.8.8")
        assert (ctx.geolocation, ctx.asn) == ("Unknown", "Unknown")


class TestRetry:
    def test_retryable_errors(self):
        request = httpx.Request("GET", "https://x.example")
        throttled = httpx.HTTPStatusError("429", request=request, response=httpx.Response(429, request=request))
        missing = httpx.HTTPStatusError("404", request=request, response=httpx.Response(404, request=request))

        assert is_retryable_http_error(throttled)
        assert not is_retryable_http_error(missing)
        assert is_retryable_http_error(httpx.ReadTimeout("slow"))
        assert not is_retryable_http_error(ValueError("nope"))

    @pytest.mark.asyncio
    async def test_retries_until_success(self):
        calls = []

        async def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise httpx.ConnectError("down")
            return "ok"

        assert await async_retry(flaky, attempts=3, base_delay=0) == "ok"
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_non_retryable_raises_immediately(self):
        calls = []

        async def broken():
            calls.append(1)
            raise ValueError("bad")

        with pytest.raises(ValueError):
            await async_retry(broken, attempts=3, base_delay=0)
        assert calls == [1]
