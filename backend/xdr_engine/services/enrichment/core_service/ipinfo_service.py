from typing import Any, Optional

import httpx

from xdr_engine.core.config import settings


BASE_URL = "https://ipinfo.io"


async def fetch_ipinfo(ip: str) -> Optional[dict[str, Any]]:
    """
    Call ipinfo.io /{ip} endpoint.
    Returns raw JSON data, or None when no token is configured.
    HTTP / transport errors propagate so callers can retry.
    """
    token = settings.IPINFO_TOKEN
    if not token:
        return None

    url = f"{BASE_URL}/{ip}"
    params = {"token": token}

    async with httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS) as client:
        resp = await client.get(url, params=params)
        resp.raise_for_status()
        return resp.json()
