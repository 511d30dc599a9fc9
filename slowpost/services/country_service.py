# slowpost/services/country_service.py
"""
Best-effort sender country detection

An IP lookup service is asked first; edge headers set by CDNs are the
fallback. Any failure yields None and never reaches the caller.
"""

import ipaddress
from typing import Mapping, Optional

import aiohttp

from slowpost.config import Settings
from slowpost.utils.logger import logger

COUNTRY_HEADERS = ("cf-ipcountry", "x-vercel-ip-country", "x-country-code", "x-appengine-country")
UNKNOWN_COUNTRY_CODES = {"", "xx", "t1", "zz"}


def is_public_ip(ip: Optional[str]) -> bool:
    if not ip:
        return False
    try:
        address = ipaddress.ip_address(ip.strip())
    except ValueError:
        return False
    return address.is_global


def client_ip(headers: Mapping[str, str], peer: Optional[str]) -> Optional[str]:
    """First X-Forwarded-For hop, then X-Real-IP, then the socket peer."""
    forwarded = headers.get("x-forwarded-for", "")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = headers.get("x-real-ip", "").strip()
    return real_ip or peer


def country_from_headers(headers: Mapping[str, str]) -> Optional[str]:
    for name in COUNTRY_HEADERS:
        value = (headers.get(name) or "").strip()
        if value.lower() not in UNKNOWN_COUNTRY_CODES:
            return value.upper() if len(value) == 2 else value
    return None


class CountryService:
    def __init__(self, settings: Settings):
        self.enabled = settings.geo_lookup_enabled
        self.lookup_url = settings.geo_lookup_url
        self.timeout = aiohttp.ClientTimeout(total=settings.geo_lookup_timeout_seconds)

    async def _lookup(self, ip: str) -> Optional[str]:
        url = self.lookup_url.format(ip=ip)
        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            async with session.get(url) as response:
                if response.status != 200:
                    logger.debug(f" Country lookup returned {response.status} for {ip}")
                    return None
                payload = await response.json(content_type=None)

        if not isinstance(payload, dict) or payload.get("status", "success") != "success":
            return None
        country = payload.get("country") or payload.get("country_name")
        return country if isinstance(country, str) and country else None

    async def detect(self, ip: Optional[str], headers: Mapping[str, str]) -> Optional[str]:
        if self.enabled and is_public_ip(ip):
            try:
                country = await self._lookup(ip.strip())
                if country:
                    return country
            except Exception as e:
                logger.warning(f" Country lookup failed for {ip}: {e}")
        return country_from_headers(headers)
