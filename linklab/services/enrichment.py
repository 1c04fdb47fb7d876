"""
Best-effort click enrichment: user-agent parsing and geo-IP lookup.

Neither collaborator raises. A failure yields empty fields and the click
is still recorded.
"""

import asyncio
import ipaddress
import logging
from abc import ABC, abstractmethod
from typing import Optional

import requests
from user_agents import parse as parse_ua

from linklab.schemas.click import GeoLocation, UserAgentInfo


logger = logging.getLogger(__name__)


def parse_user_agent(user_agent: Optional[str]) -> UserAgentInfo:
    """Derive device/browser/OS from a User-Agent header"""
    if not user_agent:
        return UserAgentInfo()

    try:
        ua = parse_ua(user_agent)
    except Exception as e:
        logger.debug("User-agent parse failed for %r: %s", user_agent, e)
        return UserAgentInfo()

    if ua.is_bot:
        device_type = "bot"
    elif ua.is_tablet:
        device_type = "tablet"
    elif ua.is_mobile:
        device_type = "mobile"
    else:
        device_type = "desktop"

    return UserAgentInfo(
        device_type=device_type,
        browser=ua.browser.family or None,
        browser_version=ua.browser.version_string or None,
        os=ua.os.family or None,
        os_version=ua.os.version_string or None,
    )


class GeoResolver(ABC):
    """IP -> location. Implementations must not raise and must bound latency."""

    @abstractmethod
    async def resolve(self, ip: Optional[str]) -> Optional[GeoLocation]:
        pass


class NullGeoResolver(GeoResolver):
    """Geo lookup disabled"""

    async def resolve(self, ip: Optional[str]) -> Optional[GeoLocation]:
        return None


class IpApiGeoResolver(GeoResolver):
    """
    Looks the address up on an ipapi.co-compatible JSON endpoint.

    Private, loopback and malformed addresses are skipped without a
    request. The whole lookup is capped by `timeout` seconds.
    """

    def __init__(
        self,
        url_template: str = "https://ipapi.co/{ip}/json/",
        timeout: float = 3.0,
        session: Optional[requests.Session] = None,
    ):
        self.url_template = url_template
        self.timeout = timeout
        self.session = session or requests.Session()

    async def resolve(self, ip: Optional[str]) -> Optional[GeoLocation]:
        if not self._is_public(ip):
            return None

        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self._fetch, ip),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Geo lookup for %s timed out after %.1fs", ip, self.timeout)
        except Exception as e:
            logger.warning("Geo lookup for %s failed: %s", ip, e)
        return None

    def _fetch(self, ip: str) -> Optional[GeoLocation]:
        response = self.session.get(
            self.url_template.format(ip=ip),
            timeout=self.timeout,
        )
        response.raise_for_status()
        data = response.json()

        if data.get("error"):
            logger.warning("Geo lookup for %s rejected: %s", ip, data.get("reason"))
            return None

        return GeoLocation(
            country=data.get("country_name") or None,
            region=data.get("region") or None,
            city=data.get("city") or None,
        )

    @staticmethod
    def _is_public(ip: Optional[str]) -> bool:
        if not ip:
            return False
        try:
            address = ipaddress.ip_address(ip)
        except ValueError:
            return False
        return not (address.is_private or address.is_loopback or address.is_unspecified)
