"""
Redirect resolution for GET /{short_code}.

Per request, strictly in order:

1. lookup       active durable link, else demo registry, else NOT_FOUND
2. expiry       expiry_date in the past -> EXPIRED
3. click limit  recorded clicks >= click_limit -> LIMIT_REACHED
4. record       hand a ClickCandidate to the recorder (not awaited)
5. destination  original_url with request utm_* parameters overlaid
6. respond      302 to the destination

Every outcome is a redirect. Denied requests record nothing.

The click-limit gate counts rows in a log that other requests are
appending to, so it is a point-in-time check: concurrent requests at the
boundary can both pass. The limit is advisory, not a security control.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Mapping, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from linklab.config import settings
from linklab.schemas.click import ClickCandidate
from linklab.services.click_recorder import ClickRecorder
from linklab.services.link_service import LinkService
from linklab.services.short_code_strategies import is_valid_short_code
from linklab.storage.strategies import ClickStoreStrategy
from linklab.utils import utc_now


logger = logging.getLogger(__name__)

UTM_KEYS = ("utm_source", "utm_medium", "utm_campaign", "utm_term", "utm_content")

LOOPBACK_IP = "127.0.0.1"


class RedirectOutcome(str, Enum):
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    LIMIT_REACHED = "limit_reached"
    SUCCESS = "success"
    INTERNAL_ERROR = "internal_error"


@dataclass(frozen=True)
class StatusPages:
    """Where each non-success outcome sends the browser"""
    not_found: str
    expired: str
    limit_reached: str
    error: str

    @classmethod
    def from_settings(cls) -> "StatusPages":
        base = settings.frontend_url.rstrip("/")
        return cls(
            not_found=base + settings.not_found_path,
            expired=base + settings.expired_path,
            limit_reached=base + settings.limit_reached_path,
            error=base + settings.error_path,
        )


@dataclass(frozen=True)
class RequestContext:
    ip_address: str = LOOPBACK_IP
    user_agent: Optional[str] = None
    referer: Optional[str] = None
    query_params: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def from_request(cls, request) -> "RequestContext":
        headers = request.headers

        # First occurrence of a repeated key wins
        query_params: Dict[str, str] = {}
        for key, value in request.query_params.multi_items():
            query_params.setdefault(key, value)

        return cls(
            ip_address=client_ip(headers),
            user_agent=headers.get("user-agent") or None,
            referer=headers.get("referer") or None,
            query_params=query_params,
        )

    def utm_parameters(self) -> Dict[str, str]:
        return {
            key: self.query_params[key]
            for key in UTM_KEYS
            if self.query_params.get(key)
        }


@dataclass(frozen=True)
class Resolution:
    outcome: RedirectOutcome
    location: str
    link_id: Optional[int] = None


def client_ip(headers: Mapping[str, str]) -> str:
    """First X-Forwarded-For hop, then X-Real-IP, then loopback"""
    raw = headers.get("x-forwarded-for") or headers.get("x-real-ip") or LOOPBACK_IP
    return raw.split(",")[0].strip() or LOOPBACK_IP


def apply_utm_parameters(url: str, utm: Mapping[str, str]) -> str:
    """
    Overlay UTM parameters onto url's query string.

    An existing key is replaced in place (later duplicates dropped), new
    keys are appended, other parameters are untouched. Non-absolute URLs
    are returned verbatim.
    """
    if not utm:
        return url

    parts = urlsplit(url)
    if not parts.scheme or not parts.netloc:
        logger.warning("Skipping UTM overlay for non-absolute URL %r", url)
        return url

    pairs = parse_qsl(parts.query, keep_blank_values=True)
    remaining = dict(utm)
    merged = []
    for key, value in pairs:
        if key in utm:
            if key in remaining:
                merged.append((key, remaining.pop(key)))
            continue
        merged.append((key, value))
    merged.extend(remaining.items())

    return urlunsplit(parts._replace(query=urlencode(merged)))


class RedirectResolver:
    """Turns a short code plus request context into a redirect target"""

    def __init__(
        self,
        link_service: LinkService,
        click_store: ClickStoreStrategy,
        recorder: ClickRecorder,
        pages: Optional[StatusPages] = None,
    ):
        self.link_service = link_service
        self.click_store = click_store
        self.recorder = recorder
        self.pages = pages or StatusPages.from_settings()

    async def resolve(self, short_code: str, context: RequestContext) -> Resolution:
        if not is_valid_short_code(short_code):
            return Resolution(RedirectOutcome.NOT_FOUND, self.pages.not_found)

        try:
            link = await self.link_service.find_active_link_by_code(short_code)

            if link is None:
                return self._resolve_demo(short_code, context)

            if link.is_expired(utc_now()):
                return Resolution(RedirectOutcome.EXPIRED, self.pages.expired, link.id)

            if link.click_limit is not None:
                clicks = await self.click_store.count_clicks(link.id)
                if clicks >= link.click_limit:
                    return Resolution(RedirectOutcome.LIMIT_REACHED, self.pages.limit_reached, link.id)

        except Exception:
            logger.exception("Redirect lookup failed for %s", short_code)
            return Resolution(RedirectOutcome.INTERNAL_ERROR, self.pages.error)

        self.recorder.submit(ClickCandidate(
            link_id=link.id,
            short_code=short_code,
            ip_address=context.ip_address,
            user_agent=context.user_agent,
            referer=context.referer,
        ))

        try:
            destination = apply_utm_parameters(link.original_url, context.utm_parameters())
        except Exception:
            logger.exception("Destination assembly failed for %s", short_code)
            return Resolution(RedirectOutcome.INTERNAL_ERROR, self.pages.error, link.id)

        return Resolution(RedirectOutcome.SUCCESS, destination, link.id)

    def _resolve_demo(self, short_code: str, context: RequestContext) -> Resolution:
        entry = self.link_service.find_demo_by_code(short_code)
        if entry is None:
            return Resolution(RedirectOutcome.NOT_FOUND, self.pages.not_found)

        self.link_service.record_demo_click(short_code)
        destination = apply_utm_parameters(entry.original_url, context.utm_parameters())
        return Resolution(RedirectOutcome.SUCCESS, destination)
