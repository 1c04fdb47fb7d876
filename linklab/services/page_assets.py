"""
Creation-time presentation assets: page metadata and QR codes.

Both are optional decorations on a Link. A slow or broken destination
site must never fail link creation, so every failure falls back to
defaults.
"""

import base64
import io
import logging
import re
from typing import Optional
from urllib.parse import urljoin, urlsplit

import qrcode
import requests
from pydantic import BaseModel
from qrcode.image.svg import SvgPathImage


logger = logging.getLogger(__name__)

_TITLE_RE = re.compile(r"<title[^>]*>([^<]+)</title>", re.IGNORECASE)
_DESCRIPTION_RE = re.compile(
    r"<meta[^>]*name=[\"']description[\"'][^>]*content=[\"']([^\"']*)[\"'][^>]*>",
    re.IGNORECASE,
)
_ICON_RE = re.compile(
    r"<link[^>]*rel=[\"'](?:shortcut )?icon[\"'][^>]*href=[\"']([^\"']*)[\"'][^>]*>",
    re.IGNORECASE,
)


class PageMetadata(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    favicon_url: Optional[str] = None


def default_metadata(url: str) -> PageMetadata:
    parts = urlsplit(url)
    return PageMetadata(
        title=parts.hostname,
        favicon_url=f"{parts.scheme}://{parts.netloc}/favicon.ico" if parts.netloc else None,
    )


class PageMetadataFetcher:
    """Scrapes title, description and favicon from the destination page"""

    def __init__(
        self,
        timeout: float = 5.0,
        user_agent: str = "LinkLab URL Shortener Bot",
        session: Optional[requests.Session] = None,
    ):
        self.timeout = timeout
        self.user_agent = user_agent
        self.session = session or requests.Session()

    def fetch(self, url: str) -> PageMetadata:
        fallback = default_metadata(url)
        try:
            response = self.session.get(
                url,
                headers={"User-Agent": self.user_agent},
                timeout=self.timeout,
            )
            html = response.text
        except Exception as e:
            logger.warning("Failed to fetch page metadata for %s: %s", url, e)
            return fallback

        title = _TITLE_RE.search(html)
        description = _DESCRIPTION_RE.search(html)
        icon = _ICON_RE.search(html)

        return PageMetadata(
            title=title.group(1).strip() if title else fallback.title,
            description=description.group(1).strip() if description else None,
            favicon_url=urljoin(url, icon.group(1)) if icon else fallback.favicon_url,
        )


def render_qr_code(data: str) -> Optional[str]:
    """Encode `data` as an SVG QR code and return it as a data URL"""
    try:
        image = qrcode.make(data, image_factory=SvgPathImage, box_size=10, border=2)
        buffer = io.BytesIO()
        image.save(buffer)
    except Exception as e:
        logger.warning("QR code generation failed for %s: %s", data, e)
        return None

    encoded = base64.b64encode(buffer.getvalue()).decode("ascii")
    return f"data:image/svg+xml;base64,{encoded}"
