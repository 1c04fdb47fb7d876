"""
Models that flow through the click-recording pipeline.

ClickCandidate is what the resolver captures synchronously from the
request. The recorder enriches it into a ClickEventData off the response
path and appends that to the click store.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from linklab.utils import utc_now


class ClickCandidate(BaseModel):
    link_id: int = Field(..., description="Durable id of the resolved link")
    short_code: str
    clicked_at: datetime = Field(default_factory=utc_now)
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    referer: Optional[str] = None


class UserAgentInfo(BaseModel):
    device_type: Optional[str] = None
    browser: Optional[str] = None
    browser_version: Optional[str] = None
    os: Optional[str] = None
    os_version: Optional[str] = None


class GeoLocation(BaseModel):
    country: Optional[str] = None
    region: Optional[str] = None
    city: Optional[str] = None


class ClickEventData(BaseModel):
    link_id: int
    clicked_at: datetime
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    referer: Optional[str] = None

    device_type: Optional[str] = None
    browser: Optional[str] = None
    browser_version: Optional[str] = None
    os: Optional[str] = None
    os_version: Optional[str] = None

    country: Optional[str] = None
    region: Optional[str] = None
    city: Optional[str] = None

    @classmethod
    def from_candidate(
        cls,
        candidate: ClickCandidate,
        agent: UserAgentInfo,
        geo: Optional[GeoLocation],
    ) -> "ClickEventData":
        return cls(
            link_id=candidate.link_id,
            clicked_at=candidate.clicked_at,
            ip_address=candidate.ip_address,
            user_agent=candidate.user_agent,
            referer=candidate.referer,
            **agent.model_dump(),
            **(geo.model_dump() if geo else {}),
        )
