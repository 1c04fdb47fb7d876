from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, HttpUrl, PositiveInt, computed_field, field_validator

from linklab.config import settings
from linklab.utils import as_utc, utc_now


class UTMParameters(BaseModel):
    utm_source: Optional[str] = None
    utm_medium: Optional[str] = None
    utm_campaign: Optional[str] = None
    utm_term: Optional[str] = None
    utm_content: Optional[str] = None


class LinkCreate(BaseModel):
    original_url: HttpUrl = Field(..., description="The destination to shorten")
    custom_alias: Optional[str] = Field(None, description="User-chosen short code")
    title: Optional[str] = None
    description: Optional[str] = None
    password: Optional[str] = None
    expiry_date: Optional[datetime] = None
    click_limit: Optional[PositiveInt] = None
    campaign_id: Optional[int] = None
    utm_parameters: Optional[UTMParameters] = None

    # SQLite keeps the wall-clock time and drops the offset
    @field_validator("expiry_date")
    @classmethod
    def expiry_in_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)


class LinkUpdate(BaseModel):
    """Owner-editable fields. short_code is deliberately absent (immutable)."""
    title: Optional[str] = None
    description: Optional[str] = None
    expiry_date: Optional[datetime] = None
    click_limit: Optional[PositiveInt] = None
    is_active: Optional[bool] = None
    campaign_id: Optional[int] = None

    @field_validator("expiry_date")
    @classmethod
    def expiry_in_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)


class LinkResponse(BaseModel):
    """Serializes the SQLAlchemy Link model (from_attributes=True)"""
    id: int
    short_code: str
    custom_alias: Optional[str] = None
    original_url: str
    owner_id: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    favicon_url: Optional[str] = None
    qr_code_url: Optional[str] = None
    is_active: bool
    expiry_date: Optional[datetime] = None
    click_limit: Optional[int] = None
    campaign_id: Optional[int] = None
    utm_parameters: Optional[Dict[str, str]] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @computed_field
    @property
    def short_url(self) -> str:
        return f"{settings.base_url}/{self.short_code}"

    model_config = ConfigDict(from_attributes=True)


class LinkList(BaseModel):
    links: List[LinkResponse]
    page: int
    limit: int
    total: int
    pages: int


class LinkStats(BaseModel):
    short_code: str
    total_clicks: int
    clicks_by_device: Dict[str, int] = {}
    clicks_by_browser: Dict[str, int] = {}
    clicks_by_country: Dict[str, int] = {}
    top_referers: List[Dict] = []
    clicks_over_time: List[Dict] = []
    created_at: Optional[datetime] = None


class LinkSnapshot(BaseModel):
    """
    What the redirect path needs to know about an active link.

    Detached from the ORM session so it can be cached and handed to the
    resolver without lazy loads.
    """
    id: int
    short_code: str
    original_url: str
    expiry_date: Optional[datetime] = None
    click_limit: Optional[int] = None

    model_config = ConfigDict(from_attributes=True, frozen=True)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expiry_date is None:
            return False
        return as_utc(self.expiry_date) < (now or utc_now())
