from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, HttpUrl


class DemoShortenRequest(BaseModel):
    original_url: HttpUrl = Field(..., description="The destination to shorten")


class DemoLinkResponse(BaseModel):
    short_code: str
    short_url: str
    original_url: str
    title: Optional[str] = None
    qr_code_url: Optional[str] = None
    is_demo: bool = True
    durable: bool = Field(..., description="False when only held in process memory")


class ClaimResult(str, Enum):
    CLAIMED = "claimed"
    ALREADY_OWNED = "already_owned"
    NOT_FOUND = "not_found"


class ClaimRequest(BaseModel):
    short_code: str


class ClaimResponse(BaseModel):
    short_code: str
    status: ClaimResult
