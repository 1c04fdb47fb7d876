from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from linklab.utils import utc_now


class DemoLinkEntry(BaseModel):
    """
    Process-local stand-in for a Link created without an owner.

    Lost on restart. clicks is a coarse in-memory counter, not a
    replacement for the durable click log.
    """

    short_code: str
    original_url: str
    title: Optional[str] = None
    qr_code_url: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)
    clicks: int = 0
