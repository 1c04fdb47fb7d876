from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String, Text
from sqlalchemy.sql import func

from linklab.database.connection import Base


class Link(Base):
    """
    Short code -> destination mapping plus gating metadata.

    short_code is globally unique (the unique constraint is the only
    allocation lock) and never changes once assigned. Rows are never
    hard-deleted: deactivation flips is_active so the code stays reserved
    and click history keeps its parent.

    owner_id is NULL for anonymous (demo) links until claimed.
    """
    __tablename__ = "links"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    short_code = Column(String(64), unique=True, nullable=False, index=True)
    custom_alias = Column(String(64), unique=True, nullable=True)
    original_url = Column(Text, nullable=False)
    owner_id = Column(String(64), nullable=True, index=True)

    # Gates
    is_active = Column(Boolean, nullable=False, default=True)
    expiry_date = Column(DateTime(timezone=True), nullable=True)
    click_limit = Column(Integer, nullable=True)
    password = Column(String(255), nullable=True)

    # Presentation metadata, filled at creation time
    title = Column(String(512), nullable=True)
    description = Column(Text, nullable=True)
    favicon_url = Column(Text, nullable=True)
    qr_code_url = Column(Text, nullable=True)

    # Attribution
    campaign_id = Column(Integer, nullable=True)
    utm_parameters = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
