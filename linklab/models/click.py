from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.sql import func

from linklab.database.connection import Base


class ClickEvent(Base):
    """
    One row per redirect that passed every gate.

    Append-only: written by the click recorder, never updated or deleted
    here. is_unique is left NULL for the aggregation layer to fill in.
    """
    __tablename__ = "link_clicks"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    link_id = Column(Integer, ForeignKey("links.id"), nullable=False, index=True)
    clicked_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)

    # Raw request context
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(Text, nullable=True)
    referer = Column(Text, nullable=True)

    # Derived from the user agent
    device_type = Column(String(32), nullable=True)
    browser = Column(String(64), nullable=True)
    browser_version = Column(String(64), nullable=True)
    os = Column(String(64), nullable=True)
    os_version = Column(String(64), nullable=True)

    # Derived from the IP (best-effort, NULL when lookup failed)
    country = Column(String(128), nullable=True)
    region = Column(String(128), nullable=True)
    city = Column(String(128), nullable=True)

    is_unique = Column(Boolean, nullable=True)
