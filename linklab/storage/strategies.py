"""
Click storage strategies using Strategy Pattern.

The click log is append-only. Writes come from detached recording tasks
and reads from the click-limit gate and the stats endpoint, so every
call opens its own session and runs the blocking DB work in a worker
thread to keep the event loop free for other requests.
"""

import asyncio
from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Callable, Dict, List

from sqlalchemy import func
from sqlalchemy.orm import Session

from linklab.models.click import ClickEvent
from linklab.schemas.click import ClickEventData
from linklab.utils import utc_now


class ClickStoreStrategy(ABC):
    """
    Abstract base class for click storage.

    insert_click raises on failure; the recorder decides what a failure means.
    """

    @abstractmethod
    async def insert_click(self, event: ClickEventData) -> int:
        """
        Append one click event.

        Returns:
            The stored row id
        """
        pass

    @abstractmethod
    async def count_clicks(self, link_id: int) -> int:
        """Number of recorded clicks for a link"""
        pass

    @abstractmethod
    async def get_clicks_by_device(self, link_id: int) -> Dict[str, int]:
        pass

    @abstractmethod
    async def get_clicks_by_browser(self, link_id: int) -> Dict[str, int]:
        pass

    @abstractmethod
    async def get_clicks_by_country(self, link_id: int) -> Dict[str, int]:
        pass

    @abstractmethod
    async def get_top_referers(self, link_id: int, limit: int = 10) -> List[Dict]:
        pass

    @abstractmethod
    async def get_clicks_over_time(self, link_id: int, days: int = 7) -> List[Dict]:
        """Daily click counts for the last `days` days"""
        pass


class SqlAlchemyClickStore(ClickStoreStrategy):
    """
    Click log in the main relational database (link_clicks table).

    Shares the database with links so the click-limit gate can count rows
    for a link directly.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    async def insert_click(self, event: ClickEventData) -> int:
        return await asyncio.to_thread(self._insert, event)

    def _insert(self, event: ClickEventData) -> int:
        db = self.session_factory()
        try:
            row = ClickEvent(**event.model_dump())
            db.add(row)
            db.commit()
            return row.id
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    async def count_clicks(self, link_id: int) -> int:
        return await asyncio.to_thread(self._count, link_id)

    def _count(self, link_id: int) -> int:
        db = self.session_factory()
        try:
            return db.query(func.count(ClickEvent.id)).filter(
                ClickEvent.link_id == link_id
            ).scalar() or 0
        finally:
            db.close()

    async def get_clicks_by_device(self, link_id: int) -> Dict[str, int]:
        return await asyncio.to_thread(self._group_by, link_id, ClickEvent.device_type)

    async def get_clicks_by_browser(self, link_id: int) -> Dict[str, int]:
        return await asyncio.to_thread(self._group_by, link_id, ClickEvent.browser)

    async def get_clicks_by_country(self, link_id: int) -> Dict[str, int]:
        return await asyncio.to_thread(self._group_by, link_id, ClickEvent.country)

    def _group_by(self, link_id: int, column) -> Dict[str, int]:
        db = self.session_factory()
        try:
            rows = (
                db.query(column, func.count(ClickEvent.id))
                .filter(ClickEvent.link_id == link_id)
                .group_by(column)
                .all()
            )
        finally:
            db.close()

        results: Dict[str, int] = {}
        for value, count in rows:
            key = value or "unknown"
            results[key] = results.get(key, 0) + count
        return results

    async def get_top_referers(self, link_id: int, limit: int = 10) -> List[Dict]:
        return await asyncio.to_thread(self._top_referers, link_id, limit)

    def _top_referers(self, link_id: int, limit: int) -> List[Dict]:
        db = self.session_factory()
        try:
            count = func.count(ClickEvent.id).label("count")
            rows = (
                db.query(ClickEvent.referer, count)
                .filter(ClickEvent.link_id == link_id, ClickEvent.referer.isnot(None))
                .group_by(ClickEvent.referer)
                .order_by(count.desc())
                .limit(limit)
                .all()
            )
            return [{"referer": referer, "count": n} for referer, n in rows]
        finally:
            db.close()

    async def get_clicks_over_time(self, link_id: int, days: int = 7) -> List[Dict]:
        return await asyncio.to_thread(self._over_time, link_id, days)

    def _over_time(self, link_id: int, days: int) -> List[Dict]:
        start = utc_now() - timedelta(days=days)
        db = self.session_factory()
        try:
            rows = (
                db.query(ClickEvent.clicked_at)
                .filter(ClickEvent.link_id == link_id, ClickEvent.clicked_at >= start)
                .all()
            )
        finally:
            db.close()

        # Bucket in Python: DATE() differs between SQLite and PostgreSQL
        buckets: Dict[str, int] = {}
        for (clicked_at,) in rows:
            day = clicked_at.date().isoformat()
            buckets[day] = buckets.get(day, 0) + 1
        return [{"date": day, "count": buckets[day]} for day in sorted(buckets)]
