"""
Click recorder.

The resolver hands over a ClickCandidate and returns its redirect
immediately. Enrichment and the durable append run in a detached asyncio
task; whatever happens there is logged and never reaches the response.
"""

import asyncio
import logging
from typing import Callable, Optional, Set

from linklab.schemas.click import ClickCandidate, ClickEventData, UserAgentInfo
from linklab.services.enrichment import GeoResolver, NullGeoResolver, parse_user_agent
from linklab.storage.strategies import ClickStoreStrategy


logger = logging.getLogger(__name__)


class ClickRecorder:
    """
    Fire-and-forget appender for click events.

    Pending tasks are referenced until they finish (the event loop only
    keeps weak references) and can be awaited with drain() on shutdown.
    """

    def __init__(
        self,
        store: ClickStoreStrategy,
        geo_resolver: Optional[GeoResolver] = None,
        user_agent_parser: Callable[[Optional[str]], UserAgentInfo] = parse_user_agent,
    ):
        self.store = store
        self.geo_resolver = geo_resolver or NullGeoResolver()
        self.user_agent_parser = user_agent_parser
        self._pending: Set[asyncio.Task] = set()

    def submit(self, candidate: ClickCandidate) -> Optional[asyncio.Task]:
        """
        Schedule recording without waiting for it.

        Must be called from a running event loop. Never raises.
        """
        try:
            task = asyncio.get_running_loop().create_task(self.record(candidate))
        except Exception:
            logger.exception(
                "Could not dispatch click recording for link %s: %s",
                candidate.link_id, candidate.model_dump_json(),
            )
            return None

        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def record(self, candidate: ClickCandidate) -> bool:
        """
        Enrich and append one click.

        Returns:
            True if the event was stored, False if it was dropped (logged)
        """
        event = None
        try:
            event = await self.build_event(candidate)
            await self.store.insert_click(event)
            return True
        except asyncio.CancelledError:
            logger.warning("Click recording cancelled for link %s", candidate.link_id)
            raise
        except Exception:
            payload = event.model_dump_json() if event else candidate.model_dump_json()
            logger.exception(
                "Failed to record click for link %s: %s", candidate.link_id, payload
            )
            return False

    async def build_event(self, candidate: ClickCandidate) -> ClickEventData:
        try:
            agent = self.user_agent_parser(candidate.user_agent)
        except Exception as e:
            logger.debug("User-agent enrichment failed for link %s: %s", candidate.link_id, e)
            agent = UserAgentInfo()

        try:
            geo = await self.geo_resolver.resolve(candidate.ip_address)
        except Exception as e:
            logger.warning("Geo enrichment failed for link %s: %s", candidate.link_id, e)
            geo = None

        return ClickEventData.from_candidate(candidate, agent, geo)

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait for every in-flight recording to finish"""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
