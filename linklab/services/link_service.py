import asyncio
import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from linklab.cache.strategies import CacheStrategy
from linklab.config import settings
from linklab.demo.models import DemoLinkEntry
from linklab.demo.registry import DemoRegistryStrategy, InMemoryDemoRegistry
from linklab.exceptions import AliasConflictError, ShortCodeExhaustedError
from linklab.models.link import Link
from linklab.schemas.demo import ClaimResult, DemoLinkResponse
from linklab.schemas.link import LinkCreate, LinkSnapshot, LinkStats, LinkUpdate
from linklab.services.page_assets import (
    PageMetadata,
    PageMetadataFetcher,
    default_metadata,
    render_qr_code,
)
from linklab.services.short_code_strategies import (
    RandomShortCodeStrategy,
    ShortCodeStrategy,
    validate_custom_alias,
)
from linklab.storage.strategies import ClickStoreStrategy


logger = logging.getLogger(__name__)


class LinkService:
    """
    Link Store operations: creation, lookup, claiming and owner management.

    Collaborators are injected (see linklab.dependencies) so tests can
    swap any of them. DB calls are sync inside async methods; cache and
    scraping are the awaited parts.

    Uniqueness of short codes is never pre-checked against the database.
    The insert is attempted and a unique-constraint violation means the
    code is taken.
    """

    def __init__(
        self,
        db: Session,
        cache: Optional[CacheStrategy] = None,
        demo_registry: Optional[DemoRegistryStrategy] = None,
        click_store: Optional[ClickStoreStrategy] = None,
        metadata_fetcher: Optional[PageMetadataFetcher] = None,
        short_code_strategy: Optional[ShortCodeStrategy] = None,
        max_retries: int = settings.max_retries,
        demo_durable_writes: bool = settings.demo_durable_writes,
    ):
        self.db = db
        self.cache = cache
        self.demo_registry = demo_registry if demo_registry is not None else InMemoryDemoRegistry()
        self.click_store = click_store
        self.metadata_fetcher = metadata_fetcher
        self.short_code_strategy = short_code_strategy or RandomShortCodeStrategy(
            length=settings.short_code_length
        )
        self.max_retries = max_retries
        self.demo_durable_writes = demo_durable_writes

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_link(self, data: LinkCreate, owner_id: Optional[str]) -> Link:
        """
        Create a link with a custom alias or a random code.

        Raises:
            InvalidAliasError: alias fails validation
            AliasConflictError: alias already taken (durable store or demo registry)
            ShortCodeExhaustedError: random codes collided max_retries times
        """
        original_url = str(data.original_url)
        metadata = await self._page_metadata(original_url, data.title, data.description)

        fields = dict(
            original_url=original_url,
            owner_id=owner_id,
            title=data.title or metadata.title,
            description=data.description or metadata.description,
            favicon_url=metadata.favicon_url,
            password=data.password,
            expiry_date=data.expiry_date,
            click_limit=data.click_limit,
            campaign_id=data.campaign_id,
            utm_parameters=(
                data.utm_parameters.model_dump(exclude_none=True)
                if data.utm_parameters else None
            ),
        )

        if data.custom_alias is not None:
            return self._create_with_alias(data.custom_alias, fields)

        return self._create_with_random_code(fields)

    def _create_with_alias(self, alias: str, fields: Dict[str, Any]) -> Link:
        alias = validate_custom_alias(alias, settings.custom_alias_max_length)

        if self.demo_registry.contains(alias):
            raise AliasConflictError(alias)

        link = Link(
            short_code=alias,
            custom_alias=alias,
            qr_code_url=render_qr_code(self._short_url(alias)),
            **fields,
        )
        if not self._insert(link):
            logger.info("Custom alias %s already taken", alias)
            raise AliasConflictError(alias)

        logger.info("Created link %s -> %s", link.short_code, link.original_url)
        return link

    def _create_with_random_code(self, fields: Dict[str, Any]) -> Link:
        for attempt in range(1, self.max_retries + 1):
            code = self.short_code_strategy.generate()

            if self.demo_registry.contains(code):
                logger.info("Short code %s held by demo registry (attempt %d/%d)",
                            code, attempt, self.max_retries)
                continue

            link = Link(
                short_code=code,
                qr_code_url=render_qr_code(self._short_url(code)),
                **fields,
            )
            if self._insert(link):
                logger.info("Created link %s -> %s", link.short_code, link.original_url)
                return link

            logger.info("Short code collision on %s (attempt %d/%d)",
                        code, attempt, self.max_retries)

        logger.error("Gave up allocating a short code after %d attempts", self.max_retries)
        raise ShortCodeExhaustedError(self.max_retries)

    def _insert(self, link: Link) -> bool:
        """Commit a new link; False when a unique constraint rejects it"""
        self.db.add(link)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            return False
        self.db.refresh(link)
        return True

    async def create_demo_link(self, original_url: str) -> DemoLinkResponse:
        """
        Create an anonymous link.

        Written through to the Link Store with a NULL owner so it can be
        claimed later. When durable writes are disabled or the database
        write fails, the link is held in the process-local demo registry
        instead (lost on restart).
        """
        original_url = str(original_url)
        metadata = await self._page_metadata(original_url)

        if self.demo_durable_writes:
            try:
                link = self._create_with_random_code(
                    dict(original_url=original_url, owner_id=None, title=metadata.title)
                )
                return DemoLinkResponse(
                    short_code=link.short_code,
                    short_url=self._short_url(link.short_code),
                    original_url=link.original_url,
                    title=link.title,
                    qr_code_url=link.qr_code_url,
                    durable=True,
                )
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.warning(
                    "Durable write for anonymous link failed (%s), using demo registry", e
                )

        return self._register_demo(original_url, metadata.title)

    def _register_demo(self, original_url: str, title: Optional[str]) -> DemoLinkResponse:
        store_reachable = True
        for attempt in range(1, self.max_retries + 1):
            code = self.short_code_strategy.generate()

            # A code must never live in both stores
            if store_reachable:
                try:
                    taken = self.db.query(Link.id).filter(Link.short_code == code).first() is not None
                except SQLAlchemyError as e:
                    self.db.rollback()
                    logger.warning(
                        "Link store unreachable (%s), checking demo code %s against the registry only",
                        e, code,
                    )
                    store_reachable = False
                    taken = False

                if taken:
                    logger.info("Demo code %s exists in link store (attempt %d/%d)",
                                code, attempt, self.max_retries)
                    continue

            entry = DemoLinkEntry(
                short_code=code,
                original_url=original_url,
                title=title,
                qr_code_url=render_qr_code(self._short_url(code)),
            )
            if self.demo_registry.put(code, entry):
                logger.info("Registered in-memory demo link %s -> %s", code, original_url)
                return DemoLinkResponse(
                    short_code=code,
                    short_url=self._short_url(code),
                    original_url=original_url,
                    title=title,
                    qr_code_url=entry.qr_code_url,
                    durable=False,
                )

        raise ShortCodeExhaustedError(self.max_retries)

    async def _page_metadata(
        self,
        url: str,
        title: Optional[str] = None,
        description: Optional[str] = None,
    ) -> PageMetadata:
        if self.metadata_fetcher is None or (title and description):
            return default_metadata(url)
        return await asyncio.to_thread(self.metadata_fetcher.fetch, url)

    # ------------------------------------------------------------------
    # Redirect-path lookups
    # ------------------------------------------------------------------

    async def find_active_link_by_code(self, short_code: str) -> Optional[LinkSnapshot]:
        """
        Cache-aside lookup of an active link.

        Inactive links are never returned (they resolve as not found).
        """
        cache_key = self._cache_key(short_code)

        if self.cache:
            cached = await self.cache.get(cache_key)
            if cached:
                try:
                    return LinkSnapshot.model_validate_json(cached)
                except ValueError:
                    logger.warning("Discarding unreadable cache entry %s", cache_key)
                    await self.cache.delete(cache_key)

        link = self.db.query(Link).filter(
            Link.short_code == short_code,
            Link.is_active == True  # noqa: E712
        ).first()

        if not link:
            return None

        snapshot = LinkSnapshot.model_validate(link)

        if self.cache:
            await self.cache.set(cache_key, snapshot.model_dump_json(), ttl=settings.cache_ttl)

        return snapshot

    def find_demo_by_code(self, short_code: str) -> Optional[DemoLinkEntry]:
        return self.demo_registry.get(short_code)

    def record_demo_click(self, short_code: str) -> int:
        return self.demo_registry.increment_clicks(short_code)

    # ------------------------------------------------------------------
    # Ownership
    # ------------------------------------------------------------------

    def claim_unowned_link(self, short_code: str, owner_id: str) -> ClaimResult:
        """
        Assign an anonymous link to `owner_id`.

        The conditional UPDATE only touches rows whose owner is still NULL,
        so a link that already has an owner is left alone. A registry-only
        demo link is promoted into a durable owned link.
        """
        updated = self.db.query(Link).filter(
            Link.short_code == short_code,
            Link.owner_id.is_(None),
        ).update({Link.owner_id: owner_id}, synchronize_session=False)
        self.db.commit()

        if updated:
            logger.info("Link %s claimed by %s", short_code, owner_id)
            return ClaimResult.CLAIMED

        if self.db.query(Link.id).filter(Link.short_code == short_code).first():
            return ClaimResult.ALREADY_OWNED

        entry = self.demo_registry.pop(short_code)
        if entry is None:
            return ClaimResult.NOT_FOUND

        link = Link(
            short_code=entry.short_code,
            original_url=entry.original_url,
            owner_id=owner_id,
            title=entry.title,
            qr_code_url=entry.qr_code_url,
        )
        if not self._insert(link):
            logger.warning("Demo link %s was taken in the link store during promotion", short_code)
            return ClaimResult.ALREADY_OWNED

        logger.info("Demo link %s promoted to durable link for %s", short_code, owner_id)
        return ClaimResult.CLAIMED

    # ------------------------------------------------------------------
    # Owner management
    # ------------------------------------------------------------------

    def get_link(
        self,
        short_code: str,
        owner_id: str,
        include_inactive: bool = False,
    ) -> Optional[Link]:
        query = self.db.query(Link).filter(
            Link.short_code == short_code,
            Link.owner_id == owner_id,
        )
        if not include_inactive:
            query = query.filter(Link.is_active == True)  # noqa: E712
        return query.first()

    def list_links(
        self,
        owner_id: str,
        page: int = 1,
        limit: int = 10,
        search: Optional[str] = None,
        campaign_id: Optional[int] = None,
    ) -> Tuple[List[Link], int]:
        """
        Active links of one owner, newest first.

        search is a case-insensitive substring match on title, original_url
        or short_code; campaign_id narrows to one campaign.
        """
        query = self.db.query(Link).filter(
            Link.owner_id == owner_id,
            Link.is_active == True  # noqa: E712
        )
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(
                Link.title.ilike(pattern),
                Link.original_url.ilike(pattern),
                Link.short_code.ilike(pattern),
            ))
        if campaign_id is not None:
            query = query.filter(Link.campaign_id == campaign_id)

        total = query.count()
        links = (
            query.order_by(Link.created_at.desc(), Link.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return links, total

    async def update_link(self, short_code: str, owner_id: str, data: LinkUpdate) -> Optional[Link]:
        link = self.get_link(short_code, owner_id, include_inactive=True)
        if not link:
            return None

        for field, value in data.model_dump(exclude_unset=True).items():
            setattr(link, field, value)
        self.db.commit()
        self.db.refresh(link)

        await self._invalidate(short_code)
        return link

    async def deactivate_link(self, short_code: str, owner_id: str) -> bool:
        """Soft delete: the code stays reserved and its clicks are kept"""
        link = self.get_link(short_code, owner_id)
        if not link:
            return False

        link.is_active = False
        self.db.commit()

        await self._invalidate(short_code)
        return True

    async def get_link_stats(self, short_code: str, owner_id: str) -> Optional[LinkStats]:
        link = self.get_link(short_code, owner_id, include_inactive=True)
        if not link:
            return None
        if self.click_store is None:
            raise RuntimeError("LinkService was created without a click store")

        return LinkStats(
            short_code=link.short_code,
            total_clicks=await self.click_store.count_clicks(link.id),
            clicks_by_device=await self.click_store.get_clicks_by_device(link.id),
            clicks_by_browser=await self.click_store.get_clicks_by_browser(link.id),
            clicks_by_country=await self.click_store.get_clicks_by_country(link.id),
            top_referers=await self.click_store.get_top_referers(link.id),
            clicks_over_time=await self.click_store.get_clicks_over_time(link.id),
            created_at=link.created_at,
        )

    # ------------------------------------------------------------------

    async def _invalidate(self, short_code: str) -> None:
        if self.cache:
            await self.cache.delete(self._cache_key(short_code))

    @staticmethod
    def _cache_key(short_code: str) -> str:
        return f"link:{short_code}"

    @staticmethod
    def _short_url(short_code: str) -> str:
        return f"{settings.base_url}/{short_code}"
