"""
FastAPI dependencies for dependency injection.

Process-wide collaborators (cache, demo registry, click store, geo
resolver, click recorder) are singletons via @lru_cache. Request-scoped
services are assembled per request on top of them. Tests override any of
these through app.dependency_overrides.
"""

from functools import lru_cache
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from linklab.cache.factory import CacheFactory, CacheBackend
from linklab.cache.strategies import CacheStrategy
from linklab.config import settings
from linklab.database.connection import SessionLocal, get_db
from linklab.demo.registry import DemoRegistryStrategy, InMemoryDemoRegistry
from linklab.services.click_recorder import ClickRecorder
from linklab.services.enrichment import GeoResolver, IpApiGeoResolver, NullGeoResolver
from linklab.services.link_service import LinkService
from linklab.services.page_assets import PageMetadataFetcher
from linklab.services.redirect_resolver import RedirectResolver
from linklab.storage.strategies import ClickStoreStrategy, SqlAlchemyClickStore


@lru_cache()
def get_cache() -> CacheStrategy:
    backend = CacheBackend(settings.cache_backend)
    return CacheFactory.create(backend)


@lru_cache()
def get_demo_registry() -> DemoRegistryStrategy:
    """One registry per process; its lifetime is the process uptime"""
    return InMemoryDemoRegistry()


@lru_cache()
def get_click_store() -> ClickStoreStrategy:
    return SqlAlchemyClickStore(SessionLocal)


@lru_cache()
def get_geo_resolver() -> GeoResolver:
    if settings.geo_backend == "null":
        return NullGeoResolver()
    if settings.geo_backend == "ipapi":
        return IpApiGeoResolver(
            url_template=settings.geo_lookup_url,
            timeout=settings.geo_lookup_timeout,
        )
    raise ValueError(f"Unknown geo backend: {settings.geo_backend}")


@lru_cache()
def get_metadata_fetcher() -> Optional[PageMetadataFetcher]:
    if not settings.fetch_page_metadata:
        return None
    return PageMetadataFetcher(
        timeout=settings.metadata_fetch_timeout,
        user_agent=settings.metadata_user_agent,
    )


@lru_cache()
def get_click_recorder() -> ClickRecorder:
    """Singleton so in-flight recordings are tracked in one place and drained on shutdown"""
    return ClickRecorder(store=get_click_store(), geo_resolver=get_geo_resolver())


def get_link_service(
    db: Session = Depends(get_db),
    cache: CacheStrategy = Depends(get_cache),
    demo_registry: DemoRegistryStrategy = Depends(get_demo_registry),
    click_store: ClickStoreStrategy = Depends(get_click_store),
    metadata_fetcher: Optional[PageMetadataFetcher] = Depends(get_metadata_fetcher),
) -> LinkService:
    return LinkService(
        db=db,
        cache=cache,
        demo_registry=demo_registry,
        click_store=click_store,
        metadata_fetcher=metadata_fetcher,
    )


def get_redirect_resolver(
    link_service: LinkService = Depends(get_link_service),
    click_store: ClickStoreStrategy = Depends(get_click_store),
    recorder: ClickRecorder = Depends(get_click_recorder),
) -> RedirectResolver:
    return RedirectResolver(
        link_service=link_service,
        click_store=click_store,
        recorder=recorder,
    )


def get_owner_id(x_owner_id: Optional[str] = Header(None)) -> str:
    """
    Authenticated account id, set by the session layer in front of this
    service. Routes that manage links require it.
    """
    if not x_owner_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required"
        )
    return x_owner_id
