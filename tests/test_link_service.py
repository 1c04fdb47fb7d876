"""
Tests for LinkService: creation, collisions, demo links and claiming.
"""
import asyncio
import threading

from datetime import timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

from linklab.cache.strategies import InMemoryCache
from linklab.database.connection import SessionLocal
from linklab.demo.models import DemoLinkEntry
from linklab.exceptions import AliasConflictError, InvalidAliasError, ShortCodeExhaustedError
from linklab.models.link import Link
from linklab.schemas.demo import ClaimResult
from linklab.schemas.link import LinkCreate, LinkUpdate
from linklab.services.link_service import LinkService
from linklab.services.short_code_strategies import ShortCodeStrategy
from linklab.utils import utc_now


class ScriptedStrategy(ShortCodeStrategy):
    """Hands out a fixed sequence of codes"""

    def __init__(self, codes):
        self._codes = iter(codes)
        self.calls = 0

    def generate(self) -> str:
        self.calls += 1
        return next(self._codes)


def create(service, url="https://www.example.com/", owner_id="owner-1", **fields):
    return asyncio.run(service.create_link(LinkCreate(original_url=url, **fields), owner_id))


class TestCreateLink:
    """Test link creation"""

    def test_random_code(self, db_session, demo_registry):
        service = LinkService(db_session, demo_registry=demo_registry)

        link = create(service)

        assert len(link.short_code) == 9
        assert link.original_url == "https://www.example.com/"
        assert link.owner_id == "owner-1"
        assert link.is_active is True
        assert link.custom_alias is None
        assert link.qr_code_url.startswith("data:image/svg+xml;base64,")

    def test_same_destination_gets_distinct_codes(self, db_session, demo_registry):
        service = LinkService(db_session, demo_registry=demo_registry)

        first = create(service, "https://www.test.com/")
        second = create(service, "https://www.test.com/")

        assert first.short_code != second.short_code

    def test_stores_gating_and_attribution_fields(self, db_session, demo_registry, yesterday):
        service = LinkService(db_session, demo_registry=demo_registry)

        link = create(
            service,
            title="Launch",
            click_limit=10,
            expiry_date=yesterday,
            campaign_id=7,
            utm_parameters={"utm_source": "newsletter"},
        )

        assert link.title == "Launch"
        assert link.click_limit == 10
        assert link.expiry_date is not None
        assert link.campaign_id == 7
        assert link.utm_parameters == {"utm_source": "newsletter"}

    def test_title_defaults_to_hostname_without_fetcher(self, db_session, demo_registry):
        service = LinkService(db_session, demo_registry=demo_registry)

        link = create(service, "https://docs.example.org/guide")

        assert link.title == "docs.example.org"
        assert link.favicon_url == "https://docs.example.org/favicon.ico"

    def test_custom_alias(self, db_session, demo_registry):
        service = LinkService(db_session, demo_registry=demo_registry)

        link = create(service, custom_alias="promo")

        assert link.short_code == "promo"
        assert link.custom_alias == "promo"

    def test_custom_alias_conflict(self, db_session, demo_registry):
        service = LinkService(db_session, demo_registry=demo_registry)
        create(service, custom_alias="promo")

        with pytest.raises(AliasConflictError):
            create(service, "https://other.example/", custom_alias="promo")

        assert db_session.query(Link).filter(Link.short_code == "promo").count() == 1

    def test_custom_alias_conflicts_with_demo_registry(self, db_session, demo_registry):
        demo_registry.put("promo", DemoLinkEntry(short_code="promo", original_url="https://a.example/"))
        service = LinkService(db_session, demo_registry=demo_registry)

        with pytest.raises(AliasConflictError):
            create(service, custom_alias="promo")

    @pytest.mark.parametrize("alias", ["", "bad alias", "no_underscores"])
    def test_invalid_custom_alias(self, db_session, demo_registry, alias):
        service = LinkService(db_session, demo_registry=demo_registry)

        with pytest.raises(InvalidAliasError):
            create(service, custom_alias=alias)

    def test_retries_after_insert_conflict(self, db_session, demo_registry, link_factory):
        link_factory("taken0001")
        strategy = ScriptedStrategy(["taken0001", "taken0001", "fresh0001"])
        service = LinkService(db_session, demo_registry=demo_registry, short_code_strategy=strategy)

        link = create(service)

        assert link.short_code == "fresh0001"
        assert strategy.calls == 3

    def test_gives_up_after_max_retries(self, db_session, demo_registry, link_factory):
        link_factory("taken0001")
        strategy = ScriptedStrategy(["taken0001"] * 3)
        service = LinkService(
            db_session,
            demo_registry=demo_registry,
            short_code_strategy=strategy,
            max_retries=3,
        )

        with pytest.raises(ShortCodeExhaustedError):
            create(service)

        assert strategy.calls == 3

    def test_skips_codes_held_by_demo_registry(self, db_session, demo_registry):
        demo_registry.put("demo00001", DemoLinkEntry(short_code="demo00001", original_url="https://a.example/"))
        strategy = ScriptedStrategy(["demo00001", "fresh0001"])
        service = LinkService(db_session, demo_registry=demo_registry, short_code_strategy=strategy)

        link = create(service)

        assert link.short_code == "fresh0001"

    def test_concurrent_custom_alias_exactly_one_wins(self, db_session, demo_registry):
        barrier = threading.Barrier(2)
        outcomes = []
        lock = threading.Lock()

        def attempt(url):
            db = SessionLocal()
            service = LinkService(db, demo_registry=demo_registry)
            try:
                barrier.wait()
                link = asyncio.run(service.create_link(
                    LinkCreate(original_url=url, custom_alias="promo"), "owner-1"
                ))
                result = ("created", link.original_url)
            except AliasConflictError:
                result = ("conflict", url)
            finally:
                db.close()
            with lock:
                outcomes.append(result)

        threads = [
            threading.Thread(target=attempt, args=(url,))
            for url in ("https://one.example/", "https://two.example/")
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert sorted(kind for kind, _ in outcomes) == ["conflict", "created"]
        assert db_session.query(Link).filter(Link.short_code == "promo").count() == 1


class TestDemoLinks:
    """Test anonymous link creation"""

    def test_written_through_with_null_owner(self, db_session, demo_registry):
        service = LinkService(db_session, demo_registry=demo_registry)

        result = asyncio.run(service.create_demo_link("https://www.example.com/"))

        assert result.durable is True
        assert result.is_demo is True
        assert result.short_url.endswith("/" + result.short_code)
        link = db_session.query(Link).filter(Link.short_code == result.short_code).one()
        assert link.owner_id is None
        assert len(demo_registry) == 0

    def test_registry_only_when_durable_writes_disabled(self, db_session, demo_registry):
        service = LinkService(db_session, demo_registry=demo_registry, demo_durable_writes=False)

        result = asyncio.run(service.create_demo_link("https://www.example.com/"))

        assert result.durable is False
        assert db_session.query(Link).count() == 0
        entry = demo_registry.get(result.short_code)
        assert entry.original_url == "https://www.example.com/"
        assert entry.clicks == 0

    def test_registry_fallback_when_durable_write_fails(self, db_session, demo_registry, monkeypatch):
        service = LinkService(db_session, demo_registry=demo_registry)

        def broken_insert(link):
            raise OperationalError("INSERT", {}, Exception("database unavailable"))

        monkeypatch.setattr(service, "_insert", broken_insert)

        result = asyncio.run(service.create_demo_link("https://www.example.com/"))

        assert result.durable is False
        assert demo_registry.contains(result.short_code)

    def test_registry_fallback_when_database_unreachable(self, demo_registry, tmp_path):
        dead_engine = create_engine(f"sqlite:///{tmp_path / 'missing-dir' / 'linklab.db'}")
        db = sessionmaker(bind=dead_engine)()
        service = LinkService(db, demo_registry=demo_registry)

        try:
            result = asyncio.run(service.create_demo_link("https://www.example.com/"))
        finally:
            db.close()
            dead_engine.dispose()

        assert result.durable is False
        assert result.original_url == "https://www.example.com/"
        assert demo_registry.get(result.short_code).original_url == "https://www.example.com/"

    def test_registry_code_avoids_durable_codes(self, db_session, demo_registry, link_factory):
        link_factory("taken0001")
        strategy = ScriptedStrategy(["taken0001", "fresh0001"])
        service = LinkService(
            db_session,
            demo_registry=demo_registry,
            short_code_strategy=strategy,
            demo_durable_writes=False,
        )

        result = asyncio.run(service.create_demo_link("https://www.example.com/"))

        assert result.short_code == "fresh0001"
        assert not demo_registry.contains("taken0001")


class TestClaim:
    """Test ownership claims on anonymous links"""

    def test_claims_unowned_link(self, db_session, demo_registry, link_factory):
        link_factory("anon00001", owner_id=None)
        service = LinkService(db_session, demo_registry=demo_registry)

        result = service.claim_unowned_link("anon00001", "owner-2")

        assert result == ClaimResult.CLAIMED
        db_session.expire_all()
        assert db_session.query(Link).filter_by(short_code="anon00001").one().owner_id == "owner-2"

    def test_owned_link_is_not_reassigned(self, db_session, demo_registry, link_factory):
        link_factory("mine00001", owner_id="owner-1")
        service = LinkService(db_session, demo_registry=demo_registry)

        result = service.claim_unowned_link("mine00001", "intruder")

        assert result == ClaimResult.ALREADY_OWNED
        db_session.expire_all()
        assert db_session.query(Link).filter_by(short_code="mine00001").one().owner_id == "owner-1"

    def test_unknown_code(self, db_session, demo_registry):
        service = LinkService(db_session, demo_registry=demo_registry)

        assert service.claim_unowned_link("zzzzzz", "owner-1") == ClaimResult.NOT_FOUND

    def test_promotes_registry_only_link(self, db_session, demo_registry):
        demo_registry.put("memo00001", DemoLinkEntry(
            short_code="memo00001", original_url="https://a.example/", title="A"
        ))
        service = LinkService(db_session, demo_registry=demo_registry)

        result = service.claim_unowned_link("memo00001", "owner-1")

        assert result == ClaimResult.CLAIMED
        assert not demo_registry.contains("memo00001")
        link = db_session.query(Link).filter_by(short_code="memo00001").one()
        assert link.owner_id == "owner-1"
        assert link.original_url == "https://a.example/"


class TestLookupAndManagement:
    """Test lookups, cache-aside and soft delete"""

    def test_inactive_link_is_not_found(self, db_session, demo_registry, link_factory):
        link_factory("gone00001", is_active=False)
        service = LinkService(db_session, demo_registry=demo_registry)

        assert asyncio.run(service.find_active_link_by_code("gone00001")) is None

    def test_lookup_populates_cache(self, db_session, demo_registry, link_factory):
        link_factory("cache0001", click_limit=5)
        cache = InMemoryCache()
        service = LinkService(db_session, cache=cache, demo_registry=demo_registry)

        snapshot = asyncio.run(service.find_active_link_by_code("cache0001"))
        cached = asyncio.run(cache.get("link:cache0001"))

        assert snapshot.click_limit == 5
        assert cached is not None
        assert snapshot.model_dump_json() == cached

    def test_deactivate_invalidates_cache(self, db_session, demo_registry, link_factory):
        link_factory("soft00001", owner_id="owner-1")
        cache = InMemoryCache()
        service = LinkService(db_session, cache=cache, demo_registry=demo_registry)
        asyncio.run(service.find_active_link_by_code("soft00001"))

        assert asyncio.run(service.deactivate_link("soft00001", "owner-1")) is True

        assert asyncio.run(cache.get("link:soft00001")) is None
        assert asyncio.run(service.find_active_link_by_code("soft00001")) is None
        # Row is kept so the code stays reserved
        assert db_session.query(Link).filter_by(short_code="soft00001").count() == 1

    def test_deactivate_requires_owner(self, db_session, demo_registry, link_factory):
        link_factory("soft00002", owner_id="owner-1")
        service = LinkService(db_session, demo_registry=demo_registry)

        assert asyncio.run(service.deactivate_link("soft00002", "owner-2")) is False

    def test_update_can_reactivate(self, db_session, demo_registry, link_factory):
        link_factory("back00001", owner_id="owner-1", is_active=False)
        service = LinkService(db_session, demo_registry=demo_registry)

        link = asyncio.run(service.update_link("back00001", "owner-1", LinkUpdate(is_active=True, click_limit=3)))

        assert link.is_active is True
        assert link.click_limit == 3
        assert link.short_code == "back00001"

    def test_list_links_is_owner_scoped(self, db_session, demo_registry, link_factory):
        for i in range(3):
            link_factory(f"mine0000{i}", owner_id="owner-1")
        link_factory("other0001", owner_id="owner-2")
        service = LinkService(db_session, demo_registry=demo_registry)

        links, total = service.list_links("owner-1", page=1, limit=2)

        assert total == 3
        assert len(links) == 2
        assert all(link.owner_id == "owner-1" for link in links)

    def test_list_links_search_and_campaign_filters(self, db_session, demo_registry, link_factory):
        link_factory("spring01", "https://shop.example/sale", owner_id="owner-1", title="Spring Sale", campaign_id=1)
        link_factory("docs0001", "https://docs.example/", owner_id="owner-1", title="Docs", campaign_id=2)
        link_factory("SALEcode", "https://blog.example/", owner_id="owner-1", campaign_id=2)
        link_factory("other001", "https://shop.example/", owner_id="owner-2", title="Sale")
        service = LinkService(db_session, demo_registry=demo_registry)

        by_search, total = service.list_links("owner-1", search="sale")
        assert total == 2
        assert {link.short_code for link in by_search} == {"spring01", "SALEcode"}

        by_url, _ = service.list_links("owner-1", search="DOCS.EXAMPLE")
        assert [link.short_code for link in by_url] == ["docs0001"]

        by_campaign, total = service.list_links("owner-1", campaign_id=2)
        assert total == 2
        assert {link.short_code for link in by_campaign} == {"docs0001", "SALEcode"}

        both, total = service.list_links("owner-1", search="sale", campaign_id=1)
        assert total == 1
        assert both[0].short_code == "spring01"


class TestExpiryTimezones:
    """Expiry dates with an offset are stored as UTC"""

    def test_offset_is_normalised_on_input(self):
        data = LinkCreate(original_url="https://www.example.com/", expiry_date="2030-01-01T05:00:00+05:00")

        assert data.expiry_date.utcoffset() == timedelta(0)
        assert data.expiry_date.hour == 0

    def test_naive_input_is_read_as_utc(self):
        data = LinkUpdate(expiry_date="2030-01-01T05:00:00")

        assert data.expiry_date.tzinfo is not None
        assert data.expiry_date.hour == 5

    def test_past_expiry_in_positive_offset_is_expired(self, db_session, demo_registry):
        plus_five = timezone(timedelta(hours=5))
        two_hours_ago = (utc_now() - timedelta(hours=2)).astimezone(plus_five)
        service = LinkService(db_session, demo_registry=demo_registry)

        link = create(service, custom_alias="tz-past", expiry_date=two_hours_ago)
        db_session.expire_all()
        snapshot = asyncio.run(service.find_active_link_by_code(link.short_code))

        assert snapshot.is_expired() is True

    def test_future_expiry_in_negative_offset_is_not_expired(self, db_session, demo_registry):
        minus_five = timezone(timedelta(hours=-5))
        in_two_hours = (utc_now() + timedelta(hours=2)).astimezone(minus_five)
        service = LinkService(db_session, demo_registry=demo_registry)

        link = create(service, custom_alias="tz-future", expiry_date=in_two_hours)
        db_session.expire_all()
        snapshot = asyncio.run(service.find_active_link_by_code(link.short_code))

        assert snapshot.is_expired() is False
