"""Tests for CardCatalog."""

import pytest

from cardmaker.domain.catalog import CardCatalog
from cardmaker.domain.errors import CatalogError, StoreError
from cardmaker.domain.models import GlobalSettings, default_template
from cardmaker.infrastructure.database.store import InMemoryCardStore


class BrokenStore(InMemoryCardStore):
    async def set_active(self, slug, is_active):
        raise StoreError("offline")

    async def delete(self, slug):
        raise StoreError("offline")

    async def get_settings(self):
        raise StoreError("offline")

    async def put_settings(self, app_settings):
        raise StoreError("offline")


async def _publish(store, slug, is_active=True):
    tpl = default_template().model_copy(update={"slug": slug, "is_published": True, "is_active": is_active})
    await store.put(slug, tpl)


class TestCatalog:
    """Tests for listing and visibility."""

    @pytest.mark.asyncio
    async def test_list_active_filters_and_sorts(self):
        store = InMemoryCardStore()
        await _publish(store, "zeta")
        await _publish(store, "alpha")
        await _publish(store, "hidden", is_active=False)

        catalog = CardCatalog(store)

        assert [c.slug for c in await catalog.list_active()] == ["alpha", "zeta"]
        assert [c.slug for c in await catalog.list_all()] == ["alpha", "hidden", "zeta"]

    @pytest.mark.asyncio
    async def test_toggle_active(self):
        store = InMemoryCardStore()
        await _publish(store, "eid")
        catalog = CardCatalog(store)
        await catalog.refresh()

        assert await catalog.toggle_active("eid") is False
        assert (await store.get("eid")).is_active is False
        assert catalog.cards[0].is_active is False

    @pytest.mark.asyncio
    async def test_failed_toggle_rolls_back(self):
        store = BrokenStore()
        await _publish(store, "eid")
        catalog = CardCatalog(store)
        await catalog.refresh()

        with pytest.raises(CatalogError):
            await catalog.set_active("eid", False)

        assert catalog.cards[0].is_active is True

    @pytest.mark.asyncio
    async def test_set_active_unknown_card(self):
        with pytest.raises(CatalogError):
            await CardCatalog(InMemoryCardStore()).set_active("missing", True)

    @pytest.mark.asyncio
    async def test_card_removed_elsewhere_rolls_back(self):
        store = InMemoryCardStore()
        await _publish(store, "eid")
        catalog = CardCatalog(store)
        await catalog.refresh()
        await store.delete("eid")

        with pytest.raises(CatalogError) as exc_info:
            await catalog.set_active("eid", False)

        assert exc_info.value.__cause__ is None
        assert catalog.cards[0].is_active is True

    @pytest.mark.asyncio
    async def test_delete(self):
        store = InMemoryCardStore()
        await _publish(store, "eid")
        catalog = CardCatalog(store)
        await catalog.refresh()

        assert await catalog.delete("eid") is True
        assert catalog.cards == []
        assert await catalog.delete("eid") is False

    @pytest.mark.asyncio
    async def test_failed_delete(self):
        with pytest.raises(CatalogError):
            await CardCatalog(BrokenStore()).delete("eid")


class TestGlobalSettings:
    """Tests for settings load and save."""

    @pytest.mark.asyncio
    async def test_defaults_when_missing_or_failing(self):
        assert await CardCatalog(InMemoryCardStore()).load_settings() == GlobalSettings()
        assert await CardCatalog(BrokenStore()).load_settings() == GlobalSettings()

    @pytest.mark.asyncio
    async def test_update_persists(self):
        store = InMemoryCardStore()
        catalog = CardCatalog(store)

        updated = await catalog.update_settings(GlobalSettings(), primary_color="#000000")

        assert updated.primary_color == "#000000"
        assert (await catalog.load_settings()).primary_color == "#000000"

    @pytest.mark.asyncio
    async def test_update_failure_is_raised(self):
        with pytest.raises(CatalogError) as exc_info:
            await CardCatalog(BrokenStore()).update_settings(GlobalSettings(), app_name_en="Cards")
        assert isinstance(exc_info.value.__cause__, StoreError)
