# cardmaker/domain/catalog.py
import logging
from typing import Any, List, Optional

from cardmaker.domain.errors import CatalogError, StoreError
from cardmaker.domain.models import GlobalSettings, TemplateConfig
from cardmaker.infrastructure.database.store import CardStore

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    formatter = logging.Formatter('%(asctime)s [%(levelname)s] %(message)s', '%Y-%m-%d %H:%M:%S')
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    logger.propagate = False


class CardCatalog:
    """Published cards as seen by the dashboard and the viewer."""

    def __init__(self, store: CardStore):
        self.store = store
        self.cards: List[TemplateConfig] = []

    async def refresh(self) -> List[TemplateConfig]:
        self.cards = sorted(await self.store.list_all(), key=lambda c: c.slug)
        return self.cards

    async def list_all(self) -> List[TemplateConfig]:
        return await self.refresh()

    async def list_active(self) -> List[TemplateConfig]:
        return [c for c in await self.refresh() if c.is_active is not False]

    async def get(self, slug: str) -> Optional[TemplateConfig]:
        return await self.store.get(slug)

    def _set_local(self, slug: str, is_active: bool) -> None:
        self.cards = [c.model_copy(update={"is_active": is_active}) if c.slug == slug else c for c in self.cards]

    async def set_active(self, slug: str, is_active: bool) -> None:
        previous = next((c.is_active for c in self.cards if c.slug == slug), None)
        self._set_local(slug, is_active)
        try:
            found = await self.store.set_active(slug, is_active)
        except StoreError as e:
            logger.error(f"Failed to update visibility of '{slug}': {e}")
            if previous is not None:
                self._set_local(slug, previous)
            raise CatalogError(f"Failed to update visibility of '{slug}'.") from e
        if not found:
            if previous is not None:
                self._set_local(slug, previous)
            raise CatalogError(f"Card '{slug}' not found.")

    async def toggle_active(self, slug: str) -> bool:
        card = next((c for c in self.cards if c.slug == slug), None) or await self.store.get(slug)
        if card is None:
            raise CatalogError(f"Card '{slug}' not found.")
        new_status = not card.is_active
        await self.set_active(slug, new_status)
        return new_status

    async def delete(self, slug: str) -> bool:
        try:
            deleted = await self.store.delete(slug)
        except StoreError as e:
            logger.error(f"Failed to delete '{slug}': {e}")
            raise CatalogError(f"Failed to delete '{slug}'.") from e
        self.cards = [c for c in self.cards if c.slug != slug]
        return deleted

    async def load_settings(self) -> GlobalSettings:
        try:
            return await self.store.get_settings() or GlobalSettings()
        except StoreError as e:
            logger.error(f"Failed to load settings: {e}")
            return GlobalSettings()

    async def update_settings(self, current: GlobalSettings, **updates: Any) -> GlobalSettings:
        updated = GlobalSettings.model_validate({**current.model_dump(), **updates})
        try:
            await self.store.put_settings(updated)
        except StoreError as e:
            logger.error(f"Failed to save settings: {e}")
            raise CatalogError("Failed to save settings.") from e
        return updated
