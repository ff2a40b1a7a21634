# cardmaker/infrastructure/database/store.py
"""
Card persistence keyed by slug. Every read goes through migrate_template so
callers never see the legacy layer shape.
"""
import copy
from typing import Any, Dict, List, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from cardmaker.domain.errors import StoreError
from cardmaker.domain.models import GlobalSettings, TemplateConfig, migrate_template
from cardmaker.infrastructure.database.models import AppSettings, Card

GLOBAL_SETTINGS_KEY = "global"


class CardStore(Protocol):
    async def get(self, slug: str) -> Optional[TemplateConfig]: ...

    async def put(self, slug: str, template: TemplateConfig) -> None: ...

    async def list_all(self) -> List[TemplateConfig]: ...

    async def delete(self, slug: str) -> bool: ...

    async def set_active(self, slug: str, is_active: bool) -> bool: ...

    async def get_settings(self) -> Optional[GlobalSettings]: ...

    async def put_settings(self, app_settings: GlobalSettings) -> None: ...


class InMemoryCardStore:
    """JSON snapshots in a dict; stored values never alias caller objects."""

    def __init__(self):
        self._cards: Dict[str, Dict[str, Any]] = {}
        self._settings: Optional[Dict[str, Any]] = None

    async def get(self, slug: str) -> Optional[TemplateConfig]:
        raw = self._cards.get(slug)
        return migrate_template(copy.deepcopy(raw)) if raw is not None else None

    async def put(self, slug: str, template: TemplateConfig) -> None:
        self._cards[slug] = template.to_json()

    async def put_raw(self, slug: str, raw: Dict[str, Any]) -> None:
        self._cards[slug] = copy.deepcopy(raw)

    async def list_all(self) -> List[TemplateConfig]:
        return [migrate_template(copy.deepcopy(self._cards[slug])) for slug in sorted(self._cards)]

    async def delete(self, slug: str) -> bool:
        return self._cards.pop(slug, None) is not None

    async def set_active(self, slug: str, is_active: bool) -> bool:
        raw = self._cards.get(slug)
        if raw is None:
            return False
        raw["isActive"] = is_active
        return True

    async def get_settings(self) -> Optional[GlobalSettings]:
        return GlobalSettings.model_validate(self._settings) if self._settings is not None else None

    async def put_settings(self, app_settings: GlobalSettings) -> None:
        self._settings = app_settings.to_json()


class SqlCardStore:
    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    async def get(self, slug: str) -> Optional[TemplateConfig]:
        try:
            async with self.session_factory() as session:
                row = await session.get(Card, slug)
                return migrate_template(row.data) if row is not None else None
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to read card '{slug}': {e}") from e

    async def put(self, slug: str, template: TemplateConfig) -> None:
        try:
            async with self.session_factory() as session:
                await session.merge(Card(slug=slug, data=template.to_json(), is_active=template.is_active))
                await session.commit()
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to save card '{slug}': {e}") from e

    async def put_raw(self, slug: str, raw: Dict[str, Any]) -> None:
        try:
            async with self.session_factory() as session:
                await session.merge(Card(slug=slug, data=raw, is_active=raw.get("isActive", True) is not False))
                await session.commit()
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to save card '{slug}': {e}") from e

    async def list_all(self) -> List[TemplateConfig]:
        try:
            async with self.session_factory() as session:
                result = await session.execute(select(Card).order_by(Card.slug))
                return [migrate_template(row.data) for row in result.scalars()]
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to list cards: {e}") from e

    async def delete(self, slug: str) -> bool:
        try:
            async with self.session_factory() as session:
                row = await session.get(Card, slug)
                if row is None:
                    return False
                await session.delete(row)
                await session.commit()
                return True
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to delete card '{slug}': {e}") from e

    async def set_active(self, slug: str, is_active: bool) -> bool:
        try:
            async with self.session_factory() as session:
                row = await session.get(Card, slug)
                if row is None:
                    return False
                row.data = {**row.data, "isActive": is_active}
                row.is_active = is_active
                await session.commit()
                return True
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to update card '{slug}': {e}") from e

    async def get_settings(self) -> Optional[GlobalSettings]:
        try:
            async with self.session_factory() as session:
                row = await session.get(AppSettings, GLOBAL_SETTINGS_KEY)
                return GlobalSettings.model_validate(row.data) if row is not None else None
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to read settings: {e}") from e

    async def put_settings(self, app_settings: GlobalSettings) -> None:
        try:
            async with self.session_factory() as session:
                await session.merge(AppSettings(key=GLOBAL_SETTINGS_KEY, data=app_settings.to_json()))
                await session.commit()
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to save settings: {e}") from e
