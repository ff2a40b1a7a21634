# cardmaker/infrastructure/database/draft_cache.py
import json
import logging
import os
from typing import Any, Optional

import aiofiles
from pydantic import ValidationError

from cardmaker.config.settings import settings
from cardmaker.domain.models import Language, TemplateConfig, default_template, migrate_template

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    formatter = logging.Formatter('%(asctime)s [%(levelname)s] %(message)s', '%Y-%m-%d %H:%M:%S')
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    logger.propagate = False

DRAFT_FILE = "draft.json"
PUBLISHED_FILE = "published.json"
EDITOR_FILE = "editor.json"


class DraftCache:
    """Local working copies: the draft, the last published snapshot and the admin UI language."""

    def __init__(self, directory: Optional[str] = None):
        self.directory = directory or settings.DRAFT_CACHE_DIR

    def _path(self, name: str) -> str:
        return os.path.join(self.directory, name)

    async def _read_json(self, name: str) -> Optional[Any]:
        path = self._path(name)
        if not os.path.isfile(path):
            return None
        try:
            async with aiofiles.open(path, "r", encoding="utf-8") as f:
                return json.loads(await f.read())
        except (OSError, ValueError) as e:
            logger.error(f"Failed to read '{path}': {e}")
            return None

    async def _write_json(self, name: str, data: Any) -> None:
        os.makedirs(self.directory, exist_ok=True)
        path = self._path(name)
        tmp_path = f"{path}.tmp"
        async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
            await f.write(json.dumps(data, ensure_ascii=False, indent=2))
        os.replace(tmp_path, path)

    async def load_draft(self) -> TemplateConfig:
        raw = await self._read_json(DRAFT_FILE)
        if raw is None:
            return default_template()
        try:
            return migrate_template(raw)
        except ValidationError as e:
            logger.error(f"Failed to parse draft template, resetting to default: {e}")
            return default_template()

    async def save_draft(self, template: TemplateConfig) -> None:
        await self._write_json(DRAFT_FILE, template.to_json())

    async def load_published(self) -> Optional[TemplateConfig]:
        raw = await self._read_json(PUBLISHED_FILE)
        if raw is None:
            return None
        try:
            return migrate_template(raw)
        except ValidationError as e:
            logger.warning(f"Ignoring unreadable published cache: {e}")
            return None

    async def save_published(self, template: TemplateConfig) -> None:
        await self._write_json(PUBLISHED_FILE, template.to_json())

    async def load_language(self) -> Language:
        raw = await self._read_json(EDITOR_FILE)
        lang = raw.get("language") if isinstance(raw, dict) else None
        return lang if lang in ("en", "ar") else "en"

    async def save_language(self, lang: Language) -> None:
        await self._write_json(EDITOR_FILE, {"language": lang})
