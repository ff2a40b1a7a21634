# cardmaker/domain/editor.py
import logging
import time
from datetime import datetime, timezone
from typing import Any, NamedTuple, Optional

from cardmaker.domain.errors import LayerNotFoundError, PublishError
from cardmaker.domain.models import (
    CUSTOM_LABEL,
    Language,
    LayerLangConfig,
    Orientation,
    PosterDimensions,
    TemplateConfig,
    TextLayer,
    default_font,
    default_template,
    to_slug,
)
from cardmaker.domain.preview_renderer import LayerSelection, PreviewLayout, drop_to_layer_position
from cardmaker.infrastructure.database.draft_cache import DraftCache
from cardmaker.infrastructure.database.store import CardStore
from cardmaker.infrastructure.imaging.geometry import resolve_canvas_size

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    formatter = logging.Formatter('%(asctime)s [%(levelname)s] %(message)s', '%Y-%m-%d %H:%M:%S')
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    logger.propagate = False

DEFAULT_CUSTOM_SIDE = 1080


class PublishResult(NamedTuple):
    template: TemplateConfig
    share_path: str


def _iso_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _parse_side(value: Any) -> int:
    try:
        side = int(value)
    except (TypeError, ValueError):
        side = 0
    return side or DEFAULT_CUSTOM_SIDE


class CardEditor:
    """
    Owns the draft template. Layer geometry is only ever written through
    update_layer; drag_end converts preview coordinates before calling it.
    Publishing copies the draft into an independent, slug-keyed snapshot.
    """

    def __init__(
        self,
        store: CardStore,
        cache: Optional[DraftCache] = None,
        draft: Optional[TemplateConfig] = None,
        published: Optional[TemplateConfig] = None,
        language: Language = "en",
    ):
        self.store = store
        self.cache = cache
        self.draft = draft or default_template()
        self.published = published
        self.language: Language = language
        self.selection = LayerSelection()
        self.share_path: Optional[str] = f"/{published.slug}" if published else None
        self.publishing = False

    @classmethod
    async def open(cls, store: CardStore, cache: DraftCache) -> "CardEditor":
        return cls(
            store,
            cache=cache,
            draft=await cache.load_draft(),
            published=await cache.load_published(),
            language=await cache.load_language(),
        )

    async def save(self) -> None:
        if self.cache is not None:
            await self.cache.save_draft(self.draft)
            await self.cache.save_language(self.language)

    # --- template-level edits ---

    def _replace(self, **updates: Any) -> TemplateConfig:
        self.draft = TemplateConfig.model_validate({**self.draft.model_dump(), **updates})
        return self.draft

    def set_dimensions(self, dimensions: PosterDimensions) -> TemplateConfig:
        return self._replace(dimensions=dimensions.model_copy())

    def set_custom_size(self, width: Any, height: Any) -> TemplateConfig:
        # Out-of-range sides are clamped by PosterDimensions.
        dims = PosterDimensions(label=CUSTOM_LABEL, width=_parse_side(width), height=_parse_side(height), dpi=72)
        return self._replace(dimensions=dims)

    def set_orientation(self, orientation: Orientation) -> TemplateConfig:
        return self._replace(orientation=orientation)

    def set_card_language(self, lang: Language) -> TemplateConfig:
        return self._replace(card_language=lang)

    def set_background(self, url: Optional[str]) -> TemplateConfig:
        return self._replace(background_url=url)

    def set_header(self, url: Optional[str]) -> TemplateConfig:
        return self._replace(header_url=url)

    def set_slug(self, text: str) -> TemplateConfig:
        return self._replace(slug=to_slug(text))

    def toggle_language(self) -> Language:
        """Admin UI language only; the card's authored language is set_card_language."""
        self.language = "ar" if self.language == "en" else "en"
        return self.language

    def reset(self) -> TemplateConfig:
        self.draft = default_template()
        self.selection.select(None)
        return self.draft

    # --- layers ---

    def _require_layer(self, layer_id: str) -> TextLayer:
        layer = self.draft.find_layer(layer_id)
        if layer is None:
            raise LayerNotFoundError(layer_id)
        return layer

    def _replace_layer(self, new_layer: TextLayer) -> TemplateConfig:
        layers = [new_layer if l.id == new_layer.id else l for l in self.draft.layers]
        return self._replace(layers=layers)

    def update_layer(self, layer_id: str, **updates: Any) -> TemplateConfig:
        """The single entry point that mutates a layer (geometry included)."""
        layer = self._require_layer(layer_id)
        updates.pop("id", None)
        new_layer = TextLayer.model_validate({**layer.model_dump(), **updates})
        return self._replace_layer(new_layer)

    def update_layer_language(self, layer_id: str, lang: Language, **updates: Any) -> TemplateConfig:
        layer = self._require_layer(layer_id)
        cfg = LayerLangConfig.model_validate({**layer.config_for(lang).model_dump(), **updates})
        return self.update_layer(layer_id, **{lang: cfg})

    def drag_end(self, layer_id: str, drop_x: float, drop_y: float, scale: float) -> TemplateConfig:
        """Drops land inside the canvas; positions past an edge are pinned to it."""
        x, y = drop_to_layer_position(drop_x, drop_y, scale)
        canvas_w, canvas_h = resolve_canvas_size(self.draft.dimensions, self.draft.orientation)
        x = min(max(x, 0), canvas_w)
        y = min(max(y, 0), canvas_h)
        return self.update_layer(layer_id, x=x, y=y)

    def select_layer(self, layer_id: Optional[str]) -> Optional[str]:
        if layer_id is not None:
            self._require_layer(layer_id)
        return self.selection.select(layer_id)

    def pointer_down(self, layout: PreviewLayout, px: float, py: float) -> Optional[str]:
        return self.selection.pointer_down(layout, px, py)

    def _new_layer_id(self) -> str:
        stamp = int(time.time() * 1000)
        while self.draft.find_layer(f"layer-{stamp}") is not None:
            stamp += 1
        return f"layer-{stamp}"

    def add_layer(self) -> TextLayer:
        canvas_w, canvas_h = resolve_canvas_size(self.draft.dimensions, self.draft.orientation)
        layer = TextLayer(
            id=self._new_layer_id(),
            x=round(canvas_w / 2) - 60,
            y=round(canvas_h / 2) - 16,
            color="#ffffff",
            en=LayerLangConfig(label="New Text", default_text="New Text", font_family=default_font("en")),
            ar=LayerLangConfig(label="نص جديد", default_text="نص جديد", font_family=default_font("ar")),
        )
        self._replace(layers=[*self.draft.layers, layer])
        self.selection.select(layer.id)
        return layer

    def remove_layer(self, layer_id: str) -> TemplateConfig:
        self._require_layer(layer_id)
        self._replace(layers=[l for l in self.draft.layers if l.id != layer_id])
        self.selection.layer_deleted(layer_id)
        return self.draft

    def move_layer(self, layer_id: str, index: int) -> TemplateConfig:
        """Reorder paint order; later layers draw on top."""
        layer = self._require_layer(layer_id)
        layers = [l for l in self.draft.layers if l.id != layer_id]
        index = max(0, min(index, len(layers)))
        layers.insert(index, layer)
        return self._replace(layers=layers)

    # --- publishing ---

    async def publish(self) -> PublishResult:
        slug = to_slug(self.draft.slug or self.draft.id)
        snapshot = self.draft.model_copy(
            deep=True,
            update={"slug": slug, "is_published": True, "last_published_at": _iso_now()},
        )
        self.publishing = True
        try:
            await self.store.put(slug, snapshot)
        except Exception as e:
            logger.error(f"Publish of '{slug}' failed: {e}")
            raise PublishError("Failed to publish. Check store permissions.") from e
        finally:
            self.publishing = False

        self.published = snapshot
        self.share_path = f"/{slug}"
        if self.cache is not None:
            await self.cache.save_published(snapshot)
        logger.info(f"Published '{slug}' at {snapshot.last_published_at}.")
        return PublishResult(snapshot, self.share_path)
