# cardmaker/domain/models.py
"""
Serializable description of a greeting card template.

Field names are snake_case in Python and camelCase on the wire
(`defaultText`, `cardLanguage`, ...) so stored documents keep the shape the
editor and viewer exchange.
"""
import re
from typing import Any, Dict, List, Literal, Mapping, NamedTuple, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

Orientation = Literal["portrait", "landscape"]
Alignment = Literal["left", "center", "right"]
Language = Literal["en", "ar"]

LANGUAGES = ("en", "ar")
MIN_SIDE = 100
MAX_SIDE = 8000
CUSTOM_LABEL = "Custom"
DEFAULT_SLUG = "my-card"
SLUG_MAX_LENGTH = 60
# Taken by fixed routes under /cards.
RESERVED_SLUGS = frozenset({"all"})


class FontOption(NamedTuple):
    label: str
    value: str


FONTS_EN: List[FontOption] = [
    FontOption("Karbon (Default)", "Karbon, Inter, sans-serif"),
    FontOption("Inter", "Inter, sans-serif"),
    FontOption("Georgia", "Georgia, serif"),
    FontOption("Playfair Display", '"Playfair Display", serif'),
    FontOption("Montserrat", "Montserrat, sans-serif"),
    FontOption("Roboto", "Roboto, sans-serif"),
]

FONTS_AR: List[FontOption] = [
    FontOption("Luma (الافتراضي)", "Luma, serif"),
    FontOption("Amiri", "Amiri, serif"),
    FontOption("Cairo", "Cairo, sans-serif"),
    FontOption("Tajawal", "Tajawal, sans-serif"),
    FontOption("Noto Sans Arabic", '"Noto Sans Arabic", sans-serif'),
]


def default_font(lang: str) -> str:
    return (FONTS_AR if lang == "ar" else FONTS_EN)[0].value


_WHITESPACE_RE = re.compile(r"\s+")
_SLUG_STRIP_RE = re.compile(r"[^a-z0-9\u0600-\u06ff-]")
_HYPHENS_RE = re.compile(r"-+")


def to_slug(s: str) -> str:
    """Convert any string to a URL-safe slug (ASCII, Arabic letters and hyphens)."""
    slug = _WHITESPACE_RE.sub("-", (s or "").strip().lower())
    slug = _SLUG_STRIP_RE.sub("", slug)
    slug = _HYPHENS_RE.sub("-", slug)
    return slug[:SLUG_MAX_LENGTH] or DEFAULT_SLUG


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class PosterDimensions(CamelModel):
    # Orientation-agnostic long/short side magnitudes, not on-screen width/height.
    width: int
    height: int
    dpi: int = 72
    label: str = CUSTOM_LABEL

    @field_validator("width", "height")
    @classmethod
    def _clamp_side(cls, v: int) -> int:
        return max(MIN_SIDE, min(MAX_SIDE, v))

    @property
    def is_custom(self) -> bool:
        return self.label == CUSTOM_LABEL


PRESET_DIMENSIONS: List[PosterDimensions] = [
    PosterDimensions(label="Instagram Post", width=1080, height=1080, dpi=72),
    PosterDimensions(label="LinkedIn Post", width=1200, height=627, dpi=72),
    PosterDimensions(label="TV / 16:9", width=1920, height=1080, dpi=72),
    PosterDimensions(label="Story", width=1080, height=1920, dpi=72),
]


class LayerLangConfig(CamelModel):
    label: str
    default_text: str
    font_family: str
    font_weight: int = 400
    font_size: int = 48
    align: Alignment = "center"


class TextLayer(CamelModel):
    id: str
    x: float
    y: float
    color: str = "#000000"
    opacity: float = Field(default=1.0, ge=0.0, le=1.0)
    shadow: bool = False
    shadow_blur: float = 0
    en: LayerLangConfig
    ar: LayerLangConfig

    def config_for(self, lang: str) -> LayerLangConfig:
        # English is the structural fallback for any language.
        return (getattr(self, lang) if lang in LANGUAGES else None) or self.en


class LegacyLayer(CamelModel):
    """Pre-bilingual layer shape: typography lives flat on the layer."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    id: str
    x: float = 0
    y: float = 0
    color: str = "#000000"
    opacity: float = 1.0
    shadow: bool = False
    shadow_blur: float = 0
    label: Optional[str] = None
    label_ar: Optional[str] = None
    default_text: Optional[str] = None
    font_family: Optional[str] = None
    font_weight: Optional[int] = None
    font_size: Optional[int] = None
    align: Optional[Alignment] = None

    def to_current(self) -> TextLayer:
        weight = self.font_weight or 400
        size = self.font_size or 48
        align = self.align or "center"
        return TextLayer(
            id=self.id,
            x=self.x,
            y=self.y,
            color=self.color,
            opacity=self.opacity,
            shadow=self.shadow,
            shadow_blur=self.shadow_blur,
            en=LayerLangConfig(
                label=self.label or "Text",
                default_text=self.default_text or "Text",
                font_family=self.font_family or default_font("en"),
                font_weight=weight,
                font_size=size,
                align=align,
            ),
            ar=LayerLangConfig(
                label=self.label_ar or "نص",
                default_text=self.default_text or "نص",
                font_family=default_font("ar"),
                font_weight=weight,
                font_size=size,
                align=align,
            ),
        )


AnyLayer = Union[TextLayer, LegacyLayer]


def decode_layer(raw: Union[Mapping[str, Any], TextLayer], index: int = 0) -> AnyLayer:
    """Classify a stored layer as current (both language blocks) or legacy."""
    if isinstance(raw, TextLayer):
        return raw
    data = dict(raw)
    data.setdefault("id", f"layer-{index}")
    if data.get("en") and data.get("ar"):
        return TextLayer.model_validate(data)
    return LegacyLayer.model_validate(data)


def migrate_layer(layer: AnyLayer) -> TextLayer:
    if isinstance(layer, LegacyLayer):
        return layer.to_current()
    return layer


class TemplateConfig(CamelModel):
    id: str
    slug: str = DEFAULT_SLUG
    card_language: Language = "en"
    background_url: Optional[str] = None
    header_url: Optional[str] = None
    dimensions: PosterDimensions = Field(default_factory=lambda: PRESET_DIMENSIONS[0].model_copy())
    orientation: Orientation = "portrait"
    layers: List[TextLayer] = Field(default_factory=list)
    is_published: bool = False
    is_active: bool = True
    last_published_at: Optional[str] = None

    @field_validator("slug")
    @classmethod
    def _normalise_slug(cls, v: str) -> str:
        return to_slug(v)

    @model_validator(mode="after")
    def _unique_layer_ids(self) -> "TemplateConfig":
        seen = set()
        for layer in self.layers:
            if layer.id in seen:
                raise ValueError(f"Duplicate layer id '{layer.id}'")
            seen.add(layer.id)
        return self

    def find_layer(self, layer_id: str) -> Optional[TextLayer]:
        return next((l for l in self.layers if l.id == layer_id), None)


DEFAULT_TEMPLATE = TemplateConfig(
    id="default",
    slug=DEFAULT_SLUG,
    card_language="en",
    dimensions=PosterDimensions(label="Instagram Post", width=1080, height=1080, dpi=72),
    orientation="portrait",
    layers=[
        TextLayer(
            id="layer-name", x=440, y=480, color="#000000",
            en=LayerLangConfig(label="Name", default_text="Your Name", font_family=default_font("en"), font_weight=700, font_size=48),
            ar=LayerLangConfig(label="الاسم", default_text="اسمك", font_family=default_font("ar"), font_weight=700, font_size=48),
        ),
        TextLayer(
            id="layer-job", x=450, y=560, color="#333333",
            en=LayerLangConfig(label="Job Title", default_text="Job Title", font_family=default_font("en"), font_weight=400, font_size=32),
            ar=LayerLangConfig(label="المسمى الوظيفي", default_text="المسمى الوظيفي", font_family=default_font("ar"), font_weight=400, font_size=32),
        ),
    ],
)


def default_template() -> TemplateConfig:
    return DEFAULT_TEMPLATE.model_copy(deep=True)


def migrate_template(raw: Union[Mapping[str, Any], TemplateConfig, None]) -> TemplateConfig:
    """
    Bring any stored template to the current schema.

    Idempotent and total: current templates come back unchanged, legacy layers
    get both language blocks synthesized, and a document without layers is
    replaced by the default template.
    """
    if isinstance(raw, TemplateConfig):
        return raw
    if not raw or raw.get("layers") is None:
        return default_template()
    data = dict(raw)
    data["layers"] = [migrate_layer(decode_layer(l, i)) for i, l in enumerate(raw["layers"])]
    return TemplateConfig.model_validate(data)


def resolve_text(layer: TextLayer, cfg: LayerLangConfig, user_inputs: Optional[Mapping[str, str]]) -> str:
    """User input when non-empty, otherwise the language's default text."""
    return (user_inputs or {}).get(layer.id) or cfg.default_text


class GlobalSettings(CamelModel):
    app_name_en: str = "GC Maker"
    app_name_ar: str = "صانع البطاقات"
    primary_color: str = "#1c3258"
    accent_color: str = "#3faf6e"
