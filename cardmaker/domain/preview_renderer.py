# cardmaker/domain/preview_renderer.py
"""
Interactive (editor / preview) renderer.

Produces a positioned-box layout at the current preview scale for a browser
client to draw one-to-one, hit-tests pointer events against it, and converts
drag drops back to unscaled layer coordinates. Geometry comes from the same
module the rasterizer uses.
"""
from typing import List, Literal, Mapping, Optional, Tuple

from cardmaker.domain.models import Alignment, CamelModel, TemplateConfig, resolve_text
from cardmaker.infrastructure.imaging.compositor import shape_text
from cardmaker.infrastructure.imaging.fonts import FontBook, FontRegistry, font_requests
from cardmaker.infrastructure.imaging.geometry import (
    LINE_HEIGHT_RATIO,
    SHADOW_OFFSET,
    TEXT_PADDING,
    anchor_x,
    cover_crop,
    fit_scale,
    resolve_canvas_size,
    split_lines,
)

SELECTION_OUTLINE = "2px dashed #6366f1"


class CropBox(CamelModel):
    sx: float
    sy: float
    sw: float
    sh: float


class BackgroundBox(CamelModel):
    url: str
    fit: Literal["cover"] = "cover"
    crop: Optional[CropBox] = None


class LayerBox(CamelModel):
    id: str
    text: str
    left: float
    top: float
    width: float
    height: float
    anchor_x: float
    padding: float
    font_family: str
    font_weight: int
    font_size: float
    line_height: float
    color: str
    opacity: float
    text_shadow: Optional[str] = None
    text_align: Alignment
    direction: Literal["ltr", "rtl"]
    selected: bool = False
    draggable: bool = False
    outline: Optional[str] = None

    def contains(self, px: float, py: float) -> bool:
        return self.left <= px <= self.left + self.width and self.top <= py <= self.top + self.height


class PreviewLayout(CamelModel):
    canvas_width: int
    canvas_height: int
    scale: float
    width: float
    height: float
    language: str
    background: Optional[BackgroundBox] = None
    layers: List[LayerBox]
    selected_layer_id: Optional[str] = None

    def layer_at(self, px: float, py: float) -> Optional[str]:
        # Later layers paint on top and win the hit.
        for box in reversed(self.layers):
            if box.contains(px, py):
                return box.id
        return None


class LayerSelection:
    """Idle <-> Selected(layer_id). Dragging never changes the selection."""

    def __init__(self, selected_id: Optional[str] = None):
        self.selected_id = selected_id

    @property
    def state(self) -> str:
        return "idle" if self.selected_id is None else "selected"

    def select(self, layer_id: Optional[str]) -> Optional[str]:
        self.selected_id = layer_id
        return self.selected_id

    def pointer_down(self, layout: PreviewLayout, px: float, py: float) -> Optional[str]:
        hit = layout.layer_at(px, py)
        if hit is not None:
            self.select(hit)
        return hit

    def layer_deleted(self, layer_id: str) -> None:
        if self.selected_id == layer_id:
            self.selected_id = None


def container_scale(template: TemplateConfig, avail_w: float, avail_h: float, padding: float = 32) -> float:
    canvas_w, canvas_h = resolve_canvas_size(template.dimensions, template.orientation)
    return fit_scale(avail_w - padding, avail_h - padding, canvas_w, canvas_h)


def drop_to_layer_position(drop_x: float, drop_y: float, scale: float) -> Tuple[float, float]:
    """Scaled drop position -> unscaled layer anchor."""
    return drop_x / scale, drop_y / scale


def _measure(book: FontBook, cfg, lines: List[str], rtl: bool) -> float:
    font = book.for_config(cfg)
    widest = 0.0
    for line in lines:
        if not line:
            continue
        shaped, kwargs = shape_text(line, font, rtl)
        widest = max(widest, font.getlength(shaped, **kwargs))
    return widest


def render_preview(
    template: TemplateConfig,
    user_inputs: Optional[Mapping[str, str]] = None,
    scale: float = 1.0,
    language: Optional[str] = None,
    selected_layer_id: Optional[str] = None,
    interactive: bool = False,
    fonts: Optional[FontRegistry] = None,
    background_size: Optional[Tuple[int, int]] = None,
) -> PreviewLayout:
    lang = language or template.card_language
    rtl = lang == "ar"
    canvas_w, canvas_h = resolve_canvas_size(template.dimensions, template.orientation)
    requests = font_requests(template, lang, user_inputs)
    book = fonts.cached_book(requests, scale) if fonts else FontBook(scale)

    background = None
    if template.background_url:
        crop = None
        if background_size:
            rect = cover_crop(background_size[0], background_size[1], canvas_w, canvas_h)
            crop = CropBox(sx=rect.sx, sy=rect.sy, sw=rect.sw, sh=rect.sh)
        background = BackgroundBox(url=template.background_url, crop=crop)

    boxes: List[LayerBox] = []
    for layer in template.layers:
        cfg = layer.config_for(lang)
        text = resolve_text(layer, cfg, user_inputs)
        lines = split_lines(text)
        padding = TEXT_PADDING * scale
        line_height = cfg.font_size * LINE_HEIGHT_RATIO * scale
        selected = interactive and layer.id == selected_layer_id
        boxes.append(LayerBox(
            id=layer.id,
            text=text,
            left=layer.x * scale,
            top=layer.y * scale,
            width=_measure(book, cfg, lines, rtl) + 2 * padding,
            height=len(lines) * line_height + 2 * padding,
            anchor_x=anchor_x(layer.x, cfg.align, canvas_w) * scale,
            padding=padding,
            font_family=cfg.font_family,
            font_weight=cfg.font_weight,
            font_size=cfg.font_size * scale,
            line_height=line_height,
            color=layer.color,
            opacity=layer.opacity,
            text_shadow=f"{SHADOW_OFFSET}px {SHADOW_OFFSET}px {layer.shadow_blur:g}px rgba(0,0,0,0.5)" if layer.shadow else None,
            text_align=cfg.align,
            direction="rtl" if rtl else "ltr",
            selected=selected,
            draggable=interactive,
            outline=SELECTION_OUTLINE if selected else None,
        ))

    return PreviewLayout(
        canvas_width=canvas_w,
        canvas_height=canvas_h,
        scale=scale,
        width=canvas_w * scale,
        height=canvas_h * scale,
        language=lang,
        background=background,
        layers=boxes,
        selected_layer_id=selected_layer_id if interactive else None,
    )
