# cardmaker/infrastructure/imaging/compositor.py
import io
import logging
from typing import Mapping, Optional, Tuple

import arabic_reshaper
from bidi.algorithm import get_display
from PIL import Image, ImageColor, ImageDraw, ImageFilter, ImageFont, UnidentifiedImageError

from cardmaker.config.settings import settings
from cardmaker.domain.errors import DrawingSurfaceError
from cardmaker.domain.models import LayerLangConfig, TemplateConfig, TextLayer, resolve_text
from cardmaker.infrastructure.imaging.fonts import FontBook
from cardmaker.infrastructure.imaging.geometry import (
    SHADOW_COLOR,
    SHADOW_OFFSET,
    anchor_x,
    cover_crop,
    line_top,
    resolve_canvas_size,
    split_lines,
)

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    formatter = logging.Formatter('%(asctime)s [%(levelname)s] %(message)s', '%Y-%m-%d %H:%M:%S')
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    logger.propagate = False

WHITE = (255, 255, 255, 255)
BLACK = (0, 0, 0, 255)
ANCHORS = {"left": "la", "center": "ma", "right": "ra"}


def surface_size(canvas_w: int, canvas_h: int, pixel_ratio: float) -> Tuple[int, int]:
    return (round(canvas_w * pixel_ratio), round(canvas_h * pixel_ratio))


def check_surface(canvas_w: int, canvas_h: int, pixel_ratio: float) -> Tuple[int, int]:
    size = surface_size(canvas_w, canvas_h, pixel_ratio)
    if size[0] <= 0 or size[1] <= 0:
        raise DrawingSurfaceError(f"Drawing surface {size[0]}x{size[1]} is empty")
    if size[0] * size[1] > settings.MAX_EXPORT_PIXELS:
        raise DrawingSurfaceError(
            f"Drawing surface {size[0]}x{size[1]} exceeds {settings.MAX_EXPORT_PIXELS} pixels"
        )
    return size


def allocate_surface(canvas_w: int, canvas_h: int, pixel_ratio: float) -> Image.Image:
    size = check_surface(canvas_w, canvas_h, pixel_ratio)
    try:
        return Image.new("RGBA", size, WHITE)
    except (MemoryError, ValueError) as e:
        raise DrawingSurfaceError(f"Cannot allocate drawing surface {size[0]}x{size[1]}: {e}") from e


def image_size(data: bytes) -> Optional[Tuple[int, int]]:
    """Intrinsic size without decoding pixels; None when the bytes are not an image."""
    try:
        with Image.open(io.BytesIO(data)) as src:
            return src.size
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError):
        return None


def draw_background(surface: Image.Image, data: bytes, canvas_w: int, canvas_h: int) -> bool:
    """
    Cover-fit the image onto the whole surface. The crop is taken against the
    canvas in template units, not the rounded surface, so it matches the preview.
    Returns False if the image cannot be decoded.
    """
    try:
        with Image.open(io.BytesIO(data)) as src:
            src = src.convert("RGBA")
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
        logger.warning(f"Background image could not be decoded, keeping white background: {e}")
        return False

    crop = cover_crop(src.width, src.height, canvas_w, canvas_h)
    fitted = src.resize(surface.size, Image.Resampling.LANCZOS, box=crop.box)
    surface.alpha_composite(fitted)
    src.close()
    fitted.close()
    return True


def parse_color(color: str) -> Tuple[int, int, int, int]:
    try:
        return ImageColor.getcolor(color, "RGBA")
    except ValueError:
        logger.warning(f"Invalid text color '{color}', drawing in black.")
        return BLACK


def shape_text(text: str, font, rtl: bool) -> Tuple[str, dict]:
    if not rtl:
        return text, {}
    if getattr(font, "layout_engine", None) == ImageFont.Layout.RAQM:
        return text, {"direction": "rtl", "language": "ar"}
    # Without libraqm, shape Arabic and reorder to visual order ourselves.
    return get_display(arabic_reshaper.reshape(text)), {}


def _draw_lines(draw: ImageDraw.ImageDraw, lines, font, fill, anchor, x: float, tops, rtl: bool, offset: float = 0) -> None:
    for line, top in zip(lines, tops):
        if not line:
            continue
        shaped, kwargs = shape_text(line, font, rtl)
        draw.text((x + offset, top + offset), shaped, font=font, fill=fill, anchor=anchor, **kwargs)


def draw_text_layer(
    surface: Image.Image,
    layer: TextLayer,
    cfg: LayerLangConfig,
    text: str,
    font,
    canvas_w: int,
    pixel_ratio: float,
    rtl: bool,
) -> None:
    anchor = ANCHORS.get(cfg.align, "la")
    x = anchor_x(layer.x, cfg.align, canvas_w) * pixel_ratio
    lines = split_lines(text)
    tops = [line_top(layer.y, i, cfg.font_size) * pixel_ratio for i in range(len(lines))]

    overlay = Image.new("RGBA", surface.size, (0, 0, 0, 0))
    if layer.shadow:
        shadow = Image.new("RGBA", surface.size, (0, 0, 0, 0))
        _draw_lines(ImageDraw.Draw(shadow), lines, font, SHADOW_COLOR, anchor, x, tops, rtl, offset=SHADOW_OFFSET)
        if layer.shadow_blur > 0:
            shadow = shadow.filter(ImageFilter.GaussianBlur(radius=layer.shadow_blur / 2))
        overlay.alpha_composite(shadow)

    text_img = Image.new("RGBA", surface.size, (0, 0, 0, 0))
    _draw_lines(ImageDraw.Draw(text_img), lines, font, parse_color(layer.color), anchor, x, tops, rtl)
    overlay.alpha_composite(text_img)

    if layer.opacity < 1:
        alpha = overlay.getchannel("A").point(lambda a: round(a * layer.opacity))
        overlay.putalpha(alpha)
    surface.alpha_composite(overlay)


def encode_jpeg(surface: Image.Image, quality: float) -> bytes:
    buf = io.BytesIO()
    surface.convert("RGB").save(buf, format="JPEG", quality=max(1, round(quality * 100)), optimize=True)
    return buf.getvalue()


def compose_card(
    template: TemplateConfig,
    user_inputs: Optional[Mapping[str, str]],
    lang: str,
    pixel_ratio: float,
    quality: float,
    background: Optional[bytes],
    book: FontBook,
) -> bytes:
    """Draw background and text layers in array order, then encode to JPEG."""
    canvas_w, canvas_h = resolve_canvas_size(template.dimensions, template.orientation)
    surface = allocate_surface(canvas_w, canvas_h, pixel_ratio)
    try:
        if background is not None:
            draw_background(surface, background, canvas_w, canvas_h)

        rtl = lang == "ar"
        for layer in template.layers:
            cfg = layer.config_for(lang)
            text = resolve_text(layer, cfg, user_inputs)
            if not text:
                continue
            draw_text_layer(surface, layer, cfg, text, book.for_config(cfg), canvas_w, pixel_ratio, rtl)

        return encode_jpeg(surface, quality)
    finally:
        surface.close()
