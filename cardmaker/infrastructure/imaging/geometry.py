# cardmaker/infrastructure/imaging/geometry.py
"""
Layout math shared by the preview layout and the rasterizer.

Both renderers call into this module for canvas size, cover crop and text
anchors, so they cannot drift apart.
"""
from typing import NamedTuple, Tuple

from cardmaker.domain.models import Alignment, PosterDimensions

TEXT_PADDING = 4
LINE_HEIGHT_RATIO = 1.3
SHADOW_OFFSET = 2
SHADOW_COLOR = (0, 0, 0, 128)
MIN_PREVIEW_SCALE = 0.05


class CropRect(NamedTuple):
    sx: float
    sy: float
    sw: float
    sh: float

    @property
    def box(self) -> Tuple[float, float, float, float]:
        return (self.sx, self.sy, self.sx + self.sw, self.sy + self.sh)


def resolve_canvas_size(dimensions: PosterDimensions, orientation: str) -> Tuple[int, int]:
    long_side = max(dimensions.width, dimensions.height)
    short_side = min(dimensions.width, dimensions.height)
    if orientation == "landscape":
        return long_side, short_side
    return short_side, long_side


def fit_scale(avail_w: float, avail_h: float, canvas_w: float, canvas_h: float) -> float:
    scale = min(avail_w / canvas_w, avail_h / canvas_h)
    return max(scale, MIN_PREVIEW_SCALE)


def cover_crop(img_w: float, img_h: float, dst_w: float, dst_h: float) -> CropRect:
    """Source region that fills (dst_w, dst_h) without distortion, centred on the excess axis."""
    img_ratio = img_w / img_h
    dst_ratio = dst_w / dst_h
    if img_ratio > dst_ratio:
        sw = img_h * dst_ratio
        return CropRect((img_w - sw) / 2, 0.0, sw, float(img_h))
    sh = img_w / dst_ratio
    return CropRect(0.0, (img_h - sh) / 2, float(img_w), sh)


def anchor_x(x: float, align: Alignment, canvas_w: float, padding: float = TEXT_PADDING) -> float:
    # Center and right are relative to the canvas edge, not a per-layer box.
    if align == "center":
        return x + (canvas_w - x) / 2
    if align == "right":
        return canvas_w - padding
    return x + padding


def line_top(y: float, line_index: int, font_size: float, padding: float = TEXT_PADDING) -> float:
    return y + padding + line_index * font_size * LINE_HEIGHT_RATIO


def split_lines(text: str) -> list:
    return text.split("\n")
