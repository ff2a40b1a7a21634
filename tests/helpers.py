"""Test helpers: a real TrueType face, sample images and a scripted asset loader."""

import asyncio
import base64
import io
from typing import Dict, List, Optional

from PIL import Image, ImageFont


def font_bytes() -> bytes:
    # Pillow ships a scalable default face; reuse its bytes as a registered font.
    return ImageFont.load_default(size=12).font_bytes


def png_bytes(size=(200, 100), color=(255, 0, 0)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format="PNG")
    return buf.getvalue()


def striped_png(width=200, height=100) -> bytes:
    """Left quarter red, middle half green, right quarter blue."""
    img = Image.new("RGB", (width, height), (255, 0, 0))
    img.paste((0, 255, 0), (width // 4, 0, width * 3 // 4, height))
    img.paste((0, 0, 255), (width * 3 // 4, 0, width, height))
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def data_url(content: bytes, mime: str = "image/png") -> str:
    return f"data:{mime};base64,{base64.b64encode(content).decode('ascii')}"


class FakeLoader:
    """AssetLoader stand-in: serves scripted bytes, optionally slowly, and records calls."""

    def __init__(self, assets: Optional[Dict[str, bytes]] = None, delay: float = 0.0):
        self.assets = dict(assets or {})
        self.delay = delay
        self.calls: List[str] = []
        self.completed: List[str] = []

    async def load_bytes(self, src: str, session=None) -> Optional[bytes]:
        self.calls.append(src)
        if self.delay:
            await asyncio.sleep(self.delay)
        self.completed.append(src)
        return self.assets.get(src)


