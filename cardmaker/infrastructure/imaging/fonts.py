# cardmaker/infrastructure/imaging/fonts.py
"""
Font readiness for the rasterizer.

Pillow silently falls back to nothing useful if a face is missing, so every
face a render needs is fetched and validated before any text is drawn. Load
failures are logged and replaced by Pillow's default scalable font.
"""
import asyncio
import io
import logging
import os
import re
from typing import Dict, Iterable, List, Mapping, NamedTuple, Optional

from PIL import ImageFont

from cardmaker.domain.errors import AssetLoadError
from cardmaker.domain.models import LayerLangConfig, TemplateConfig, resolve_text
from cardmaker.infrastructure.imaging.loader import AssetLoader

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    formatter = logging.Formatter('%(asctime)s [%(levelname)s] [FONTS] %(message)s', '%Y-%m-%d %H:%M:%S')
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    logger.propagate = False

FONT_EXTENSIONS = (".ttf", ".otf")
_WEIGHT_SUFFIX_RE = re.compile(r"^(?P<family>.+?)-(?P<weight>[1-9]00)$")


class FontRequest(NamedTuple):
    weight: int
    size: int
    family: str


class FontNotFoundError(AssetLoadError):
    pass


def primary_family(font_family: str) -> str:
    """'"Playfair Display", serif' -> 'Playfair Display'"""
    return font_family.split(",")[0].strip().strip("\"'")


def family_key(family: str) -> str:
    return re.sub(r"[\s\"'_-]+", "", family).lower()


def request_for(cfg: LayerLangConfig) -> FontRequest:
    return FontRequest(cfg.font_weight, cfg.font_size, primary_family(cfg.font_family))


def font_requests(template: TemplateConfig, lang: str, user_inputs: Optional[Mapping[str, str]] = None) -> List[FontRequest]:
    """Distinct requests for every layer that will draw text, in paint order."""
    requests: List[FontRequest] = []
    for layer in template.layers:
        cfg = layer.config_for(lang)
        if not resolve_text(layer, cfg, user_inputs):
            continue
        req = request_for(cfg)
        if req not in requests:
            requests.append(req)
    return requests


_default_fonts: Dict[int, ImageFont.ImageFont] = {}


def default_font(size: int):
    font = _default_fonts.get(size)
    if font is None:
        font = ImageFont.load_default(size=size)
        _default_fonts[size] = font
    return font


class FontBook:
    """Faces that settled for one render, instantiated at device size on demand."""

    def __init__(self, scale: float = 1.0):
        self.scale = scale
        self._faces: Dict[FontRequest, Optional[bytes]] = {}
        self._fonts: Dict[FontRequest, ImageFont.ImageFont] = {}

    def add(self, request: FontRequest, data: Optional[bytes]) -> None:
        self._faces[request] = data

    def is_substitute(self, request: FontRequest) -> bool:
        return self._faces.get(request) is None

    def get(self, request: FontRequest):
        font = self._fonts.get(request)
        if font is not None:
            return font
        size = max(1, round(request.size * self.scale))
        data = self._faces.get(request)
        font = ImageFont.truetype(io.BytesIO(data), size) if data else default_font(size)
        self._fonts[request] = font
        return font

    def for_config(self, cfg: LayerLangConfig):
        return self.get(request_for(cfg))


class FontRegistry:
    """Registered font sources plus a process-wide cache of loaded faces."""

    def __init__(
        self,
        sources: Optional[Mapping[str, Mapping[int, str]]] = None,
        fonts_dir: Optional[str] = None,
        loader: Optional[AssetLoader] = None,
    ):
        self.loader = loader or AssetLoader()
        self._sources: Dict[str, Dict[int, str]] = {}
        self._faces: Dict[str, bytes] = {}
        self._inflight: Dict[str, asyncio.Task] = {}
        if fonts_dir:
            self.scan_directory(fonts_dir)
        for family, weights in (sources or {}).items():
            for weight, src in weights.items():
                self.register(family, int(weight), src)

    def register(self, family: str, weight: int, src: str) -> None:
        self._sources.setdefault(family_key(family), {})[weight] = src

    def scan_directory(self, fonts_dir: str) -> int:
        if not os.path.isdir(fonts_dir):
            logger.info(f"Font directory '{fonts_dir}' not found, only configured sources are available.")
            return 0
        count = 0
        for name in sorted(os.listdir(fonts_dir)):
            stem, ext = os.path.splitext(name)
            if ext.lower() not in FONT_EXTENSIONS:
                continue
            match = _WEIGHT_SUFFIX_RE.match(stem)
            family, weight = (match["family"], int(match["weight"])) if match else (stem, 400)
            self.register(family, weight, os.path.join(fonts_dir, name))
            count += 1
        logger.info(f"Registered {count} font files from '{fonts_dir}'.")
        return count

    def families(self) -> List[str]:
        return sorted(self._sources)

    def resolve_source(self, family: str, weight: int) -> Optional[str]:
        weights = self._sources.get(family_key(family))
        if not weights:
            return None
        nearest = min(weights, key=lambda w: (abs(w - weight), w))
        return weights[nearest]

    async def _load_source(self, src: str) -> bytes:
        data = await self.loader.load_bytes(src)
        if data is None:
            raise AssetLoadError(f"Font source '{src[:70]}' could not be read")
        try:
            ImageFont.truetype(io.BytesIO(data), 12)
        except OSError as e:
            raise AssetLoadError(f"Font source '{src[:70]}' is not a usable font: {e}") from e
        self._faces[src] = data
        return data

    def _settled(self, src: str, task: asyncio.Task) -> None:
        if self._inflight.get(src) is task:
            del self._inflight[src]
        if not task.cancelled():
            task.exception()

    async def load(self, request: FontRequest) -> bytes:
        src = self.resolve_source(request.family, request.weight)
        if src is None:
            raise FontNotFoundError(f"No font registered for family '{request.family}'")
        cached = self._faces.get(src)
        if cached is not None:
            return cached
        task = self._inflight.get(src)
        if task is None:
            task = asyncio.ensure_future(self._load_source(src))
            self._inflight[src] = task
            task.add_done_callback(lambda t, s=src: self._settled(s, t))
        # Concurrent renders join the same load; one waiter's cancellation must not cancel it.
        return await asyncio.shield(task)

    async def ready(self) -> None:
        """Barrier: wait until every load currently in flight has settled."""
        pending = list(self._inflight.values())
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    async def ensure(self, requests: Iterable[FontRequest], scale: float = 1.0) -> FontBook:
        """
        Issue every request concurrently, wait for all of them plus the global
        barrier, and return a book of what settled. Never raises for a single
        failed face.
        """
        distinct: List[FontRequest] = list(dict.fromkeys(requests))
        results = await asyncio.gather(*(self.load(r) for r in distinct), return_exceptions=True)
        await self.ready()

        book = FontBook(scale)
        for request, result in zip(distinct, results):
            if isinstance(result, BaseException):
                logger.warning(
                    f"Font {request.weight} {request.size}px '{request.family}' unavailable, "
                    f"using default font: {result}"
                )
                book.add(request, None)
            else:
                book.add(request, result)
        return book

    def cached_book(self, requests: Iterable[FontRequest], scale: float = 1.0) -> FontBook:
        """Synchronous book from faces already loaded; used for preview measurement."""
        book = FontBook(scale)
        for request in requests:
            src = self.resolve_source(request.family, request.weight)
            book.add(request, self._faces.get(src) if src else None)
        return book
