# cardmaker/domain/render_service.py
import asyncio
import base64
import itertools
import logging
import os
import time
import traceback
from concurrent.futures import ThreadPoolExecutor
from typing import Awaitable, Callable, Dict, Mapping, Optional

import psutil

from cardmaker.config.settings import settings
from cardmaker.domain.errors import NoVisibleContentError, StaleExportError
from cardmaker.domain.models import TemplateConfig, resolve_text
from cardmaker.domain.preview_renderer import PreviewLayout, container_scale, render_preview
from cardmaker.infrastructure.imaging import compositor
from cardmaker.infrastructure.imaging.fonts import FontRegistry, font_requests
from cardmaker.infrastructure.imaging.geometry import resolve_canvas_size
from cardmaker.infrastructure.imaging.loader import AssetLoader

JPEG_MIME = "image/jpeg"

# --- LOGGER SETUP ---
# Module-level logger with its own handler so render progress stays readable
# next to uvicorn's access log.
logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    formatter = logging.Formatter('%(asctime)s [%(levelname)s] %(message)s', '%Y-%m-%d %H:%M:%S')
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    logger.propagate = False


def _memory_mb() -> Optional[float]:
    try:
        return psutil.Process(os.getpid()).memory_info().rss / 1024 / 1024
    except Exception as mem_error:
        logger.warning(f"Could not get memory info: {mem_error}")
        return None


def to_data_url(content: bytes, mime: str = JPEG_MIME) -> str:
    return f"data:{mime};base64,{base64.b64encode(content).decode('ascii')}"


def has_visible_content(template: TemplateConfig, lang: str, user_inputs: Optional[Mapping[str, str]]) -> bool:
    return any(resolve_text(layer, layer.config_for(lang), user_inputs) for layer in template.layers)


class ExportScheduler:
    """
    One in-flight export per session key. A newer request cancels the older
    one, and any result whose request id is no longer the latest is discarded.
    """

    def __init__(self):
        self._ids = itertools.count(1)
        self._latest: Dict[str, int] = {}
        self._tasks: Dict[str, asyncio.Task] = {}

    def latest_id(self, key: str) -> Optional[int]:
        return self._latest.get(key)

    async def run(self, key: str, factory: Callable[[], Awaitable[bytes]]) -> bytes:
        request_id = next(self._ids)
        self._latest[key] = request_id
        previous = self._tasks.get(key)
        if previous is not None and not previous.done():
            logger.info(f"Export #{request_id} supersedes in-flight export for session '{key}'")
            previous.cancel()

        task = asyncio.ensure_future(factory())
        self._tasks[key] = task
        try:
            result = await task
        except asyncio.CancelledError:
            if self._latest.get(key) != request_id:
                raise StaleExportError(request_id, self._latest[key])
            raise
        finally:
            if self._tasks.get(key) is task:
                del self._tasks[key]

        if self._latest.get(key) != request_id:
            raise StaleExportError(request_id, self._latest[key])
        return result


class RenderService:
    def __init__(
        self,
        fonts: FontRegistry,
        executor: ThreadPoolExecutor,
        loader: Optional[AssetLoader] = None,
    ):
        self.fonts = fonts
        self.executor = executor
        self.loader = loader or AssetLoader()
        self.scheduler = ExportScheduler()

    async def _load_background(self, src: str) -> Optional[bytes]:
        data = await self.loader.load_bytes(src)
        if data is None:
            logger.warning("Background image failed to load, using white background.")
        return data

    async def render_card(
        self,
        template: TemplateConfig,
        user_inputs: Optional[Mapping[str, str]] = None,
        pixel_ratio: Optional[float] = None,
        quality: Optional[float] = None,
        language: Optional[str] = None,
    ) -> bytes:
        """
        Rasterize `template` with the end user's text to JPEG bytes.

        Background and font failures degrade to a white background and the
        default font. Raises NoVisibleContentError when no layer has text and
        DrawingSurfaceError when the bitmap cannot be allocated.
        """
        pixel_ratio = settings.DEFAULT_PIXEL_RATIO if pixel_ratio is None else pixel_ratio
        quality = settings.DEFAULT_JPEG_QUALITY if quality is None else quality
        if pixel_ratio <= 0:
            raise ValueError(f"pixel_ratio must be positive, got {pixel_ratio}")
        if not 0 <= quality <= 1:
            raise ValueError(f"quality must be within [0, 1], got {quality}")

        user_inputs = dict(user_inputs or {})
        lang = language or template.card_language
        run_id = template.slug
        overall_start_time = time.perf_counter()
        logger.info(f"=== START RENDER '{run_id}' (lang={lang}, ratio={pixel_ratio}, quality={quality}) ===")

        if not has_visible_content(template, lang, user_inputs):
            raise NoVisibleContentError(f"Card '{run_id}' has no visible text layer content")

        canvas_w, canvas_h = resolve_canvas_size(template.dimensions, template.orientation)
        compositor.check_surface(canvas_w, canvas_h, pixel_ratio)

        try:
            # STAGE 1: Background
            background = None
            if template.background_url:
                logger.info(f"Stage 1/4: Loading background for '{run_id}'.")
                background = await self._load_background(template.background_url)
            else:
                logger.info(f"Stage 1/4: No background set for '{run_id}', using white.")

            # STAGE 2: Fonts. No glyph is drawn before every load has settled.
            requests = font_requests(template, lang, user_inputs)
            logger.info(f"Stage 2/4: Waiting for {len(requests)} font faces for '{run_id}'.")
            book = await self.fonts.ensure(requests, scale=pixel_ratio)

            # STAGE 3: Compositing
            logger.info(f"Stage 3/4: Compositing {canvas_w}x{canvas_h} @{pixel_ratio}x for '{run_id}'.")
            loop = asyncio.get_running_loop()
            content = await loop.run_in_executor(
                self.executor,
                compositor.compose_card,
                template,
                user_inputs,
                lang,
                pixel_ratio,
                quality,
                background,
                book,
            )

            # STAGE 4: Done
            memory_mb = _memory_mb()
            if memory_mb is not None:
                logger.info(f"Stage 4/4: Memory after render: {memory_mb:.1f}MB for '{run_id}'.")
            overall_duration = time.perf_counter() - overall_start_time
            logger.info(f"=== COMPLETED RENDER '{run_id}' ({len(content)} bytes) in {overall_duration:.2f}s ===")
            return content

        except asyncio.CancelledError:
            logger.info(f"Render '{run_id}' cancelled.")
            raise
        except Exception as e:
            logger.error(f"=== CRITICAL ERROR rendering '{run_id}': {e}\n{traceback.format_exc()} ===")
            raise

    async def export(
        self,
        template: TemplateConfig,
        user_inputs: Optional[Mapping[str, str]] = None,
        pixel_ratio: Optional[float] = None,
        quality: Optional[float] = None,
        language: Optional[str] = None,
        session_key: Optional[str] = None,
    ) -> bytes:
        """render_card, with stale results discarded when a session key is given."""
        if session_key is None:
            return await self.render_card(template, user_inputs, pixel_ratio, quality, language)
        return await self.scheduler.run(
            session_key,
            lambda: self.render_card(template, user_inputs, pixel_ratio, quality, language),
        )

    async def preview(
        self,
        template: TemplateConfig,
        user_inputs: Optional[Mapping[str, str]] = None,
        container_width: float = 0,
        container_height: float = 0,
        language: Optional[str] = None,
        selected_layer_id: Optional[str] = None,
        interactive: bool = False,
    ) -> PreviewLayout:
        """Editor/viewer layout fitted into the given container."""
        lang = language or template.card_language
        scale = container_scale(template, container_width, container_height)

        background_size = None
        if template.background_url:
            data = await self.loader.load_bytes(template.background_url)
            background_size = compositor.image_size(data) if data is not None else None

        # Faces are loaded so box widths are measured with the real fonts.
        await self.fonts.ensure(font_requests(template, lang, user_inputs), scale=scale)
        return render_preview(
            template,
            user_inputs,
            scale=scale,
            language=lang,
            selected_layer_id=selected_layer_id,
            interactive=interactive,
            fonts=self.fonts,
            background_size=background_size,
        )
