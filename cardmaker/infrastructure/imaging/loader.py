# cardmaker/infrastructure/imaging/loader.py
import asyncio
import base64
import logging
import os
from typing import Optional

import aiofiles
import aiohttp

from cardmaker.config.settings import settings

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    formatter = logging.Formatter('%(asctime)s [%(levelname)s] %(message)s', '%Y-%m-%d %H:%M:%S')
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    logger.propagate = False


def is_remote(src: str) -> bool:
    return src.startswith(("http://", "https://"))


class AssetLoader:
    """Loads raw bytes from remote URLs, local files, data URLs or bare base64."""

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = settings.ASSET_TIMEOUT if timeout is None else timeout

    async def _fetch(self, src: str, session: Optional[aiohttp.ClientSession]) -> bytes:
        if is_remote(src):
            if session is None:
                async with aiohttp.ClientSession() as own_session:
                    return await self._fetch(src, own_session)
            async with session.get(src) as response:
                response.raise_for_status()
                return await response.read()
        if os.path.isfile(src):
            async with aiofiles.open(src, "rb") as f:
                return await f.read()
        if src.startswith("data:"):
            _, encoded = src.split(",", 1)
            return base64.b64decode(encoded + "===")
        return base64.b64decode(src + "===")

    async def load_bytes(self, src: str, session: Optional[aiohttp.ClientSession] = None) -> Optional[bytes]:
        """Return the asset bytes, or None when the source cannot be read in time."""
        try:
            data = await asyncio.wait_for(self._fetch(src, session), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Timed out after {self.timeout:.0f}s loading '{src[:70]}'")
            return None
        except Exception as e:
            logger.warning(f"Failed to load asset from '{src[:70]}': {type(e).__name__}")
            return None
        if not data:
            logger.warning(f"Asset '{src[:70]}' is empty")
            return None
        return data

