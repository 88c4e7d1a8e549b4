# mpris-bridge
# SPDX-License-Identifier: GPL-3.0-or-later

"""
Cover art adoption.

Whatever the player advertises as ``mpris:artUrl`` ends up at one fixed path
(``art.current_path``) that bar widgets point at:

  file:///…   → copied (or symlinked) into place
  http(s)://… → downloaded once, normalised to JPEG, cached as <sha1>.jpg
  otherwise   → the configured default image

A slow or failing download never blocks a state update: the fetch is bounded
by ``art.timeout_ms`` and every failure degrades to the default image.
"""

import asyncio
import hashlib
import logging
import os
import shutil
import tempfile
from concurrent.futures import ThreadPoolExecutor
from io import BytesIO
from urllib.parse import unquote, urlparse

import aiohttp
from PIL import Image, UnidentifiedImageError

from .config import cfg, expand_path

log = logging.getLogger(__name__)

JPEG_QUALITY = 90

# Shared thread pool for CPU-bound image processing
_artwork_executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="artwork")


def _process_image(image_bytes: bytes) -> bytes | None:
    """Re-encode raw image bytes as JPEG.  Runs in a thread pool (CPU-bound)."""
    try:
        image = Image.open(BytesIO(image_bytes))
        if image.mode not in ("RGB", "L"):
            image = image.convert("RGB")
        buf = BytesIO()
        image.save(buf, "JPEG", quality=JPEG_QUALITY)
        return buf.getvalue()
    except (UnidentifiedImageError, OSError, ValueError) as e:
        log.warning("Error processing image: %s", e)
        return None


def cache_key(url: str) -> str:
    return hashlib.sha1(url.encode("utf-8")).hexdigest()


def _atomic_write_bytes(path: str, data: bytes):
    directory = os.path.dirname(path) or "."
    fd, tmp = tempfile.mkstemp(prefix=os.path.basename(path) + ".", dir=directory)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.replace(tmp, path)
    finally:
        if os.path.exists(tmp):
            os.unlink(tmp)


class ArtworkResolver:

    def __init__(self, cache_dir: str, default_image: str, current_path: str, *,
                 enabled: bool = True, download_http: bool = True,
                 timeout: float = 5.0, use_symlink: bool = False):
        self.cache_dir = cache_dir
        self.default_image = default_image
        self.current_path = current_path
        self.enabled = enabled
        self.download_http = download_http
        self.timeout = timeout
        self.use_symlink = use_symlink
        self._session: aiohttp.ClientSession | None = None

    @classmethod
    def from_config(cls) -> "ArtworkResolver":
        return cls(
            expand_path(cfg("art", "cache_dir", default="$XDG_CACHE_HOME/mpris-bridge/art")),
            expand_path(cfg("art", "default_image", default="$HOME/.config/eww/scripts/cover.png")),
            expand_path(cfg("art", "current_path", default="$HOME/.config/eww/image.jpg")),
            enabled=bool(cfg("art", "enabled", default=True)),
            download_http=bool(cfg("art", "download_http", default=True)),
            timeout=float(cfg("art", "timeout_ms", default=5000)) / 1000,
            use_symlink=bool(cfg("art", "use_symlink", default=False)),
        )

    async def close(self):
        if self._session:
            await self._session.close()
            self._session = None

    def cache_path(self, url: str) -> str:
        return os.path.join(self.cache_dir, f"{cache_key(url)}.jpg")

    # ── Public API ──

    async def resolve(self, art_url: str) -> str:
        """Adopt the art behind *art_url* and return the thumbnail path."""
        if not self.enabled:
            return self.current_path  # left untouched

        source = None
        try:
            if art_url.startswith("file://"):
                local = unquote(urlparse(art_url).path)
                if os.path.isfile(local):
                    source = local
                else:
                    log.debug("Art file %s does not exist", local)
            elif art_url.startswith(("http://", "https://")) and self.download_http:
                source = await self.fetch(art_url)
        except Exception as e:
            log.warning("Error resolving art %s: %s", art_url, e)
            source = None

        if source and self._adopt(source):
            return self.current_path
        if self._adopt(self.default_image):
            return self.current_path
        return self.default_image

    async def fetch(self, url: str) -> str | None:
        """Download *url* into the cache (once) and return the cached path, or None."""
        target = self.cache_path(url)
        if os.path.exists(target):
            log.debug("Artwork cache hit for %s", url)
            return target

        log.debug("Artwork cache miss, fetching: %s", url)
        try:
            image_bytes = await asyncio.wait_for(self._download(url), self.timeout)
        except asyncio.TimeoutError:
            log.warning("Artwork fetch timed out after %.1fs: %s", self.timeout, url)
            return None
        except aiohttp.ClientError as e:
            log.warning("Error fetching artwork: %s", e)
            return None
        if not image_bytes:
            log.warning("Artwork URL returned 0 bytes")
            return None

        loop = asyncio.get_running_loop()
        jpeg = await loop.run_in_executor(_artwork_executor, _process_image, image_bytes)
        if jpeg is None:
            return None
        os.makedirs(self.cache_dir, exist_ok=True)
        _atomic_write_bytes(target, jpeg)
        log.info("Cached artwork for %s", url)
        return target

    async def _download(self, url: str) -> bytes:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={"User-Agent": "mpris-bridge/0.3"},
            )
        async with self._session.get(url, timeout=aiohttp.ClientTimeout(total=self.timeout)) as resp:
            resp.raise_for_status()
            return await resp.read()

    # ── Placement ──

    def _adopt(self, source: str) -> bool:
        """Copy or symlink *source* to the current-cover path."""
        if not os.path.exists(source):
            log.debug("Cover source %s does not exist", source)
            return False
        if os.path.abspath(source) == os.path.abspath(self.current_path):
            return True
        parent = os.path.dirname(self.current_path)
        try:
            if parent:
                os.makedirs(parent, exist_ok=True)
            if self.use_symlink:
                if os.path.lexists(self.current_path):
                    os.unlink(self.current_path)
                os.symlink(source, self.current_path)
            else:
                fd, tmp = tempfile.mkstemp(prefix=os.path.basename(self.current_path) + ".",
                                           dir=parent or ".")
                os.close(fd)
                try:
                    shutil.copyfile(source, tmp)
                    os.replace(tmp, self.current_path)
                finally:
                    if os.path.exists(tmp):
                        os.unlink(tmp)
            return True
        except OSError as e:
            log.warning("Could not place cover %s at %s: %s", source, self.current_path, e)
            return False
