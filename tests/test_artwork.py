"""Cover art adoption: local files, HTTP downloads, failures."""

import asyncio
import os
from io import BytesIO

from aiohttp import web
from aiohttp.test_utils import TestServer
from PIL import Image

from mpris_bridge.lib.artwork import ArtworkResolver


def png_bytes(color=(200, 30, 30)):
    buf = BytesIO()
    Image.new("RGB", (8, 8), color).save(buf, "PNG")
    return buf.getvalue()


def make_resolver(tmp_path, **kw):
    default = tmp_path / "default.png"
    default.write_bytes(png_bytes((0, 0, 0)))
    return ArtworkResolver(str(tmp_path / "cache"), str(default),
                           str(tmp_path / "eww" / "image.jpg"), **kw)


def test_local_file_is_copied_into_place(tmp_path):
    async def scenario():
        resolver = make_resolver(tmp_path)
        cover = tmp_path / "album art.png"
        cover.write_bytes(png_bytes())
        path = await resolver.resolve("file://" + str(cover).replace(" ", "%20"))
        assert path == resolver.current_path
        assert not os.path.islink(path)
        with open(path, "rb") as f:
            assert f.read() == cover.read_bytes()

    asyncio.run(scenario())


def test_local_file_symlink_mode(tmp_path):
    async def scenario():
        resolver = make_resolver(tmp_path, use_symlink=True)
        cover = tmp_path / "a.png"
        cover.write_bytes(png_bytes())
        path = await resolver.resolve(f"file://{cover}")
        assert os.readlink(path) == str(cover)

    asyncio.run(scenario())


def test_missing_or_unknown_reference_falls_back_to_default(tmp_path):
    async def scenario():
        resolver = make_resolver(tmp_path)
        default = open(resolver.default_image, "rb").read()
        for ref in ("", "file:///nonexistent/x.png", "data:image/png;base64,AAAA"):
            path = await resolver.resolve(ref)
            assert path == resolver.current_path
            with open(path, "rb") as f:
                assert f.read() == default

    asyncio.run(scenario())


def test_disabled_returns_current_cover_path_untouched(tmp_path):
    async def scenario():
        resolver = make_resolver(tmp_path, enabled=False)
        assert await resolver.resolve("https://example.invalid/a.jpg") == resolver.current_path
        assert not os.path.exists(resolver.current_path)

    asyncio.run(scenario())


def test_http_art_is_downloaded_once_and_cached(tmp_path):
    async def scenario():
        hits = []

        async def cover(request):
            hits.append(request.path)
            return web.Response(body=png_bytes(), content_type="image/png")

        app = web.Application()
        app.router.add_get("/cover.png", cover)
        async with TestServer(app) as server:
            url = str(server.make_url("/cover.png"))
            resolver = make_resolver(tmp_path)
            try:
                assert await resolver.resolve(url) == resolver.current_path
                assert await resolver.resolve(url) == resolver.current_path
            finally:
                await resolver.close()

        assert hits == ["/cover.png"]
        cached = resolver.cache_path(url)
        assert os.path.exists(cached)
        with Image.open(cached) as img:
            assert img.format == "JPEG"
        with open(cached, "rb") as a, open(resolver.current_path, "rb") as b:
            assert a.read() == b.read()

    asyncio.run(scenario())


def test_http_timeout_degrades_to_default(tmp_path):
    async def scenario():
        async def slow(request):
            await asyncio.sleep(1)
            return web.Response(body=png_bytes(), content_type="image/png")

        app = web.Application()
        app.router.add_get("/slow.png", slow)
        async with TestServer(app) as server:
            resolver = make_resolver(tmp_path, timeout=0.1)
            try:
                url = str(server.make_url("/slow.png"))
                path = await asyncio.wait_for(resolver.resolve(url), 1.5)
            finally:
                await resolver.close()
        assert path == resolver.current_path
        assert not os.path.exists(resolver.cache_path(url))
        with open(path, "rb") as f, open(resolver.default_image, "rb") as d:
            assert f.read() == d.read()

    asyncio.run(scenario())


def test_http_error_and_garbage_bytes(tmp_path):
    async def scenario():
        async def missing(request):
            raise web.HTTPNotFound()

        async def garbage(request):
            return web.Response(body=b"not an image", content_type="image/png")

        app = web.Application()
        app.router.add_get("/missing.png", missing)
        app.router.add_get("/garbage.png", garbage)
        async with TestServer(app) as server:
            resolver = make_resolver(tmp_path)
            try:
                assert await resolver.fetch(str(server.make_url("/missing.png"))) is None
                assert await resolver.fetch(str(server.make_url("/garbage.png"))) is None
            finally:
                await resolver.close()

    asyncio.run(scenario())
