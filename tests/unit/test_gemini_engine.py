"""Unit tests for the Gemini engine against a local HTTP server."""

import asyncio

import pytest
from aiohttp import web
from aiohttp import test_utils

from clinote.exceptions import RequestFailed
from clinote.notes import GeminiEngine


def run_against(handler, scenario):
    """Serve ``handler`` for generateContent calls and run ``scenario(base_url)``."""
    async def main():
        app = web.Application()
        app.router.add_post("/v1beta/models/{target}", handler)
        async with test_utils.TestServer(app) as server:
            return await scenario(str(server.make_url("/v1beta")))
    return asyncio.run(main())


@pytest.mark.unit
class TestGeminiEngine:

    def test_requires_api_key(self):
        with pytest.raises(ValueError):
            GeminiEngine(api_key="")

    def test_url(self):
        engine = GeminiEngine(api_key="key", model="gemini-2.5-pro",
                              base_url="https://example.test/v1beta/")

        assert engine.url == "https://example.test/v1beta/models/gemini-2.5-pro:generateContent"

    def test_generate_content(self):
        seen = {}

        async def handler(request):
            seen["target"] = request.match_info["target"]
            seen["api_key"] = request.headers.get("x-goog-api-key")
            seen["body"] = await request.json()
            return web.json_response({
                "candidates": [{"content": {"parts": [{"text": "## Note"}]}}]
            })

        async def scenario(base_url):
            engine = GeminiEngine(api_key="secret", base_url=base_url)
            return await engine.generate_content("Summarise this")

        response = run_against(handler, scenario)

        assert response["candidates"][0]["content"]["parts"][0]["text"] == "## Note"
        assert seen["target"] == "gemini-2.5-flash:generateContent"
        assert seen["api_key"] == "secret"
        assert seen["body"] == {"contents": [{"parts": [{"text": "Summarise this"}]}]}

    def test_error_status(self):
        async def handler(request):
            return web.Response(status=403, text="API key not valid")

        async def scenario(base_url):
            engine = GeminiEngine(api_key="secret", base_url=base_url)
            return await engine.generate_content("Summarise this")

        with pytest.raises(RequestFailed, match="403 - API key not valid"):
            run_against(handler, scenario)
