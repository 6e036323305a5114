"""Tests for the HTTP fetcher."""

import httpx
import pytest

from release_intel.ingestion.crawler import ACCEPT_HTML, ACCEPT_JSON, Fetcher, FetchResult
from release_intel.ingestion.errors import FetchError


class TestFetcher:
    """Tests for Fetcher."""

    @pytest.mark.asyncio
    async def test_fetch_success(self) -> None:
        """Test a 200 response becomes a FetchResult."""
        seen: dict[str, str] = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["user-agent"] = request.headers["user-agent"]
            seen["accept"] = request.headers["accept"]
            return httpx.Response(
                200,
                text="<html><title>Sets</title></html>",
                headers={"content-type": "text/html; charset=utf-8"},
            )

        fetcher = Fetcher(user_agent="TestAgent/1.0", transport=httpx.MockTransport(handler))
        result = await fetcher.fetch("https://example.test/sets")

        assert isinstance(result, FetchResult)
        assert result.status_code == 200
        assert result.content_type == "text/html"
        assert "<title>Sets</title>" in result.text
        assert result.fetched_at.tzinfo is not None
        assert seen == {"user-agent": "TestAgent/1.0", "accept": ACCEPT_HTML}

    @pytest.mark.asyncio
    async def test_fetch_json(self) -> None:
        """Test JSON accept header and json() helper."""

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.headers["accept"] == ACCEPT_JSON
            return httpx.Response(200, json={"data": [{"name": "Foo"}]})

        fetcher = Fetcher(transport=httpx.MockTransport(handler))
        result = await fetcher.fetch("https://api.example.test/sets", accept=ACCEPT_JSON)

        assert result.json() == {"data": [{"name": "Foo"}]}

    @pytest.mark.asyncio
    async def test_non_2xx_raises(self) -> None:
        """Test an error status raises FetchError with the status code."""
        fetcher = Fetcher(transport=httpx.MockTransport(lambda r: httpx.Response(503)))

        with pytest.raises(FetchError) as exc_info:
            await fetcher.fetch("https://example.test/down")

        assert exc_info.value.status_code == 503
        assert exc_info.value.url == "https://example.test/down"

    @pytest.mark.asyncio
    async def test_network_error_raises(self) -> None:
        """Test transport errors raise FetchError."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        fetcher = Fetcher(transport=httpx.MockTransport(handler))
        with pytest.raises(FetchError):
            await fetcher.fetch("https://example.test/")

    @pytest.mark.asyncio
    async def test_timeout_raises(self) -> None:
        """Test timeouts raise FetchError."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        fetcher = Fetcher(timeout=0.1, transport=httpx.MockTransport(handler))
        with pytest.raises(FetchError, match="Timeout"):
            await fetcher.fetch("https://example.test/")

    @pytest.mark.asyncio
    async def test_redirect_overflow_raises(self) -> None:
        """Test more than max_redirects hops raises FetchError."""

        def handler(request: httpx.Request) -> httpx.Response:
            hop = int(request.url.params.get("hop", "0"))
            return httpx.Response(
                302, headers={"location": f"https://example.test/loop?hop={hop + 1}"}
            )

        fetcher = Fetcher(max_redirects=3, transport=httpx.MockTransport(handler))
        with pytest.raises(FetchError, match="redirects"):
            await fetcher.fetch("https://example.test/loop")

    @pytest.mark.asyncio
    async def test_follows_redirects_within_limit(self) -> None:
        """Test redirects under the limit are followed."""

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/old":
                return httpx.Response(301, headers={"location": "https://example.test/new"})
            return httpx.Response(200, text="moved")

        fetcher = Fetcher(transport=httpx.MockTransport(handler))
        result = await fetcher.fetch("https://example.test/old")

        assert result.url == "https://example.test/new"
        assert result.text == "moved"
