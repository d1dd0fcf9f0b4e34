"""Tests for the content fetcher."""

import asyncio
import hashlib

import httpx
import pytest

from findadram.core.errors import FetchError, SafetyRejection
from findadram.ingestion.config import FetchConfig
from findadram.ingestion.crawler import ContentFetcher, strip_html_noise
from findadram.ingestion.safety import UrlSafetyValidator

PUBLIC_IP = "93.184.216.34"
OTHER_PUBLIC_IP = "151.101.1.69"

MENU_HTML = """
<html><head><title>Menu</title><script>var x = 1;</script></head>
<body><nav>Home | About</nav>
<h1>Whiskey List</h1>
<ul><li>Buffalo Trace &amp; Friends - $12</li></ul>
<footer>Copyright</footer></body></html>
"""


def make_validator(mapping: dict[str, list[str]] | None = None) -> UrlSafetyValidator:
    table = mapping or {"bar.example": [PUBLIC_IP], "cdn.example": [OTHER_PUBLIC_IP]}

    async def resolve(hostname: str, port: int) -> list[str]:
        if hostname not in table:
            raise OSError(hostname)
        return table[hostname]

    return UrlSafetyValidator(resolver=resolve)


def make_fetcher(handler, config: FetchConfig | None = None, **kwargs) -> ContentFetcher:
    return ContentFetcher(
        make_validator(kwargs.pop("mapping", None)),
        config or FetchConfig(),
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


class TestStripHtmlNoise:
    """Tests for strip_html_noise."""

    def test_removes_noise_blocks(self) -> None:
        text = strip_html_noise(MENU_HTML)
        assert "var x" not in text
        assert "Home | About" not in text
        assert "Copyright" not in text
        assert "Whiskey List" in text

    def test_unescapes_entities(self) -> None:
        assert "Buffalo Trace & Friends - $12" in strip_html_noise(MENU_HTML)

    def test_collapses_whitespace(self) -> None:
        assert strip_html_noise("<p>a</p>\n\n   <p>b</p>") == "a b"

    def test_removes_comments(self) -> None:
        assert strip_html_noise("<!-- <p>hidden</p> -->shown") == "shown"

    def test_empty_page(self) -> None:
        assert strip_html_noise("<script>only()</script>") == ""


class TestContentFetcher:
    """Tests for ContentFetcher."""

    @pytest.mark.asyncio
    async def test_successful_fetch(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, html=MENU_HTML)

        result = await make_fetcher(handler).fetch("https://bar.example/menu")

        assert result.status_code == 200
        assert result.mime_type == "text/html"
        assert "Whiskey List" in result.text
        assert result.content_hash == hashlib.sha256(MENU_HTML.encode()).hexdigest()
        assert result.final_url == "https://bar.example/menu"
        assert result.redirected is False

    @pytest.mark.asyncio
    async def test_request_pinned_to_validated_address(self) -> None:
        """The connection goes to the checked IP while Host names the site."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, text="menu")

        await make_fetcher(handler).fetch("https://bar.example/menu?page=1")

        assert seen[0].url.host == PUBLIC_IP
        assert seen[0].url.path == "/menu"
        assert seen[0].url.query == b"page=1"
        assert seen[0].headers["host"] == "bar.example"
        assert seen[0].headers["user-agent"].startswith("FindADram/")

    @pytest.mark.asyncio
    async def test_unpinned_request_uses_hostname(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, text="menu")

        await make_fetcher(handler, pin_addresses=False).fetch("https://bar.example/menu")
        assert seen[0].url.host == "bar.example"

    @pytest.mark.asyncio
    async def test_follows_safe_redirect(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.headers["host"] == "bar.example":
                return httpx.Response(301, headers={"location": "https://cdn.example/menu.html"})
            return httpx.Response(200, html="<p>Lagavulin 16</p>")

        result = await make_fetcher(handler).fetch("https://bar.example/menu")

        assert result.final_url == "https://cdn.example/menu.html"
        assert result.redirected is True
        assert "Lagavulin 16" in result.text

    @pytest.mark.asyncio
    async def test_relative_redirect(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/old":
                return httpx.Response(302, headers={"location": "/new"})
            return httpx.Response(200, text="new menu")

        result = await make_fetcher(handler).fetch("https://bar.example/old")
        assert result.final_url == "https://bar.example/new"

    @pytest.mark.asyncio
    async def test_redirect_to_loopback_blocked(self) -> None:
        """A public page redirecting to an internal address is refused before connecting."""
        hosts: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            hosts.append(request.url.host)
            return httpx.Response(302, headers={"location": "http://127.0.0.1/admin"})

        with pytest.raises(SafetyRejection) as exc_info:
            await make_fetcher(handler).fetch("https://bar.example/menu")

        assert exc_info.value.reason == "Blocked private IP: 127.0.0.1"
        assert hosts == [PUBLIC_IP]

    @pytest.mark.asyncio
    async def test_redirect_to_metadata_blocked(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                302, headers={"location": "http://169.254.169.254/latest/meta-data/"}
            )

        with pytest.raises(SafetyRejection):
            await make_fetcher(handler).fetch("https://bar.example/menu")

    @pytest.mark.asyncio
    async def test_redirect_to_host_resolving_private_blocked(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(302, headers={"location": "http://intranet.example/"})

        fetcher = make_fetcher(
            handler,
            mapping={"bar.example": [PUBLIC_IP], "intranet.example": ["192.168.1.20"]},
        )
        with pytest.raises(SafetyRejection):
            await fetcher.fetch("https://bar.example/menu")

    @pytest.mark.asyncio
    async def test_too_many_redirects(self) -> None:
        count = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal count
            count += 1
            return httpx.Response(302, headers={"location": f"/hop{count}"})

        fetcher = make_fetcher(handler, FetchConfig(max_redirects=2))
        with pytest.raises(FetchError) as exc_info:
            await fetcher.fetch("https://bar.example/menu")

        assert "Too many redirects" in exc_info.value.message
        assert count == 3

    @pytest.mark.asyncio
    async def test_http_error_status(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404, text="not found")

        with pytest.raises(FetchError) as exc_info:
            await make_fetcher(handler).fetch("https://bar.example/menu")
        assert "HTTP 404" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_unsupported_content_type(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"\x89PNG", headers={"content-type": "image/png"})

        with pytest.raises(FetchError) as exc_info:
            await make_fetcher(handler).fetch("https://bar.example/menu")
        assert "Unsupported content type: image/png" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_oversized_response(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="x" * 500)

        fetcher = make_fetcher(handler, FetchConfig(max_response_bytes=100))
        with pytest.raises(FetchError) as exc_info:
            await fetcher.fetch("https://bar.example/menu")
        assert "too large" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_timeout(self) -> None:
        async def handler(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(5)
            return httpx.Response(200, text="late")

        fetcher = make_fetcher(handler, FetchConfig(timeout=0.05))
        with pytest.raises(FetchError) as exc_info:
            await fetcher.fetch("https://bar.example/menu")
        assert exc_info.value.message == "Timed out after 0.05s"

    @pytest.mark.asyncio
    async def test_connection_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused")

        with pytest.raises(FetchError) as exc_info:
            await make_fetcher(handler).fetch("https://bar.example/menu")
        assert exc_info.value.message == "Could not connect to bar.example"

    @pytest.mark.asyncio
    async def test_blocked_initial_url_never_sent(self) -> None:
        sent: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            sent.append(request)
            return httpx.Response(200, text="secret")

        with pytest.raises(SafetyRejection):
            await make_fetcher(handler).fetch("http://metadata.google.internal/computeMetadata/v1/")
        assert sent == []

    def test_compute_hash(self) -> None:
        assert ContentFetcher.compute_hash(b"menu") == hashlib.sha256(b"menu").hexdigest()
