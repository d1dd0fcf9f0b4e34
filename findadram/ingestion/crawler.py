"""
Content Fetcher Module
======================

Retrieves menu pages over HTTP with SSRF re-validation on every redirect
hop, a hard wall-clock timeout, and a response size cap.
"""

from __future__ import annotations

import asyncio
import hashlib
import html
import logging
import re
from dataclasses import dataclass
from datetime import UTC, datetime

import httpx

from findadram.core.errors import FetchError
from findadram.ingestion.config import FetchConfig
from findadram.ingestion.safety import SafetyCheck, UrlSafetyValidator

logger = logging.getLogger(__name__)

ALLOWED_CONTENT_TYPES = frozenset({"text/html", "text/plain", "application/xhtml+xml"})

_NOISE_BLOCKS = re.compile(
    r"<(script|style|nav|footer|header|noscript)\b[^>]*>.*?</\1\s*>",
    re.IGNORECASE | re.DOTALL,
)
_COMMENTS = re.compile(r"<!--.*?-->", re.DOTALL)
_TAGS = re.compile(r"<[^>]+>")
_WHITESPACE = re.compile(r"\s+")


def strip_html_noise(markup: str) -> str:
    """
    Reduce an HTML page to its visible text.

    Drops script, style, nav, footer, header and noscript blocks, removes
    the remaining tags, decodes entities and collapses whitespace.
    """
    cleaned = _COMMENTS.sub(" ", markup)
    cleaned = _NOISE_BLOCKS.sub(" ", cleaned)
    cleaned = _TAGS.sub(" ", cleaned)
    cleaned = html.unescape(cleaned)
    return _WHITESPACE.sub(" ", cleaned).strip()


@dataclass
class FetchResult:
    """Result of fetching a URL."""

    url: str
    final_url: str
    text: str
    content_hash: str
    mime_type: str
    status_code: int
    fetched_at: datetime

    @property
    def redirected(self) -> bool:
        return self.final_url != self.url


class ContentFetcher:
    """
    HTTP fetcher for user-submitted menu URLs.

    Features:
    - Safety validation of the initial URL and of every redirect target
    - Requests are sent to the address that passed validation
    - Hard timeout around the whole fetch, redirects included
    - Text-only content types and a response size cap
    - No retries
    """

    def __init__(
        self,
        validator: UrlSafetyValidator | None = None,
        config: FetchConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        pin_addresses: bool = True,
    ) -> None:
        self.validator = validator or UrlSafetyValidator()
        self.config = config or FetchConfig()
        self._transport = transport
        self.pin_addresses = pin_addresses

    @staticmethod
    def compute_hash(content: bytes) -> str:
        """Compute the hex SHA-256 of content."""
        return hashlib.sha256(content).hexdigest()

    async def fetch(self, url: str) -> FetchResult:
        """
        Fetch a URL.

        Args:
            url: Absolute http(s) URL

        Returns:
            FetchResult with the decoded body

        Raises:
            SafetyRejection: If the URL or a redirect target is blocked
            FetchError: On timeout, transport error, bad status, too many
                redirects, unsupported content type or oversized body
        """
        try:
            return await asyncio.wait_for(self._fetch(url), timeout=self.config.timeout)
        except TimeoutError as e:
            logger.warning(f"Timeout fetching {url} after {self.config.timeout:g}s")
            raise FetchError(f"Timed out after {self.config.timeout:g}s") from e

    async def _fetch(self, url: str) -> FetchResult:
        fetched_at = datetime.now(UTC)
        current = url

        async with httpx.AsyncClient(
            transport=self._transport,
            follow_redirects=False,
            timeout=self.config.timeout,
            headers={"User-Agent": self.config.user_agent},
        ) as client:
            for hop in range(self.config.max_redirects + 1):
                check = await self.validator.ensure_safe(current)
                request = self._build_request(client, current, check)

                try:
                    response = await client.send(request, stream=True)
                except httpx.TimeoutException as e:
                    raise FetchError(f"Timed out fetching {current}") from e
                except httpx.HTTPError as e:
                    logger.warning(f"HTTP error fetching {current}: {e}")
                    raise FetchError(f"Could not connect to {check.hostname}") from e

                try:
                    if response.is_redirect:
                        location = response.headers["location"]
                        current = str(httpx.URL(current).join(location))
                        logger.info(f"Redirect {hop + 1} from {url} to {current}")
                        continue

                    content = await self._read_body(current, response)
                finally:
                    await response.aclose()

                return FetchResult(
                    url=url,
                    final_url=current,
                    text=self._decode(content, response),
                    content_hash=self.compute_hash(content),
                    mime_type=self._mime_type(response),
                    status_code=response.status_code,
                    fetched_at=fetched_at,
                )

        raise FetchError(f"Too many redirects (more than {self.config.max_redirects})")

    def _build_request(
        self, client: httpx.AsyncClient, url: str, check: SafetyCheck
    ) -> httpx.Request:
        """Build a GET aimed at the validated address, keeping Host and SNI."""
        target = httpx.URL(url)
        headers: dict[str, str] = {}
        extensions: dict[str, str] = {}

        if self.pin_addresses and check.addresses:
            address = check.addresses[0]
            headers["Host"] = target.netloc.decode("ascii")
            if target.scheme == "https":
                extensions["sni_hostname"] = target.host
            target = target.copy_with(host=f"[{address}]" if ":" in address else address)

        return client.build_request("GET", target, headers=headers, extensions=extensions)

    async def _read_body(self, url: str, response: httpx.Response) -> bytes:
        if not response.is_success:
            raise FetchError(f"HTTP {response.status_code} fetching {url}")

        mime_type = self._mime_type(response)
        if mime_type not in ALLOWED_CONTENT_TYPES:
            raise FetchError(f"Unsupported content type: {mime_type or 'unknown'}")

        limit = self.config.max_response_bytes
        declared = response.headers.get("content-length", "")
        if declared.isdigit() and int(declared) > limit:
            raise FetchError(f"Response too large ({declared} bytes, limit {limit})")

        body = bytearray()
        try:
            async for chunk in response.aiter_bytes():
                body.extend(chunk)
                if len(body) > limit:
                    raise FetchError(f"Response too large (over {limit} bytes)")
        except httpx.HTTPError as e:
            raise FetchError(f"Connection failed while reading {url}") from e

        return bytes(body)

    @staticmethod
    def _mime_type(response: httpx.Response) -> str:
        return response.headers.get("content-type", "").split(";")[0].strip().lower()

    @staticmethod
    def _decode(content: bytes, response: httpx.Response) -> str:
        try:
            return content.decode(response.encoding or "utf-8", errors="replace")
        except LookupError:
            return content.decode("utf-8", errors="replace")
