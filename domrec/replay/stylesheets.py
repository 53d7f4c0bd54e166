"""Stylesheet cache for replayed frames.

Frame snapshots carry a `cached` marker instead of stylesheet text. The text
is fetched once, before any replay starts, into a `StylesheetCache` that the
player reads while deserializing.
"""

import asyncio
from typing import Optional

import httpx
import structlog

from ..config import Settings, get_settings
from ..errors import ConfigurationError, StylesheetFetchError
from ..utils.logging import log_operation

logger = structlog.get_logger()

SCRIPT_SUFFIX = "/js/domrec.js"
CLIENT_PREFIX = "/client"


def rewrite_resource_url(url: str, script_url: Optional[str]) -> str:
    """Resolve a /client/... path against the replay script's location.

    Absolute https:// URLs (already content-hashed) are returned unchanged.

    Raises:
        ConfigurationError: The script URL does not end in /js/domrec.js.
    """
    if url.startswith("https://"):
        return url
    if not script_url or not script_url.endswith(SCRIPT_SUFFIX):
        raise ConfigurationError(f"Invalid script URL {script_url}")
    return script_url[:-len(SCRIPT_SUFFIX)] + url[len(CLIENT_PREFIX):]


class StylesheetCache:
    """Write-once map from cache key (file name) to stylesheet text."""

    def __init__(self, entries: Optional[dict[str, str]] = None):
        self._entries: dict[str, str] = dict(entries or {})

    def get(self, key: str) -> Optional[str]:
        return self._entries.get(key)

    def store(self, key: str, text: str) -> bool:
        """Store `text` under `key` unless the key is already set."""
        if key in self._entries:
            logger.warning("Stylesheet already cached", key=key)
            return False
        self._entries[key] = text
        return True

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)


class StylesheetLoader:
    """Fetches the configured frame stylesheets into a cache.

    Example:
        cache = StylesheetCache()
        await StylesheetLoader(settings, cache).load_all()
        player = Player(host, recording, stylesheet_cache=cache)
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        cache: Optional[StylesheetCache] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize loader.

        Args:
            settings: Settings providing frame_stylesheets and script_url
            cache: Cache to fill (a new one by default)
            client: HTTP client to use (one is created per load otherwise)
        """
        self.settings = settings or get_settings()
        self.cache = cache if cache is not None else StylesheetCache()
        self._client = client
        self.log = logger.bind(component="stylesheets")

    async def load_all(self) -> StylesheetCache:
        """Fetch every frame stylesheet not yet cached.

        Returns:
            The filled cache

        Raises:
            StylesheetFetchError: A fetch failed or returned a non-success status.
        """
        if not self.settings.script_url:
            # Injected rather than loaded from a script URL; nothing to resolve against
            self.log.info("No script URL configured, skipping stylesheet loading")
            return self.cache

        pending = {
            key: rewrite_resource_url(path, self.settings.script_url)
            for key, path in self.settings.frame_stylesheets.items()
            if key not in self.cache
        }

        with log_operation("load_stylesheets", logger=self.log, count=len(pending)) as op:
            if self._client is not None:
                await self._fetch_all(self._client, pending)
            else:
                async with httpx.AsyncClient(timeout=self.settings.stylesheet_fetch_timeout) as client:
                    await self._fetch_all(client, pending)
            op["cached"] = len(self.cache)

        return self.cache

    async def _fetch_all(self, client: httpx.AsyncClient, pending: dict[str, str]) -> None:
        texts = await asyncio.gather(*(self._fetch(client, url) for url in pending.values()))
        for key, text in zip(pending.keys(), texts):
            self.cache.store(key, text)

    async def _fetch(self, client: httpx.AsyncClient, url: str) -> str:
        try:
            response = await client.get(url)
        except httpx.HTTPError as e:
            raise StylesheetFetchError(f"Failed to load {url}: {e}", url=url) from e

        if not response.is_success:
            raise StylesheetFetchError(f"Failed to load {url}: {response.reason_phrase}", url=url)
        return response.text
