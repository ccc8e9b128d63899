"""
Page Cache
==========

Snapshots of pages the agent has read, kept across navigation so the
user can say "something like this, but cheaper" after leaving a product
page.

- One JSON file, keyed by URL
- Entries expire after 7 days
- At most 50 entries; the oldest are evicted first

File Structure:
    {
      "https://shop.example/p/1": {
        "url": "...", "title": "...", "markdown": "...",
        "product": {"name": "...", "price": "..."},
        "timestamp": 1738300000.0
      }
    }
"""

import asyncio
import json
import time
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

from src.utils.logger import Logger

logger = Logger("PageCache")

CACHE_TTL_SECONDS = 7 * 24 * 60 * 60
MAX_ENTRIES = 50


@dataclass
class ProductInfo:
    name: str
    price: str | None = None
    currency: str | None = None
    description: str | None = None
    brand: str | None = None
    image: str | None = None
    rating: str | None = None
    url: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProductInfo | None":
        if not isinstance(data, dict) or not data.get("name"):
            return None
        known = {k: (str(v) if v is not None else None) for k, v in data.items()
                 if k in cls.__dataclass_fields__}
        return cls(**known)


@dataclass
class PageSnapshot:
    url: str
    title: str
    markdown: str
    product: ProductInfo | None = None
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        if self.product is None:
            data.pop("product")
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PageSnapshot":
        return cls(
            url=str(data.get("url", "")),
            title=str(data.get("title", "")),
            markdown=str(data.get("markdown", "")),
            product=ProductInfo.from_dict(data.get("product") or {}),
            timestamp=float(data.get("timestamp", 0.0)),
        )


class PageCache:
    """
    File-backed cache of page snapshots.

    Example:
        cache = PageCache(Path("~/.foxagent/page_cache.json"))
        await cache.put(PageSnapshot(url=..., title=..., markdown=...))
        latest = await cache.get()            # most recent snapshot
        page = await cache.get("https://...") # a specific page
    """

    def __init__(
        self,
        cache_file: Path,
        ttl_seconds: float = CACHE_TTL_SECONDS,
        max_entries: int = MAX_ENTRIES
    ):
        self.cache_file = Path(cache_file).expanduser()
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._lock = asyncio.Lock()

    async def put(self, snapshot: PageSnapshot) -> None:
        async with self._lock:
            await asyncio.to_thread(self._put_sync, snapshot)

    async def get(self, url: str | None = None) -> PageSnapshot | None:
        """A cached page by URL, or the most recent one when url is omitted."""
        return await asyncio.to_thread(self._get_sync, url)

    async def last_product(self) -> ProductInfo | None:
        """Product info from the most recently cached product page."""
        return await asyncio.to_thread(self._last_product_sync)

    async def prune(self) -> int:
        """Drop expired entries. Returns how many were removed."""
        async with self._lock:
            return await asyncio.to_thread(self._prune_sync)

    # ==========================================================================
    # Synchronous helpers (run in a worker thread)
    # ==========================================================================

    def _read(self) -> dict[str, dict]:
        if not self.cache_file.exists():
            return {}
        try:
            with open(self.cache_file, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error("Page cache unreadable, starting empty", e)
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, entries: dict[str, dict]) -> None:
        self.cache_file.parent.mkdir(parents=True, exist_ok=True)
        with open(self.cache_file, "w", encoding="utf-8") as f:
            json.dump(entries, f, indent=2, ensure_ascii=False)

    def _live(self, entries: dict[str, dict]) -> dict[str, dict]:
        cutoff = time.time() - self.ttl_seconds
        return {url: e for url, e in entries.items() if float(e.get("timestamp", 0)) >= cutoff}

    def _put_sync(self, snapshot: PageSnapshot) -> None:
        entries = self._live(self._read())
        entries[snapshot.url] = snapshot.to_dict()

        if len(entries) > self.max_entries:
            newest = sorted(entries.items(), key=lambda item: item[1].get("timestamp", 0), reverse=True)
            entries = dict(newest[:self.max_entries])

        self._write(entries)
        logger.debug(f"Cached snapshot of {snapshot.url}")

    def _get_sync(self, url: str | None) -> PageSnapshot | None:
        entries = self._live(self._read())
        if not entries:
            return None

        if url:
            entry = entries.get(url)
            return PageSnapshot.from_dict(entry) if entry else None

        latest = max(entries.values(), key=lambda e: e.get("timestamp", 0))
        return PageSnapshot.from_dict(latest)

    def _last_product_sync(self) -> ProductInfo | None:
        entries = sorted(
            self._live(self._read()).values(),
            key=lambda e: e.get("timestamp", 0),
            reverse=True
        )
        for entry in entries:
            product = ProductInfo.from_dict(entry.get("product") or {})
            if product is not None:
                return product
        return None

    def _prune_sync(self) -> int:
        entries = self._read()
        live = self._live(entries)
        removed = len(entries) - len(live)
        if removed:
            self._write(live)
        return removed
