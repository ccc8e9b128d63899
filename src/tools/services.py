"""
Tool Services
=============

Long-lived objects the tool implementations need: the browser bridge,
the page cache and the price-watch list. main.py sets them once at
startup; tests set fakes.
"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from src.browser.bridge import BrowserBridge
    from src.memory.page_cache import PageCache
    from src.memory.price_watch import PriceWatchList


_browser_bridge: "BrowserBridge | None" = None
_page_cache: "PageCache | None" = None
_price_watches: "PriceWatchList | None" = None


def set_browser_bridge(bridge: "BrowserBridge | None") -> None:
    """Set the bridge used by tab tools (called from main.py)."""
    global _browser_bridge
    _browser_bridge = bridge


def set_page_cache(cache: "PageCache | None") -> None:
    global _page_cache
    _page_cache = cache


def set_price_watches(watches: "PriceWatchList | None") -> None:
    global _price_watches
    _price_watches = watches


def require_bridge() -> "BrowserBridge":
    if _browser_bridge is None:
        raise RuntimeError("Browser bridge not initialized. Call set_browser_bridge() first.")
    return _browser_bridge


def get_page_cache() -> "PageCache | None":
    """The page cache, or None when caching is disabled."""
    return _page_cache


def require_price_watches() -> "PriceWatchList":
    if _price_watches is None:
        raise RuntimeError("Price watches not initialized. Call set_price_watches() first.")
    return _price_watches
