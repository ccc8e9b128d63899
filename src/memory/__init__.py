"""
Browsing Memory
===============

What the agent remembers between conversations about the pages it has
seen:

- PageCache: snapshots of read pages (7-day TTL, 50 entries)
- PriceWatchList: products the user asked to watch
"""

from src.memory.page_cache import PageCache, PageSnapshot, ProductInfo
from src.memory.price_watch import PriceWatch, PriceWatchList

__all__ = ["PageCache", "PageSnapshot", "PriceWatch", "PriceWatchList", "ProductInfo"]
