from __future__ import annotations

import asyncio
import time
from pathlib import Path

from src.memory.page_cache import PageCache, PageSnapshot, ProductInfo
from src.memory.price_watch import PriceWatch, PriceWatchList


def _snapshot(url: str, age: float = 0.0, product: ProductInfo | None = None) -> PageSnapshot:
    return PageSnapshot(url=url, title=f"Title {url}", markdown="# Page", product=product,
                        timestamp=time.time() - age)


def test_latest_snapshot_and_lookup_by_url(tmp_path: Path) -> None:
    cache = PageCache(tmp_path / "cache.json")

    async def scenario():
        await cache.put(_snapshot("https://a.example", age=60))
        await cache.put(_snapshot("https://b.example"))
        return await cache.get(), await cache.get("https://a.example"), await cache.get("https://c.example")

    latest, by_url, missing = asyncio.run(scenario())

    assert latest.url == "https://b.example"
    assert by_url.title == "Title https://a.example"
    assert missing is None


def test_expired_snapshots_are_invisible_and_pruned(tmp_path: Path) -> None:
    cache = PageCache(tmp_path / "cache.json", ttl_seconds=100)

    async def scenario():
        await cache.put(_snapshot("https://fresh.example"))
        await cache.put(_snapshot("https://old.example", age=50))
        cache.ttl_seconds = 10
        return await cache.get("https://old.example"), await cache.prune()

    old, removed = asyncio.run(scenario())

    assert old is None
    assert removed == 1


def test_oldest_entries_are_evicted(tmp_path: Path) -> None:
    cache = PageCache(tmp_path / "cache.json", max_entries=2)

    async def scenario():
        for i, age in enumerate((30, 20, 10)):
            await cache.put(_snapshot(f"https://{i}.example", age=age))
        return [await cache.get(f"https://{i}.example") for i in range(3)]

    first, second, third = asyncio.run(scenario())

    assert first is None
    assert second is not None and third is not None


def test_last_product_skips_pages_without_one(tmp_path: Path) -> None:
    cache = PageCache(tmp_path / "cache.json")

    async def scenario():
        await cache.put(_snapshot("https://shop.example/p/1", age=60,
                                  product=ProductInfo(name="Trail Shoe", price="$89")))
        await cache.put(_snapshot("https://news.example"))
        return await cache.last_product()

    product = asyncio.run(scenario())

    assert product.name == "Trail Shoe"
    assert product.price == "$89"


def test_corrupt_cache_reads_as_empty(tmp_path: Path) -> None:
    path = tmp_path / "cache.json"
    path.write_text("not json", encoding="utf-8")

    assert asyncio.run(PageCache(path).get()) is None


def test_product_info_needs_a_name() -> None:
    assert ProductInfo.from_dict({"price": "$5"}) is None
    assert ProductInfo.from_dict({"name": "Mug", "price": 5, "extra": "x"}) == ProductInfo(name="Mug", price="5")


def test_price_watches_accumulate(tmp_path: Path) -> None:
    watches = PriceWatchList(tmp_path / "watches.json")

    async def scenario():
        await watches.add(PriceWatch("Trail Shoe", "$89", "https://shop.example/p/1"))
        await watches.add(PriceWatch("Mug", "$5", "unknown"))
        return await watches.all()

    stored = asyncio.run(scenario())

    assert [(w.product_name, w.current_price) for w in stored] == [("Trail Shoe", "$89"), ("Mug", "$5")]


def test_missing_watch_file_is_empty(tmp_path: Path) -> None:
    assert asyncio.run(PriceWatchList(tmp_path / "none.json").all()) == []
