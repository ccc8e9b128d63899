"""
Price Watches
=============

Products the user asked the agent to keep an eye on. Each watch records
the product, the price when it was added and the page it came from.
"""

import asyncio
import json
import time
from dataclasses import asdict, dataclass, field
from pathlib import Path

from src.utils.logger import Logger

logger = Logger("PriceWatch")


@dataclass
class PriceWatch:
    product_name: str
    current_price: str
    url: str
    timestamp: float = field(default_factory=time.time)


class PriceWatchList:
    """JSON-file list of price watches."""

    def __init__(self, watch_file: Path):
        self.watch_file = Path(watch_file).expanduser()
        self._lock = asyncio.Lock()

    async def add(self, watch: PriceWatch) -> None:
        async with self._lock:
            await asyncio.to_thread(self._add_sync, watch)
        logger.info(f"Watching '{watch.product_name}' at {watch.current_price}")

    async def all(self) -> list[PriceWatch]:
        return await asyncio.to_thread(self._read)

    def _read(self) -> list[PriceWatch]:
        if not self.watch_file.exists():
            return []
        try:
            with open(self.watch_file, encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error("Price watch file unreadable", e)
            return []
        if not isinstance(raw, list):
            return []

        watches = []
        for item in raw:
            if not isinstance(item, dict) or "product_name" not in item:
                continue
            watches.append(PriceWatch(
                product_name=str(item["product_name"]),
                current_price=str(item.get("current_price", "")),
                url=str(item.get("url", "unknown")),
                timestamp=float(item.get("timestamp", 0.0)),
            ))
        return watches

    def _add_sync(self, watch: PriceWatch) -> None:
        watches = self._read()
        watches.append(watch)
        self.watch_file.parent.mkdir(parents=True, exist_ok=True)
        with open(self.watch_file, "w", encoding="utf-8") as f:
            json.dump([asdict(w) for w in watches], f, indent=2, ensure_ascii=False)
