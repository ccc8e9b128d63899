"""
Utility Tools
=============

Tools that work from what the agent already knows rather than from the
live page: cached snapshots, translation and price watches.
"""

from datetime import datetime, timezone
from typing import Any

from src.browser.bridge import BridgeError, ExecutionContext
from src.harbor.policy import PermissionTier
from src.memory.price_watch import PriceWatch
from src.tools import ToolDefinition, ToolParameter
from src.tools.services import get_page_cache, require_bridge, require_price_watches
from src.utils.logger import Logger

logger = Logger("UtilityTools")

SNAPSHOT_CONTENT_CHARS = 3000


async def _get_snapshot(args: dict, context: ExecutionContext) -> Any:
    cache = get_page_cache()
    if cache is None:
        return {"success": False, "error": "Page cache is not available."}

    snapshot = await cache.get(str(args["url"]) if args.get("url") else None)

    if snapshot is None:
        product = await cache.last_product()
        if product is not None:
            price = f" at {product.price}" if product.price else ""
            return {
                "success": True,
                "source": "product-cache",
                "product": vars(product),
                "message": f"Found cached product: {product.name}{price}",
            }
        return {"success": False, "error": "No cached page snapshots found. Browse to a page first."}

    return {
        "success": True,
        "source": "page-cache",
        "title": snapshot.title,
        "url": snapshot.url,
        "product": vars(snapshot.product) if snapshot.product else None,
        "content": snapshot.markdown[:SNAPSHOT_CONTENT_CHARS],
        "cachedAt": datetime.fromtimestamp(snapshot.timestamp, tz=timezone.utc).isoformat(),
    }


async def _translate_text(args: dict, context: ExecutionContext) -> Any:
    # The model does the translation itself; this hands the request back
    text = str(args["text"])
    target = str(args["targetLanguage"])
    return {
        "success": True,
        "action": "translate",
        "text": text,
        "targetLanguage": target,
        "message": f"Translation request queued. Translate the following to {target}: \"{text[:200]}\"",
    }


async def _watch_price(args: dict, context: ExecutionContext) -> Any:
    product_name = str(args["productName"])
    current_price = str(args["currentPrice"])

    watch_url = context.url or "unknown"
    if context.tab_id is not None and not context.url:
        try:
            watch_url = await require_bridge().tab_url(context.tab_id) or "unknown"
        except BridgeError as e:
            logger.warning(f"Could not read tab URL: {e}")

    await require_price_watches().add(PriceWatch(
        product_name=product_name,
        current_price=current_price,
        url=watch_url,
    ))

    return {
        "success": True,
        "message": (
            f"Now watching \"{product_name}\" at {current_price}. "
            f"You'll be notified if the price changes."
        ),
        "watchUrl": watch_url,
    }


UTILITY_TOOLS = [
    ToolDefinition(
        name="get_snapshot",
        description=(
            "Retrieve cached context from a previously viewed page. Use this when the user says "
            "\"like this\" or \"similar to what I was looking at\". Returns saved product info, "
            "title, and content."
        ),
        parameters={
            "url": ToolParameter(
                type="string",
                description="URL of the page to retrieve. Leave empty to get the most recent snapshot.",
            ),
        },
        tier=PermissionTier.READ_ONLY,
        invoke=_get_snapshot,
        requires_tab=False,
    ),
    ToolDefinition(
        name="translate_text",
        description=(
            "Translate text to a target language. Good for translating page content, product "
            "descriptions, etc."
        ),
        parameters={
            "text": ToolParameter(type="string", description="The text to translate", required=True),
            "targetLanguage": ToolParameter(
                type="string",
                description="Target language (e.g. \"Spanish\", \"French\", \"Arabic\", \"Chinese\")",
                required=True,
            ),
        },
        tier=PermissionTier.READ_ONLY,
        invoke=_translate_text,
        requires_tab=False,
    ),
    ToolDefinition(
        name="watch_price",
        description=(
            "Start watching the current product page for price changes. Remembers the current "
            "price so a change can be reported on future visits."
        ),
        parameters={
            "productName": ToolParameter(type="string", description="Name of the product to watch", required=True),
            "currentPrice": ToolParameter(type="string", description="Current price of the product", required=True),
        },
        tier=PermissionTier.READ_ONLY,
        invoke=_watch_price,
        requires_tab=False,
    ),
]
