"""
Page Tools
==========

Tools that act on the page in the active tab. Each one sends a single
message to the tab's content script through the browser bridge and
returns the script's reply unchanged.

    read_page        READ_PAGE          read-only
    click_element    CLICK_ELEMENT      interact
    fill_form        FILL_FORM          interact
    scroll_page      SCROLL_PAGE        read-only
    extract_table    EXTRACT_TABLES     read-only
    screenshot_page  SCREENSHOT_PAGE    read-only
    select_text      SELECT_TEXT        read-only

read_page also stores what it read in the page cache so get_snapshot
can recall it after the user navigates away.
"""

from typing import Any

from src.browser.bridge import ExecutionContext
from src.harbor.policy import PermissionTier
from src.memory.page_cache import PageSnapshot, ProductInfo
from src.tools import ToolDefinition, ToolParameter
from src.tools.services import get_page_cache, require_bridge
from src.utils.logger import Logger

logger = Logger("PageTools")


async def _send(context: ExecutionContext, message_type: str, payload: dict | None = None) -> Any:
    message: dict[str, Any] = {"type": message_type}
    if payload is not None:
        message["payload"] = payload
    return await require_bridge().send_to_tab(context.tab_id, message)


async def _cache_page(page: Any, context: ExecutionContext) -> None:
    cache = get_page_cache()
    if cache is None or not isinstance(page, dict):
        return

    url = page.get("url") or context.url
    if not url:
        return

    snapshot = PageSnapshot(
        url=str(url),
        title=str(page.get("title", "")),
        markdown=str(page.get("markdown", "")),
        product=ProductInfo.from_dict(page.get("product") or {}),
    )
    try:
        await cache.put(snapshot)
    except OSError as e:
        # Cache failures never fail the read
        logger.error(f"Could not cache {url}", e)


# =============================================================================
# Implementations
# =============================================================================

async def _read_page(args: dict, context: ExecutionContext) -> Any:
    page = await _send(context, "READ_PAGE")
    await _cache_page(page, context)
    return page


async def _click_element(args: dict, context: ExecutionContext) -> Any:
    return await _send(context, "CLICK_ELEMENT", {"selector": str(args["selector"])})


async def _fill_form(args: dict, context: ExecutionContext) -> Any:
    return await _send(context, "FILL_FORM", {
        "selector": str(args["selector"]),
        "text": str(args["text"]),
        "submit": bool(args.get("submit", False)),
    })


async def _scroll_page(args: dict, context: ExecutionContext) -> Any:
    return await _send(context, "SCROLL_PAGE", {"direction": str(args["direction"])})


async def _extract_table(args: dict, context: ExecutionContext) -> Any:
    return await _send(context, "EXTRACT_TABLES")


async def _screenshot_page(args: dict, context: ExecutionContext) -> Any:
    return await _send(context, "SCREENSHOT_PAGE")


async def _select_text(args: dict, context: ExecutionContext) -> Any:
    return await _send(context, "SELECT_TEXT", {"selector": str(args["selector"])})


# =============================================================================
# Definitions
# =============================================================================

PAGE_TOOLS = [
    ToolDefinition(
        name="read_page",
        description=(
            "Read the current page. Returns page content (markdown), product info if on a "
            "product page, and a list of INTERACTIVE ELEMENTS with their exact CSS selectors. "
            "ALWAYS call this first before clicking or filling anything."
        ),
        parameters={},
        tier=PermissionTier.READ_ONLY,
        invoke=_read_page,
    ),
    ToolDefinition(
        name="click_element",
        description=(
            "Click an element on the current page. You can pass either an exact CSS selector "
            "from read_page results, OR the visible text of the element (e.g. \"Add to Cart\", "
            "\"Sign In\"). The element is highlighted before clicking."
        ),
        parameters={
            "selector": ToolParameter(
                type="string",
                description=(
                    "CSS selector from read_page results, OR the visible text of the element "
                    "to click (e.g. \"Add to Cart\")"
                ),
                required=True,
            ),
        },
        tier=PermissionTier.INTERACT,
        invoke=_click_element,
    ),
    ToolDefinition(
        name="fill_form",
        description=(
            "Type text into an input field. You can pass an exact CSS selector from read_page, "
            "OR a purpose keyword (\"search\", \"email\", \"password\"). Set submit=true to press "
            "Enter/submit after filling."
        ),
        parameters={
            "selector": ToolParameter(
                type="string",
                description=(
                    "CSS selector from read_page results, OR purpose keyword: "
                    "\"search\", \"email\", \"password\", \"query\""
                ),
                required=True,
            ),
            "text": ToolParameter(
                type="string",
                description="Text to type into the field",
                required=True,
            ),
            "submit": ToolParameter(
                type="boolean",
                description="If true, press Enter or click Submit after filling. Use this for search bars.",
            ),
        },
        tier=PermissionTier.INTERACT,
        invoke=_fill_form,
    ),
    ToolDefinition(
        name="scroll_page",
        description="Scroll the current page up or down to see more content.",
        parameters={
            "direction": ToolParameter(
                type="string",
                description="Scroll direction: \"up\" or \"down\"",
                required=True,
                enum=("up", "down"),
            ),
        },
        tier=PermissionTier.READ_ONLY,
        invoke=_scroll_page,
    ),
    ToolDefinition(
        name="extract_table",
        description=(
            "Extract all tables from the current page as structured data (array of rows). "
            "Great for comparison pages, pricing tables, specs, etc. Returns JSON."
        ),
        parameters={},
        tier=PermissionTier.READ_ONLY,
        invoke=_extract_table,
    ),
    ToolDefinition(
        name="screenshot_page",
        description=(
            "Describe the visible viewport: headings, images and layout currently on screen. "
            "Useful for understanding page state after interactions."
        ),
        parameters={},
        tier=PermissionTier.READ_ONLY,
        invoke=_screenshot_page,
    ),
    ToolDefinition(
        name="select_text",
        description=(
            "Select and extract specific text from the page by CSS selector or search term. "
            "Returns the text content of matching elements."
        ),
        parameters={
            "selector": ToolParameter(
                type="string",
                description="CSS selector or text to search for on the page",
                required=True,
            ),
        },
        tier=PermissionTier.READ_ONLY,
        invoke=_select_text,
    ),
]
