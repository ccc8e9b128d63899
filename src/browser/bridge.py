"""
Browser Bridge
==============

HTTP client for the local bridge exposed by the FoxAgent browser
extension. The extension owns the tabs and the content scripts; the agent
only sends it small JSON commands.

Bridge API (all JSON):

    GET   /tabs/active          -> {"id": 12, "url": "https://..."}
    GET   /tabs/{id}            -> {"id": 12, "url": "...", "status": "complete"}
    POST  /tabs                 {"url": ..., "active": true} -> tab
    PATCH /tabs/{id}            {"url": ...} -> tab
    POST  /tabs/{id}/messages   {"type": "READ_PAGE", "payload": {...}} -> any

Content-script message types: READ_PAGE, CLICK_ELEMENT, FILL_FORM,
SCROLL_PAGE, EXTRACT_TABLES, SCREENSHOT_PAGE, SELECT_TEXT.

The bridge also answers "where is the user right now?" for the agent
loop: current_context() returns the active tab and its site, and is
called again before every model request and after every tool call.
"""

import asyncio
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlparse

import httpx

from src.utils.logger import Logger

logger = Logger("Browser")

UNKNOWN_SITE = "unknown"

# Extra wait after "complete" so late scripts can render
TAB_SETTLE_SECONDS = 0.8
TAB_POLL_SECONDS = 0.25


class BridgeError(Exception):
    """The bridge was unreachable or rejected a command."""


@dataclass(frozen=True)
class ExecutionContext:
    """
    Where tool calls take effect.

    Attributes:
        tab_id: Active tab, or None when no tab is available
        url: URL of the active tab
        site: Hostname used for permission checks ("unknown" without a tab)
    """
    tab_id: int | None = None
    url: str | None = None
    site: str = UNKNOWN_SITE

    @classmethod
    def for_tab(cls, tab_id: int | None, url: str | None) -> "ExecutionContext":
        return cls(tab_id=tab_id, url=url, site=site_from_url(url))


def site_from_url(url: str | None) -> str:
    """Hostname of a URL, or "unknown"."""
    if not url:
        return UNKNOWN_SITE
    try:
        hostname = urlparse(url).hostname
    except ValueError:
        return UNKNOWN_SITE
    return hostname or UNKNOWN_SITE


class BrowserBridge:
    """
    Async client for the extension bridge.

    Example:
        async with BrowserBridge("http://127.0.0.1:8765") as bridge:
            context = await bridge.current_context()
            page = await bridge.send_to_tab(context.tab_id, {"type": "READ_PAGE"})
    """

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 20.0,
        tab_load_timeout_seconds: float = 15.0,
        client: httpx.AsyncClient | None = None
    ):
        self.base_url = base_url.rstrip("/")
        self.tab_load_timeout_seconds = tab_load_timeout_seconds
        self._client = client or httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout_seconds
        )

    async def __aenter__(self) -> "BrowserBridge":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, payload: dict | None = None) -> Any:
        try:
            response = await self._client.request(method, path, json=payload)
        except httpx.HTTPError as e:
            raise BridgeError(f"Browser bridge unreachable: {e}") from e

        if response.status_code >= 400:
            raise BridgeError(
                f"Browser bridge error {response.status_code} on {method} {path}: "
                f"{response.text[:200]}"
            )

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise BridgeError(
                f"Browser bridge sent a non-JSON reply on {method} {path}: {response.text[:200]}"
            ) from e

    # ==========================================================================
    # Tabs
    # ==========================================================================

    async def active_tab(self) -> dict | None:
        """The focused tab, or None if the browser has none."""
        tab = await self._request("GET", "/tabs/active")
        if not isinstance(tab, dict) or tab.get("id") is None:
            return None
        return tab

    async def get_tab(self, tab_id: int) -> dict:
        return await self._request("GET", f"/tabs/{tab_id}")

    async def tab_url(self, tab_id: int) -> str | None:
        tab = await self.get_tab(tab_id)
        return tab.get("url") if tab else None

    async def create_tab(self, url: str, active: bool = True) -> dict:
        return await self._request("POST", "/tabs", {"url": url, "active": active})

    async def update_tab(self, tab_id: int, url: str) -> dict:
        return await self._request("PATCH", f"/tabs/{tab_id}", {"url": url})

    async def send_to_tab(self, tab_id: int, message: dict) -> Any:
        """Send a message to the tab's content script and return its reply."""
        logger.debug(f"→ tab {tab_id}: {message.get('type')}")
        return await self._request("POST", f"/tabs/{tab_id}/messages", message)

    async def wait_for_tab_load(self, tab_id: int) -> bool:
        """
        Poll until the tab reports status "complete".

        Returns:
            False if the load timeout elapsed first (callers carry on anyway)
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.tab_load_timeout_seconds

        while loop.time() < deadline:
            tab = await self.get_tab(tab_id)
            if tab and tab.get("status") == "complete":
                await asyncio.sleep(TAB_SETTLE_SECONDS)
                return True
            await asyncio.sleep(TAB_POLL_SECONDS)

        logger.warning(f"Tab {tab_id} did not finish loading in {self.tab_load_timeout_seconds:g}s")
        return False

    # ==========================================================================
    # Execution context
    # ==========================================================================

    async def current_context(self) -> ExecutionContext:
        """
        Describe the active tab for permission checks and tool execution.

        An unreachable bridge yields a tab-less context instead of an
        error; tools that need a tab then report it themselves.
        """
        try:
            tab = await self.active_tab()
        except BridgeError as e:
            logger.warning(f"No execution context: {e}")
            return ExecutionContext()

        if tab is None:
            return ExecutionContext()
        return ExecutionContext.for_tab(tab.get("id"), tab.get("url"))
