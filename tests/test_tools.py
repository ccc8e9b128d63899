from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any
from urllib.parse import parse_qs, urlparse

import pytest

from src.browser.bridge import BridgeError, ExecutionContext
from src.harbor.policy import PermissionTier
from src.memory.page_cache import PageCache
from src.memory.price_watch import PriceWatchList
from src.tools import ToolRegistry, register_all_tools
from src.tools import services
from src.tools.navigation_tools import build_compose_url, build_search_url
from tests.fakes import SHOP_CONTEXT

NO_TAB = ExecutionContext()


class FakeBridge:
    def __init__(self, page: Any = None, fail_reads: bool = False) -> None:
        self.page = page if page is not None else {
            "url": "https://shop.example/p/1",
            "title": "Trail Shoe",
            "markdown": "# Trail Shoe\n$89",
            "product": {"name": "Trail Shoe", "price": "$89"},
        }
        self.fail_reads = fail_reads
        self.sent: list[tuple[int, dict]] = []
        self.created: list[str] = []
        self.updated: list[tuple[int, str]] = []

    async def send_to_tab(self, tab_id: int, message: dict) -> Any:
        self.sent.append((tab_id, message))
        if self.fail_reads:
            raise BridgeError("no content script")
        if message["type"] == "READ_PAGE":
            return self.page
        return {"success": True}

    async def create_tab(self, url: str, active: bool = True) -> dict:
        self.created.append(url)
        return {"id": 99, "url": url}

    async def update_tab(self, tab_id: int, url: str) -> dict:
        self.updated.append((tab_id, url))
        return {"id": tab_id, "url": url}

    async def wait_for_tab_load(self, tab_id: int) -> bool:
        return True

    async def tab_url(self, tab_id: int) -> str | None:
        return "https://shop.example/from-tab"


@pytest.fixture
def bridge(tmp_path: Path):
    fake = FakeBridge()
    services.set_browser_bridge(fake)
    services.set_page_cache(PageCache(tmp_path / "cache.json"))
    services.set_price_watches(PriceWatchList(tmp_path / "watches.json"))
    yield fake
    services.set_browser_bridge(None)
    services.set_page_cache(None)
    services.set_price_watches(None)


@pytest.fixture
def registry() -> ToolRegistry:
    return register_all_tools()


def _invoke(registry: ToolRegistry, name: str, args: dict, context: ExecutionContext = SHOP_CONTEXT) -> Any:
    return asyncio.run(registry.get(name).invoke(args, context))


def test_builtin_tools_and_tiers(registry: ToolRegistry) -> None:
    tiers = {tool.name: tool.tier for tool in registry.get_all()}

    assert tiers == {
        "read_page": PermissionTier.READ_ONLY,
        "click_element": PermissionTier.INTERACT,
        "fill_form": PermissionTier.INTERACT,
        "scroll_page": PermissionTier.READ_ONLY,
        "extract_table": PermissionTier.READ_ONLY,
        "screenshot_page": PermissionTier.READ_ONLY,
        "select_text": PermissionTier.READ_ONLY,
        "navigate": PermissionTier.NAVIGATE,
        "search_web": PermissionTier.NAVIGATE,
        "draft_email": PermissionTier.INTERACT,
        "get_snapshot": PermissionTier.READ_ONLY,
        "translate_text": PermissionTier.READ_ONLY,
        "watch_price": PermissionTier.READ_ONLY,
    }
    assert register_all_tools() is registry
    assert len(registry) == 13


def test_registry_rejects_duplicates(registry: ToolRegistry) -> None:
    with pytest.raises(ValueError):
        ToolRegistry([registry.get("read_page"), registry.get("read_page")])


def test_resolve_name(registry: ToolRegistry) -> None:
    assert registry.resolve_name("Read_Page") is None
    assert registry.resolve_name("Read_Page", case_sensitive=False) == "read_page"


def test_schemas_mark_required_parameters(registry: ToolRegistry) -> None:
    schema = registry.get("fill_form").to_openai_function()["function"]["parameters"]

    assert schema["required"] == ["selector", "text"]
    assert schema["properties"]["submit"]["type"] == "boolean"
    scroll = registry.get("scroll_page").to_openai_function()["function"]["parameters"]
    assert scroll["properties"]["direction"]["enum"] == ["up", "down"]


def test_tab_tools_send_content_script_messages(registry: ToolRegistry, bridge: FakeBridge) -> None:
    _invoke(registry, "click_element", {"selector": "Add to Cart"})
    _invoke(registry, "fill_form", {"selector": "search", "text": 42, "submit": True})
    _invoke(registry, "scroll_page", {"direction": "down"})
    _invoke(registry, "extract_table", {})

    assert bridge.sent == [
        (7, {"type": "CLICK_ELEMENT", "payload": {"selector": "Add to Cart"}}),
        (7, {"type": "FILL_FORM", "payload": {"selector": "search", "text": "42", "submit": True}}),
        (7, {"type": "SCROLL_PAGE", "payload": {"direction": "down"}}),
        (7, {"type": "EXTRACT_TABLES"}),
    ]


def test_read_page_caches_snapshot(registry: ToolRegistry, bridge: FakeBridge) -> None:
    page = _invoke(registry, "read_page", {})
    snapshot = _invoke(registry, "get_snapshot", {}, NO_TAB)

    assert page["title"] == "Trail Shoe"
    assert snapshot["source"] == "page-cache"
    assert snapshot["url"] == "https://shop.example/p/1"
    assert snapshot["product"]["price"] == "$89"
    assert snapshot["content"].startswith("# Trail Shoe")


def test_get_snapshot_without_cache_entries(registry: ToolRegistry, bridge: FakeBridge) -> None:
    result = _invoke(registry, "get_snapshot", {}, NO_TAB)

    assert result["success"] is False
    assert "No cached page snapshots" in result["error"]


def test_navigate_needs_tab_unless_new_tab(registry: ToolRegistry, bridge: FakeBridge) -> None:
    assert _invoke(registry, "navigate", {"url": "https://a.example"}, NO_TAB) == {"error": "No tab to navigate"}

    opened = _invoke(registry, "navigate", {"url": "https://a.example", "newTab": True}, NO_TAB)
    moved = _invoke(registry, "navigate", {"url": "https://b.example"})

    assert opened["tabId"] == 99
    assert moved["success"] is True
    assert bridge.created == ["https://a.example"]
    assert bridge.updated == [(7, "https://b.example")]


def test_search_web_reads_results(registry: ToolRegistry, bridge: FakeBridge) -> None:
    result = _invoke(registry, "search_web", {"query": "trail shoes"})

    assert result["url"] == "https://www.google.com/search?q=trail%20shoes"
    assert result["pageContent"]["title"] == "Trail Shoe"


def test_search_web_without_tab_opens_one(registry: ToolRegistry, bridge: FakeBridge) -> None:
    result = _invoke(registry, "search_web", {"query": "mugs"}, NO_TAB)

    assert result["tabId"] == 99
    assert bridge.created == [build_search_url("mugs")]


def test_search_web_tolerates_unreadable_results(registry: ToolRegistry, bridge: FakeBridge) -> None:
    bridge.fail_reads = True

    result = _invoke(registry, "search_web", {"query": "mugs"})

    assert result["success"] is True
    assert "Call read_page" in result["message"]


def test_draft_email_opens_compose_window(registry: ToolRegistry, bridge: FakeBridge) -> None:
    result = _invoke(registry, "draft_email", {"to": "a@b.example", "subject": "Hi there", "body": "x" * 150}, NO_TAB)

    query = parse_qs(urlparse(bridge.created[0]).query)
    assert query["view"] == ["cm"]
    assert query["to"] == ["a@b.example"]
    assert query["su"] == ["Hi there"]
    assert "The user must review and click Send." in result["message"]
    assert "x" * 100 + "..." in result["message"]


def test_build_compose_url_escapes() -> None:
    assert "su=a%26b" in build_compose_url("", "a&b", "")


def test_translate_text_hands_back_request(registry: ToolRegistry) -> None:
    result = _invoke(registry, "translate_text", {"text": "Hola", "targetLanguage": "English"}, NO_TAB)

    assert result["action"] == "translate"
    assert result["targetLanguage"] == "English"


def test_watch_price_uses_context_url(registry: ToolRegistry, bridge: FakeBridge) -> None:
    result = _invoke(registry, "watch_price", {"productName": "Trail Shoe", "currentPrice": "$89"})

    watches = asyncio.run(services.require_price_watches().all())
    assert result["watchUrl"] == "https://shop.example/p/1"
    assert [(w.product_name, w.url) for w in watches] == [("Trail Shoe", "https://shop.example/p/1")]


def test_watch_price_asks_bridge_when_url_unknown(registry: ToolRegistry, bridge: FakeBridge) -> None:
    result = _invoke(
        registry, "watch_price", {"productName": "Mug", "currentPrice": "$5"}, ExecutionContext(tab_id=3)
    )

    assert result["watchUrl"] == "https://shop.example/from-tab"


def test_services_must_be_set() -> None:
    services.set_browser_bridge(None)

    with pytest.raises(RuntimeError):
        services.require_bridge()
