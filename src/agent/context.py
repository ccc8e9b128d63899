"""
Context Assembly
================

Builds what the model sees at the start of a run:
- The FoxAgent system prompt (tools, inline-tag fallback, strategy)
- The current page, read from the active tab and truncated

Also defines ContextProvider, the "where is the user now?" interface the
agent loop calls before every model request and after every tool call.
BrowserBridge implements it; tests use fixed contexts.
"""

from dataclasses import dataclass
from typing import Protocol

from src.browser.bridge import BridgeError, BrowserBridge, ExecutionContext
from src.utils.logger import Logger

logger = Logger("Context")


DEFAULT_SYSTEM_PROMPT = """You are FoxAgent, an AI browser agent that can see, understand, and interact with web pages.

## How to Call Tools
You have tools available. **Preferred method: use the native function-calling / tool-calling feature** provided by the API.

If native function-calling is NOT available to you, use this XML format instead. The system will parse and execute it automatically:
  <tool_name param1="value1" param2="value2" />
For example:
  <read_page />
  <search_web query="best headphones under $100" />
  <navigate url="https://example.com" />
  <click_element selector="#add-to-cart" />
  <fill_form selector="search" text="running shoes" submit="true" />
  <draft_email to="alice@example.com" subject="Hello" body="Hi there!" />
  <scroll_page direction="down" />
  <get_snapshot />

## Your Available Tools
- **read_page**: Read the current page. Returns content, product info, and interactive elements with CSS selectors. ALWAYS call this first before clicking or filling.
- **click_element**: Click an element. Pass a CSS selector from read_page, or visible text (e.g. "Add to Cart").
- **fill_form**: Type into an input. Pass a selector or keyword ("search", "email"). Set submit=true to press Enter.
- **navigate**: Go to a URL. Set newTab=true to open in a new tab.
- **search_web**: Search Google directly. Much more reliable than filling a search bar. Returns page content.
- **draft_email**: Open a Gmail compose draft with to, subject, body. NOT sent automatically.
- **scroll_page**: Scroll the page up or down.
- **get_snapshot**: Retrieve cached page/product context from a previously viewed page.
- **extract_table**, **screenshot_page**, **select_text**: Pull tables, a viewport description, or specific text from the page.
- **translate_text**, **watch_price**: Translate text; remember a product's price.

## Strategy
1. If page content is ALREADY provided in "CURRENT PAGE CONTEXT" below, use it directly. Do NOT call read_page again. Only call read_page if no context was provided or you navigated to a new page.
2. Use search_web for finding products, prices, alternatives. Don't navigate to Google manually.
3. For product comparisons: use the provided page context for the current product, then search_web for alternatives.
4. When user says "like this", "similar", "cheaper": use get_snapshot to recall previous product, then search_web.
5. Use exact CSS selectors from read_page results. Never guess selectors.
6. Explain what you're doing and summarize results with bullet points.
7. If a tool fails, explain what happened and try an alternative.
8. For summarization requests, just summarize the provided page context directly. No tools needed."""

SUMMARY_SYSTEM_PROMPT = (
    "You are FoxAgent. Summarize the following web page content concisely. "
    "Use bullet points for key information. Be brief but thorough."
)


class ContextProvider(Protocol):
    """Reports the active tab and site."""

    async def current_context(self) -> ExecutionContext:
        ...


@dataclass(frozen=True)
class PageContent:
    url: str
    title: str
    markdown: str


class ContextAssembler:
    """
    Assembles the system prompt for a chat turn.

    Example:
        assembler = ContextAssembler(bridge, page_context_chars=3000)
        context = await bridge.current_context()
        system_prompt = await assembler.build_system_prompt(context)
    """

    def __init__(
        self,
        bridge: BrowserBridge | None = None,
        page_context_chars: int = 3000,
        base_prompt: str = DEFAULT_SYSTEM_PROMPT
    ):
        self.bridge = bridge
        self.page_context_chars = page_context_chars
        self.base_prompt = base_prompt

    async def read_page(self, context: ExecutionContext) -> PageContent | None:
        """
        Read the active tab's content script.

        Returns:
            The page, or None when there is no tab, no content script, or
            no readable content
        """
        if self.bridge is None or context.tab_id is None:
            return None

        try:
            page = await self.bridge.send_to_tab(context.tab_id, {"type": "READ_PAGE"})
        except BridgeError as e:
            # Content script not available on this page
            logger.debug(f"Page context unavailable: {e}")
            return None

        if not isinstance(page, dict) or not page.get("markdown"):
            return None

        return PageContent(
            url=str(page.get("url") or context.url or ""),
            title=str(page.get("title") or "Unknown"),
            markdown=str(page["markdown"]),
        )

    def format_page_context(self, page: PageContent) -> str:
        return (
            f"\n\n## CURRENT PAGE CONTEXT\n"
            f"Current tab: {page.url}\n"
            f"Page title: {page.title}\n"
            f"Page content (markdown):\n{page.markdown[:self.page_context_chars]}"
        )

    async def build_system_prompt(self, context: ExecutionContext) -> str:
        page = await self.read_page(context)
        if page is None:
            return self.base_prompt

        logger.debug(f"Including page context for {page.url}")
        return self.base_prompt + self.format_page_context(page)
