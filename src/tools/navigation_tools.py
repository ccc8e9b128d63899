"""
Navigation Tools
================

Tools that move the browser somewhere else. None of them need an active
tab: without one they open a new tab instead.

- navigate: go to a URL (current tab, or a new one)
- search_web: open a Google search and read the results
- draft_email: open a prefilled Gmail compose window (never sends)
"""

from typing import Any
from urllib.parse import quote

from src.browser.bridge import BridgeError, ExecutionContext
from src.harbor.policy import PermissionTier
from src.tools import ToolDefinition, ToolParameter
from src.tools.services import require_bridge
from src.utils.logger import Logger

logger = Logger("NavigationTools")

GOOGLE_SEARCH_URL = "https://www.google.com/search?q={query}"
GMAIL_COMPOSE_URL = "https://mail.google.com/mail/?view=cm&fs=1&to={to}&su={subject}&body={body}"


def build_search_url(query: str) -> str:
    return GOOGLE_SEARCH_URL.format(query=quote(query, safe=""))


def build_compose_url(to: str, subject: str, body: str) -> str:
    return GMAIL_COMPOSE_URL.format(
        to=quote(to, safe=""),
        subject=quote(subject, safe=""),
        body=quote(body, safe=""),
    )


async def _navigate(args: dict, context: ExecutionContext) -> Any:
    bridge = require_bridge()
    url = str(args["url"])

    if args.get("newTab"):
        tab = await bridge.create_tab(url, active=True)
        await bridge.wait_for_tab_load(tab["id"])
        return {
            "success": True,
            "tabId": tab["id"],
            "url": url,
            "message": f"Opened {url} in a new tab.",
        }

    if context.tab_id is None:
        return {"error": "No tab to navigate"}

    await bridge.update_tab(context.tab_id, url)
    await bridge.wait_for_tab_load(context.tab_id)
    return {"success": True, "url": url, "message": f"Navigated to {url}."}


async def _search_web(args: dict, context: ExecutionContext) -> Any:
    bridge = require_bridge()
    query = str(args["query"])
    url = build_search_url(query)

    if context.tab_id is None:
        tab = await bridge.create_tab(url, active=True)
        await bridge.wait_for_tab_load(tab["id"])
        return {
            "success": True,
            "searchQuery": query,
            "url": url,
            "tabId": tab["id"],
            "message": "Opened search results in new tab. Call read_page to see the content.",
        }

    await bridge.update_tab(context.tab_id, url)
    await bridge.wait_for_tab_load(context.tab_id)

    try:
        results = await bridge.send_to_tab(context.tab_id, {"type": "READ_PAGE"})
    except BridgeError as e:
        logger.warning(f"Search results not readable yet: {e}")
        return {
            "success": True,
            "searchQuery": query,
            "url": url,
            "message": "Navigated to search results. Call read_page to see the content.",
        }

    return {"success": True, "searchQuery": query, "url": url, "pageContent": results}


async def _draft_email(args: dict, context: ExecutionContext) -> Any:
    to = str(args.get("to") or "")
    subject = str(args.get("subject") or "")
    body = str(args.get("body") or "")

    tab = await require_bridge().create_tab(build_compose_url(to, subject, body), active=True)

    preview = body[:100] + ("..." if len(body) > 100 else "")
    return {
        "success": True,
        "tabId": tab.get("id") if tab else None,
        "message": (
            f"Email draft opened in Gmail.\n"
            f"- To: {to or '(empty)'}\n"
            f"- Subject: {subject}\n"
            f"- Body: {preview}\n\n"
            f"The user must review and click Send."
        ),
    }


NAVIGATION_TOOLS = [
    ToolDefinition(
        name="navigate",
        description="Navigate to a URL. Opens in the current tab by default, or a new tab if newTab=true.",
        parameters={
            "url": ToolParameter(type="string", description="Full URL to navigate to", required=True),
            "newTab": ToolParameter(type="boolean", description="If true, open in a new tab."),
        },
        tier=PermissionTier.NAVIGATE,
        invoke=_navigate,
        requires_tab=False,
    ),
    ToolDefinition(
        name="search_web",
        description=(
            "Search Google directly. Much more reliable than trying to fill a search bar. "
            "Returns the search results page content. Use this for finding products, prices, "
            "information, etc."
        ),
        parameters={
            "query": ToolParameter(
                type="string",
                description=(
                    "Search query (e.g. \"Nike Air Max 270 price comparison\", "
                    "\"best hoodies under $50\")"
                ),
                required=True,
            ),
        },
        tier=PermissionTier.NAVIGATE,
        invoke=_search_web,
        requires_tab=False,
    ),
    ToolDefinition(
        name="draft_email",
        description=(
            "Open a Gmail compose window with pre-filled To, Subject, and Body. The email is NOT "
            "sent; it opens as a draft for the user to review."
        ),
        parameters={
            "to": ToolParameter(type="string", description="Recipient email address (leave empty if unknown)"),
            "subject": ToolParameter(type="string", description="Email subject line", required=True),
            "body": ToolParameter(
                type="string",
                description="Email body text. Can include line breaks with \\n.",
                required=True,
            ),
        },
        tier=PermissionTier.INTERACT,
        invoke=_draft_email,
        requires_tab=False,
    ),
]
