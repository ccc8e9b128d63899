"""
FoxAgent - Main Entry Point
===========================

This is the main entry point for the terminal agent. It:
1. Loads configuration
2. Initializes all components (bridge, memory, Harbor, tools, agent)
3. Starts the policy janitor
4. Runs the chat REPL

Run with:
    python -m src.main

Or after installing:
    foxagent

REPL commands:
    /summarize   summarize the active tab
    /clear       forget the chat history
    /log         show recent tool actions
    /quit        exit
"""

import asyncio
import signal
import sys

from src.harbor.audit import ActionLog
from src.utils.config import Config, get_config
from src.utils.console import ConsoleReader
from src.utils.logger import Logger

# Initialize logging early
main_logger = Logger("Main")

PROMPT = "you > "
LOG_LINES = 20

HELP_TEXT = """Commands:
  /summarize   summarize the active tab
  /clear       forget the chat history
  /log         show recent tool actions
  /quit        exit"""


def format_action_log(action_log: ActionLog, limit: int = LOG_LINES) -> str:
    entries = action_log.entries(limit=limit)
    if not entries:
        return "No actions yet."

    lines = []
    for entry in entries:
        line = f"{entry.tool:<16} {entry.site:<28} {entry.decision:<14} {entry.outcome.value}"
        if entry.details:
            line += f"  ({entry.details[:60]})"
        lines.append(line)
    return "\n".join(lines)


async def _repl(session, action_log: ActionLog, reader: ConsoleReader) -> None:
    """Read user input until /quit or EOF."""
    print("FoxAgent ready. Type /help for commands.")

    while True:
        try:
            line = await reader.read(PROMPT)
        except EOFError:
            print()
            return

        text = line.strip()
        if not text:
            continue

        if text in ("/quit", "/exit"):
            return
        if text == "/help":
            print(HELP_TEXT)
            continue
        if text == "/clear":
            session.clear_history()
            print("History cleared.")
            continue
        if text == "/log":
            print(format_action_log(action_log))
            continue
        if text == "/summarize":
            print(f"\nfoxagent > {await session.summarize_page()}\n")
            continue

        answer = await session.handle_message(text)
        print(f"\nfoxagent > {answer}\n")


async def main(config: Config | None = None):
    """
    Main async entry point.

    Wires every component and runs the REPL.
    """
    main_logger.info("Starting FoxAgent...")

    try:
        # 1. Load configuration
        # This validates that all required env vars are set
        main_logger.info("Loading configuration...")
        config = config or get_config()
    except ValueError as e:
        main_logger.error("Invalid configuration", e)
        sys.exit(1)

    # 2. Browser bridge
    main_logger.info(f"Connecting to browser bridge at {config.browser.bridge_url}...")
    from src.browser import BrowserBridge
    bridge = BrowserBridge(
        config.browser.bridge_url,
        timeout_seconds=config.browser.timeout_seconds,
        tab_load_timeout_seconds=config.browser.tab_load_timeout_seconds
    )

    # 3. Memory
    from src.memory import PageCache, PriceWatchList
    page_cache = PageCache(config.data.page_cache_file)
    price_watches = PriceWatchList(config.data.price_watch_file)

    # 4. Tools
    main_logger.info("Setting up tools...")
    from src.tools import register_all_tools
    from src.tools.services import set_browser_bridge, set_page_cache, set_price_watches
    set_browser_bridge(bridge)
    set_page_cache(page_cache)
    set_price_watches(price_watches)
    registry = register_all_tools()

    # 5. Harbor
    main_logger.info("Setting up Harbor...")
    from src.harbor import ConsolePrompter, JSONLActionSink, PermissionGate, PolicyStore
    from src.harbor.janitor import PolicyJanitor
    store = PolicyStore(config.harbor.policy_file)
    # The REPL and the permission prompt share one stdin reader
    reader = ConsoleReader()
    gate = PermissionGate(ConsolePrompter(reader), timeout_seconds=config.harbor.permission_timeout_seconds)
    action_log = ActionLog(cap=config.harbor.action_log_cap)
    if config.harbor.action_log_file:
        action_log.add_sink(JSONLActionSink(config.harbor.action_log_file))

    janitor = PolicyJanitor(store, page_cache, interval_minutes=config.harbor.purge_interval_minutes)

    # 6. Agent
    main_logger.info("Creating agent...")
    from src.agent import Agent, ChatSession, ContextAssembler, ModelClient
    model = ModelClient(config.llm)
    agent = Agent(
        transport=model,
        registry=registry,
        policy_store=store,
        gate=gate,
        context_provider=bridge,
        action_log=action_log,
        max_iterations=config.agent.max_iterations,
        session_grant_hours=config.harbor.session_grant_hours
    )
    assembler = ContextAssembler(bridge, page_context_chars=config.agent.page_context_chars)
    session = ChatSession(agent, assembler, bridge, model)

    if not await model.test_connection():
        main_logger.warning(f"Could not reach {config.llm.provider}; requests may fail")

    # Set up graceful shutdown
    loop = asyncio.get_running_loop()
    repl_task = asyncio.current_task()
    if sys.platform != "win32" and repl_task is not None:
        loop.add_signal_handler(signal.SIGTERM, repl_task.cancel)

    janitor.start()
    try:
        await _repl(session, action_log, reader)
    except asyncio.CancelledError:
        main_logger.info("Received termination signal")
    finally:
        await _shutdown(janitor, bridge, action_log)


async def _shutdown(janitor, bridge, action_log: ActionLog):
    """
    Graceful shutdown handler.

    Args:
        janitor: The policy janitor
        bridge: The browser bridge client
        action_log: The audit log; its file sink is flushed
    """
    main_logger.info("Shutting down...")

    # Stop the scheduler
    janitor.stop()

    # Close the bridge connection
    await bridge.close()

    # Flush pending audit lines
    action_log.close()

    main_logger.info("Shutdown complete")


def run():
    """
    Synchronous entry point.

    This is called when running with `foxagent` command.
    """
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
