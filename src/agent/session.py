"""
Chat Session
============

One chat surface (the CLI, a sidebar). Keeps the user/assistant history
between turns and builds a fresh Conversation for every message:

    system prompt + current page context
    + previous user/assistant turns
    + the new user message

Tool traffic from a run is not carried into the history; only the
question and the final answer are.

This is also where model transport failures become text: the agent
raises LLMTransportError and the session answers "Error: ...".
"""

import asyncio

from src.agent.context import SUMMARY_SYSTEM_PROMPT, ContextAssembler, ContextProvider
from src.agent.conversation import Conversation, Message
from src.agent.core import Agent, AgentEventHandler
from src.agent.llm import LLMTransportError, ModelClient
from src.utils.logger import Logger

logger = Logger("Session")

SUMMARY_CONTENT_CHARS = 5000


class ChatSession:
    """
    Multi-turn chat on top of the agent loop.

    Example:
        session = ChatSession(agent, assembler, bridge, model_client)
        print(await session.handle_message("Is there a cheaper version of this?"))
        print(await session.summarize_page())
        session.clear_history()
    """

    def __init__(
        self,
        agent: Agent,
        assembler: ContextAssembler,
        context_provider: ContextProvider,
        model: ModelClient
    ):
        self.agent = agent
        self.assembler = assembler
        self.context_provider = context_provider
        self.model = model
        self.history: list[Message] = []
        self._turn_lock = asyncio.Lock()

    async def handle_message(
        self,
        content: str,
        cancel_event: asyncio.Event | None = None,
        on_event: AgentEventHandler | None = None
    ) -> str:
        """
        Answer one user message, running tools as needed.

        Returns:
            The answer, or "Error: ..." when the model provider or anything
            else in the turn failed
        """
        async with self._turn_lock:
            logger.info(f"User: {content[:80]}")

            try:
                context = await self.context_provider.current_context()
                system_prompt = await self.assembler.build_system_prompt(context)
                conversation = Conversation.start(system_prompt, self.history, content)
                result = await self.agent.run(conversation, cancel_event=cancel_event, on_event=on_event)
            except LLMTransportError as e:
                return f"Error: {e}"
            except Exception as e:
                logger.error("Error handling message", e)
                return "Error: something went wrong while handling that message."

            self.history.append(Message.user(content))
            self.history.append(Message.assistant(result.answer))
            return result.answer

    async def summarize_page(self) -> str:
        """Summarize the active tab without tools."""
        async with self._turn_lock:
            context = await self.context_provider.current_context()
            if context.tab_id is None:
                return "No active tab found."

            page = await self.assembler.read_page(context)
            if page is None:
                return (
                    "Could not read the page. The content script may not be loaded on this page "
                    "(try refreshing or navigating to a regular webpage)."
                )

            messages = [
                {"role": "system", "content": SUMMARY_SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": (
                        f"Summarize this page:\n\nTitle: {page.title}\nURL: {page.url}\n\n"
                        f"Content:\n{page.markdown[:SUMMARY_CONTENT_CHARS]}"
                    ),
                },
            ]

            try:
                summary = await self.model.complete_text(messages)
            except LLMTransportError as e:
                return f"Error summarizing: {e}"
            except Exception as e:
                logger.error("Error summarizing page", e)
                return "Error summarizing: something went wrong."

            summary = summary or "No summary generated."
            self.history.append(Message.user(f"Summarize this page: {page.url}"))
            self.history.append(Message.assistant(summary))
            return summary

    def clear_history(self) -> None:
        self.history.clear()
        logger.info("History cleared")
