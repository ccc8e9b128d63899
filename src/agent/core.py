"""
Agent Core
==========

The tool-calling loop. One run takes a Conversation, talks to the model
until it answers in plain text, and hands the conversation back with
everything that happened appended.

Agent Loop:
    Refresh execution context (active tab / site)
         │
         ▼
    Model request with tools
         │
         ▼
    Extract invocations ──── none ────► Return the text verbatim
         │
         ▼
    For each invocation, in order:
        Harbor decision ── deny ──► {"error": "...blocked..."}
             │
            ask ──► Permission gate (timeout = deny)
             │
        Execute ──► ToolResult (errors included)
             │
        Refresh execution context
         │
         ▼
    Append results ──► next iteration

Results go back in the shape the model used:
- Structured calls: an assistant turn with tool_calls, then one
  tool-role message per call keyed by its id
- Inline tags: the raw assistant text, then a single user turn
  "Tool results:" with one line per call

The loop stops after max_iterations model requests no matter what the
model does. Denied and failed calls count like any other. Only
LLMTransportError escapes; every other failure becomes a result the
model can react to.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from src.agent.context import ContextProvider
from src.agent.conversation import Conversation, Message
from src.agent.extractor import ToolInvocation, extract
from src.agent.llm import ChatTransport
from src.agent.tools_executor import ToolCallResult, ToolExecutor, unknown_tool_error
from src.browser.bridge import ExecutionContext
from src.harbor.audit import AUTO_APPROVED, ActionLog, ActionLogEntry, Outcome
from src.harbor.engine import decide, escalate_critical
from src.harbor.gate import PermissionGate
from src.harbor.policy import SESSION_GRANT_HOURS, Decision, UserDecision
from src.harbor.store import PolicyStore
from src.tools import ToolDefinition, ToolRegistry, ToolResult
from src.utils.logger import Logger

logger = Logger("Agent")

DEFAULT_MAX_ITERATIONS = 10

NO_RESPONSE_MESSAGE = "No response from LLM."
MAX_ITERATIONS_MESSAGE = "Agent reached maximum iterations. Please try a simpler request."
CANCELLED_MESSAGE = "Request cancelled."

# Audit label for calls that never reached a policy decision
NOT_EVALUATED = "not-evaluated"


class AgentState(str, Enum):
    REQUESTING = "requesting"
    EXTRACTING = "extracting"
    DECIDING = "deciding"
    AWAITING_HUMAN = "awaiting-human"
    EXECUTING = "executing"
    DONE = "done"


class StopReason(str, Enum):
    ANSWER = "answer"
    NO_RESPONSE = "no-response"
    MAX_ITERATIONS = "max-iterations"
    CANCELLED = "cancelled"


@dataclass
class AgentRunResult:
    """
    How a run ended.

    Attributes:
        answer: Text for the user (always set)
        stop_reason: Why the loop stopped
        iterations: Model requests made
        conversation: The conversation, with the run's turns appended
    """
    answer: str
    stop_reason: StopReason
    iterations: int
    conversation: Conversation


AgentEventHandler = Callable[[AgentState, dict[str, Any]], None]


class Agent:
    """
    Runs the tool-calling loop.

    Example:
        agent = Agent(
            transport=ModelClient(config.llm),
            registry=register_all_tools(),
            policy_store=PolicyStore(config.harbor.policy_file),
            gate=PermissionGate(ConsolePrompter()),
            context_provider=bridge,
            action_log=ActionLog(cap=100),
        )

        conversation = Conversation.start(system_prompt, user_message="Find cheaper shoes")
        result = await agent.run(conversation)
        print(result.answer)
    """

    def __init__(
        self,
        transport: ChatTransport,
        registry: ToolRegistry,
        policy_store: PolicyStore,
        gate: PermissionGate,
        context_provider: ContextProvider,
        action_log: ActionLog | None = None,
        executor: ToolExecutor | None = None,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        session_grant_hours: int = SESSION_GRANT_HOURS
    ):
        self.transport = transport
        self.registry = registry
        self.policy_store = policy_store
        self.gate = gate
        self.context_provider = context_provider
        self.action_log = action_log if action_log is not None else ActionLog()
        self.executor = executor or ToolExecutor(registry)
        self.max_iterations = max(1, max_iterations)
        self.session_grant_hours = session_grant_hours

        self._tool_schemas = registry.get_openai_functions()

        logger.info(f"Agent ready with {len(registry)} tools, max {self.max_iterations} iterations")

    async def run(
        self,
        conversation: Conversation,
        cancel_event: asyncio.Event | None = None,
        on_event: AgentEventHandler | None = None
    ) -> AgentRunResult:
        """
        Drive the conversation until the model answers.

        Args:
            conversation: Messages so far; the run appends to it
            cancel_event: Checked before every model request
            on_event: Optional callback for state changes (UI progress)

        Returns:
            AgentRunResult with the answer and the updated conversation

        Raises:
            LLMTransportError: When the model provider fails
        """
        emit = on_event or (lambda state, detail: None)
        iterations = 0

        while iterations < self.max_iterations:
            if cancel_event is not None and cancel_event.is_set():
                logger.info("Run cancelled")
                return self._finish(CANCELLED_MESSAGE, StopReason.CANCELLED, iterations, conversation, emit)

            iterations += 1
            context = await self.context_provider.current_context()

            emit(AgentState.REQUESTING, {"iteration": iterations, "site": context.site})
            logger.debug(f"Iteration {iterations} on {context.site}")

            reply = await self.transport.complete(conversation.to_openai_messages(), self._tool_schemas)
            if reply is None or reply.is_empty:
                logger.warning("Model returned no response")
                return self._finish(NO_RESPONSE_MESSAGE, StopReason.NO_RESPONSE, iterations, conversation, emit)

            emit(AgentState.EXTRACTING, {"iteration": iterations})
            extraction = extract(reply.to_turn(), self.registry)

            if extraction.is_final:
                return self._finish(extraction.clean_text, StopReason.ANSWER, iterations, conversation, emit)

            if extraction.structured:
                conversation.append(Message.assistant(reply.content, extraction.invocations))
                for invocation in extraction.invocations:
                    result, context = await self._handle(invocation, context, emit)
                    conversation.append(ToolCallResult.for_invocation(invocation, result).to_message())
            else:
                # Tag-only models cannot read tool-role messages
                conversation.append(Message.assistant(reply.content))
                summaries = []
                for invocation in extraction.invocations:
                    result, context = await self._handle(invocation, context, emit)
                    summaries.append(ToolCallResult.for_invocation(invocation, result).summary())
                conversation.append(Message.user("Tool results:\n" + "\n".join(summaries)))

        logger.warning(f"Reached max iterations ({self.max_iterations})")
        return self._finish(MAX_ITERATIONS_MESSAGE, StopReason.MAX_ITERATIONS, iterations, conversation, emit)

    # ==========================================================================
    # Per-invocation handling
    # ==========================================================================

    async def _handle(
        self,
        invocation: ToolInvocation,
        context: ExecutionContext,
        emit: AgentEventHandler
    ) -> tuple[ToolResult, ExecutionContext]:
        """Decide, ask, execute and audit one invocation."""
        tool = self.registry.get(invocation.name)
        if tool is None:
            result = ToolResult.fail(unknown_tool_error(invocation.name))
            self._audit(invocation, context, None, NOT_EVALUATED, Outcome.ERROR, result.error)
            return result, context

        emit(AgentState.DECIDING, {"tool": tool.name, "site": context.site})
        decision = await self._decide(tool, invocation, context)

        if decision == Decision.DENY:
            self._audit(invocation, context, tool, Decision.DENY.value, Outcome.DENIED)
            return ToolResult.fail(
                f"Tool '{tool.name}' is blocked by Harbor policy for {context.site}"
            ), context

        label = AUTO_APPROVED
        if decision == Decision.ASK:
            emit(AgentState.AWAITING_HUMAN, {"tool": tool.name, "site": context.site})
            answer = await self.gate.request(tool.name, invocation.arguments, context.site, tool.tier)
            await self._remember(tool.name, context.site, answer)

            if not answer.allows:
                self._audit(invocation, context, tool, answer.value, Outcome.DENIED)
                return ToolResult.fail(
                    f"User denied permission for '{tool.name}' on {context.site}"
                ), context
            label = answer.value

        emit(AgentState.EXECUTING, {"tool": tool.name, "site": context.site})
        result = await self.executor.execute(tool.name, invocation.arguments, context)
        self._audit(
            invocation, context, tool, label,
            Outcome.SUCCESS if result.success else Outcome.ERROR,
            result.error
        )

        # The tool may have navigated or opened a tab
        return result, await self.context_provider.current_context()

    async def _decide(
        self,
        tool: ToolDefinition,
        invocation: ToolInvocation,
        context: ExecutionContext
    ) -> Decision:
        policy = await self.policy_store.load()
        decision = decide(policy, tool.name, tool.tier, context.site)
        decision = escalate_critical(
            decision, policy, tool.name, tool.tier, invocation.arguments, context.url or ""
        )
        logger.debug(f"Harbor: {tool.name} on {context.site} -> {decision.value}")
        return decision

    async def _remember(self, tool_name: str, site: str, answer: UserDecision) -> None:
        if not answer.persists:
            return
        try:
            await self.policy_store.record_user_decision(
                tool_name, site, answer, session_hours=self.session_grant_hours
            )
        except OSError as e:
            logger.error(f"Could not save '{answer.value}' for {tool_name} on {site}", e)

    def _audit(
        self,
        invocation: ToolInvocation,
        context: ExecutionContext,
        tool: ToolDefinition | None,
        decision: str,
        outcome: Outcome,
        details: str | None = None
    ) -> None:
        self.action_log.log_action(ActionLogEntry(
            tool=invocation.name,
            args=dict(invocation.arguments),
            site=context.site,
            tier=tool.tier.value if tool is not None else None,
            decision=decision,
            outcome=outcome,
            details=details,
        ))

    @staticmethod
    def _finish(
        answer: str,
        reason: StopReason,
        iterations: int,
        conversation: Conversation,
        emit: AgentEventHandler
    ) -> AgentRunResult:
        emit(AgentState.DONE, {"reason": reason.value, "iterations": iterations})
        logger.info(f"Run finished: {reason.value} after {iterations} iteration(s)")
        return AgentRunResult(
            answer=answer,
            stop_reason=reason,
            iterations=iterations,
            conversation=conversation,
        )
