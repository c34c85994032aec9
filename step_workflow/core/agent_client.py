"""
Agent execution adapter - Claude Agent SDK boundary for step execution.
Issues one query per step attempt, maps partial stream events to step
stream messages, accumulates diagnostic text/thinking on the session and
honours the session's cancellation token.
"""
import asyncio
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional
from claude_agent_sdk import ClaudeAgentOptions, ResultMessage, query
from claude_agent_sdk.types import StreamEvent
from .config import CLAUDE_CODE_TOOLS, Config
from .types import (
    ActiveToolInfo,
    ExecutionConfig,
    ProviderResult,
    Session,
    StreamCallback,
    StreamMessage,
    StreamMessageType,
)
logger = logging.getLogger(__name__)
@dataclass
class ExecutionHandlers:
    """Callbacks invoked while a query streams."""
    on_message: Optional[StreamCallback] = None
class AgentExecutionAdapter:
    """
    Runs a single provider query for a session.
    Args:
        config: Configuration instance
        query_fn: Provider query function (defaults to claude_agent_sdk.query)
    """
    def __init__(self, config: Optional[Config] = None, query_fn: Optional[Callable[..., Any]] = None):
        self.config = config or Config()
        self._query = query_fn or query
    def build_options(self, execution_config: ExecutionConfig) -> ClaudeAgentOptions:
        """
        Create ClaudeAgentOptions for a step execution.
        Tools not granted to the agent are explicitly disallowed; an agent
        with no tools gets every built-in tool disallowed.
        """
        agent = execution_config.agent_config
        allowed_tools = agent.allowed_tools
        disallowed_tools = [name for name in CLAUDE_CODE_TOOLS if name not in allowed_tools]
        options: Dict[str, Any] = {
            "system_prompt": {
                "type": "preset",
                "preset": "claude_code",
                "append": agent.system_prompt,
            },
            "model": self.config.resolve_model(agent.model),
            "permission_mode": agent.permission_mode or self.config.default_permission_mode,
            "allowed_tools": allowed_tools,
            "disallowed_tools": disallowed_tools,
            "output_format": {"type": "json_schema", "schema": execution_config.output_schema},
            "include_partial_messages": True,
        }
        cwd = execution_config.repository_path or self.config.repository_path
        if cwd:
            options["cwd"] = str(cwd)
        if agent.uses_extended_thinking:
            # Partial messages are not streamed while extended thinking is on
            options["max_thinking_tokens"] = agent.max_thinking_tokens
            options["include_partial_messages"] = False
        return ClaudeAgentOptions(**options)
    async def execute_query(
        self,
        session: Session,
        execution_config: ExecutionConfig,
        prompt: str,
        handlers: Optional[ExecutionHandlers] = None,
    ) -> Optional[ProviderResult]:
        """
        Execute the prompt and return the terminal result.
        Returns:
            ProviderResult, or None when the session was cancelled first
        Raises:
            Provider exceptions are propagated to the orchestrator
        """
        handlers = handlers or ExecutionHandlers()
        if session.token.is_cancelled:
            return None
        options = self.build_options(execution_config)
        agent = execution_config.agent_config
        logger.info(
            f"[{execution_config.step_name}] Executing query for session {session.session_id} "
            f"(model={options.model}, tools={len(agent.allowed_tools)})"
        )
        consume = asyncio.ensure_future(self._consume(session, prompt, options, handlers))
        cancelled = asyncio.ensure_future(session.token.wait())
        heartbeat = None
        if agent.uses_extended_thinking:
            heartbeat = asyncio.ensure_future(
                self._heartbeat(session, execution_config.heartbeat_interval, agent.max_thinking_tokens, handlers)
            )
        try:
            done, _ = await asyncio.wait({consume, cancelled}, return_when=asyncio.FIRST_COMPLETED)
            if consume in done:
                result = consume.result()
                if session.token.is_cancelled:
                    return None
                if result is None:
                    raise RuntimeError("Agent stream ended without a result message")
                return result
            consume.cancel()
            await asyncio.gather(consume, return_exceptions=True)
            logger.info(f"[{execution_config.step_name}] Query aborted for session {session.session_id}")
            return None
        finally:
            cancelled.cancel()
            if heartbeat is not None:
                heartbeat.cancel()
            if not consume.done():
                consume.cancel()
    async def _consume(
        self,
        session: Session,
        prompt: str,
        options: ClaudeAgentOptions,
        handlers: ExecutionHandlers,
    ) -> Optional[ProviderResult]:
        result = None
        async for message in self._query(prompt=prompt, options=options):
            if isinstance(message, StreamEvent):
                self.handle_stream_event(session, message.event, handlers)
            elif isinstance(message, ResultMessage):
                result = ProviderResult.from_message(message)
        return result
    async def _heartbeat(
        self,
        session: Session,
        interval: float,
        max_thinking_tokens: Optional[int],
        handlers: ExecutionHandlers,
    ) -> None:
        started = time.monotonic()
        while True:
            await asyncio.sleep(interval)
            self._emit(session, handlers, StreamMessageType.EXTENDED_THINKING_HEARTBEAT, {
                "elapsed_ms": int((time.monotonic() - started) * 1000),
                "max_thinking_tokens": max_thinking_tokens,
            })
    def handle_stream_event(self, session: Session, event: Dict[str, Any], handlers: ExecutionHandlers) -> None:
        """Map one raw Anthropic stream event onto the session and handlers."""
        event_type = event.get("type")
        if event_type == "content_block_delta":
            delta = event.get("delta") or {}
            delta_type = delta.get("type")
            if delta_type == "text_delta":
                text = delta.get("text", "")
                session.streaming_text += text
                self._emit(session, handlers, StreamMessageType.TEXT_DELTA, {"delta": text})
            elif delta_type == "thinking_delta":
                thinking = delta.get("thinking", "")
                if not session.thinking_blocks:
                    session.thinking_blocks.append("")
                session.thinking_blocks[-1] += thinking
                self._emit(session, handlers, StreamMessageType.THINKING_DELTA, {
                    "block_index": len(session.thinking_blocks) - 1,
                    "delta": thinking,
                })
            elif delta_type == "input_json_delta" and session.active_tools:
                tool = session.active_tools[-1]
                tool.partial_json += delta.get("partial_json", "")
                try:
                    parsed = json.loads(tool.partial_json)
                except ValueError:
                    return  # incomplete JSON, wait for more
                if isinstance(parsed, dict):
                    tool.tool_input = parsed
                    self._emit(session, handlers, StreamMessageType.TOOL_UPDATE, {
                        "tool_name": tool.tool_name,
                        "tool_use_id": tool.tool_use_id,
                        "tool_input": dict(parsed),
                    })
        elif event_type == "content_block_start":
            block = event.get("content_block") or {}
            block_type = block.get("type")
            if block_type == "thinking":
                session.thinking_blocks.append("")
                self._emit(session, handlers, StreamMessageType.THINKING_START, {
                    "block_index": len(session.thinking_blocks) - 1,
                })
            elif block_type == "tool_use":
                tool = ActiveToolInfo(
                    tool_name=block.get("name", ""),
                    tool_use_id=block.get("id", ""),
                    block_index=event.get("index"),
                )
                session.active_tools.append(tool)
                self._emit(session, handlers, StreamMessageType.TOOL_START, {
                    "tool_name": tool.tool_name,
                    "tool_use_id": tool.tool_use_id,
                    "tool_input": {},
                })
        elif event_type == "content_block_stop":
            # Text and thinking blocks also stop; only close the matching tool
            index = event.get("index")
            if session.active_tools and session.active_tools[-1].block_index in (None, index):
                tool = session.active_tools.pop()
                self._emit(session, handlers, StreamMessageType.TOOL_STOP, {
                    "tool_name": tool.tool_name,
                    "tool_use_id": tool.tool_use_id,
                })
    def _emit(
        self,
        session: Session,
        handlers: ExecutionHandlers,
        message_type: StreamMessageType,
        payload: Dict[str, Any],
    ) -> None:
        if handlers.on_message is None:
            return
        message = StreamMessage(
            type=message_type,
            session_id=session.session_id,
            workflow_id=session.workflow_id,
            payload=payload,
        )
        try:
            handlers.on_message(message)
        except Exception as e:
            logger.error(f"Stream handler failed for {message_type.value}: {e}", exc_info=True)
