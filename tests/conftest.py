"""Shared fixtures: agent configs and a scripted stand-in for claude_agent_sdk.query."""
import asyncio
from typing import Any, Dict, List, Optional
import pytest
from claude_agent_sdk import ResultMessage
from claude_agent_sdk.types import StreamEvent
from step_workflow.core.agent_client import AgentExecutionAdapter
from step_workflow.core.config import Config
from step_workflow.core.types import AgentConfig, AgentTool, PauseBehavior
from step_workflow.resources.agents import AgentRegistry, StaticPauseResolver
def make_result(
    structured_output: Any = None,
    subtype: str = "success",
    errors: Optional[List[str]] = None,
    session_id: str = "sdk-session-1",
) -> ResultMessage:
    """Build a ResultMessage; newer fields are set as attributes."""
    message = ResultMessage(
        subtype=subtype,
        duration_ms=1500,
        duration_api_ms=1200,
        is_error=subtype != "success",
        num_turns=3,
        session_id=session_id,
        total_cost_usd=0.0125,
        usage={"input_tokens": 100, "output_tokens": 50},
    )
    message.structured_output = structured_output
    message.errors = errors
    return message
def make_event(event: Dict[str, Any]) -> StreamEvent:
    return StreamEvent(uuid="evt", session_id="sdk-session-1", event=event)
class FakeProvider:
    """
    Scripted provider query function.
    Each call consumes the next script: a list of messages to yield, an
    exception to raise, or the HANG marker to block until cancelled.
    """
    HANG = "hang"
    def __init__(self, *scripts: Any):
        self.scripts = list(scripts)
        self.calls: List[Dict[str, Any]] = []
    async def query(self, *, prompt: str, options: Any):
        self.calls.append({"prompt": prompt, "options": options})
        script = self.scripts.pop(0) if len(self.scripts) > 1 else self.scripts[0]
        if isinstance(script, BaseException):
            raise script
        if script == self.HANG:
            await asyncio.Event().wait()
        for message in script:
            yield message
@pytest.fixture
def agent_config():
    return AgentConfig(
        id="agent-1",
        name="Test Agent",
        system_prompt="You are a careful engineer.",
        model="sonnet",
        permission_mode="bypassPermissions",
        tools=(AgentTool("Read"), AgentTool("Grep"), AgentTool("Bash", disallowed=True)),
    )
@pytest.fixture
def registry(agent_config):
    registry = AgentRegistry()
    registry.register(agent_config)
    return registry
@pytest.fixture
def pause_resolver():
    return StaticPauseResolver(default=PauseBehavior.CONTINUOUS)
@pytest.fixture
def config():
    config = Config()
    config.retry.base_delay_ms = 0
    config.timeout.heartbeat_interval = 0.01
    return config
@pytest.fixture
def make_adapter(config):
    def _make(provider: FakeProvider) -> AgentExecutionAdapter:
        return AgentExecutionAdapter(config, query_fn=provider.query)
    return _make
