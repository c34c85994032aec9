"""
Core type definitions for step orchestration.
Sessions, phases, agent configuration snapshots, provider results and
stream messages shared by the executors and managers.
"""
import asyncio
import copy
import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Tuple
logger = logging.getLogger(__name__)
class StepPhase(str, Enum):
    """Lifecycle phase of a step session."""
    IDLE = "idle"
    LOADING_AGENT = "loading_agent"
    EXECUTING = "executing"
    PROCESSING_RESPONSE = "processing_response"
    AWAITING_REVIEW = "awaiting_review"
    WAITING_FOR_USER = "waiting_for_user"
    REGENERATING = "regenerating"
    COMPLETE = "complete"
    ERROR = "error"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"
    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_PHASES
TERMINAL_PHASES: FrozenSet[StepPhase] = frozenset({
    StepPhase.COMPLETE,
    StepPhase.ERROR,
    StepPhase.TIMEOUT,
    StepPhase.CANCELLED,
})
_FAILURE_PHASES = frozenset({StepPhase.ERROR, StepPhase.TIMEOUT, StepPhase.CANCELLED})
# Forward edges; any non-terminal phase may also move to a failure phase
PHASE_TRANSITIONS: Dict[StepPhase, FrozenSet[StepPhase]] = {
    StepPhase.IDLE: frozenset({StepPhase.LOADING_AGENT}),
    StepPhase.LOADING_AGENT: frozenset({StepPhase.EXECUTING, StepPhase.REGENERATING}),
    StepPhase.EXECUTING: frozenset({StepPhase.PROCESSING_RESPONSE}),
    StepPhase.REGENERATING: frozenset({StepPhase.PROCESSING_RESPONSE}),
    StepPhase.PROCESSING_RESPONSE: frozenset({
        StepPhase.COMPLETE,
        StepPhase.AWAITING_REVIEW,
        StepPhase.WAITING_FOR_USER,
    }),
    StepPhase.AWAITING_REVIEW: frozenset({StepPhase.REGENERATING, StepPhase.COMPLETE}),
    StepPhase.WAITING_FOR_USER: frozenset({StepPhase.COMPLETE}),
}
def can_transition(current: StepPhase, target: StepPhase) -> bool:
    """Check whether a phase change is a legal edge of the state machine."""
    if current.is_terminal:
        return False
    if target in _FAILURE_PHASES:
        return True
    return target in PHASE_TRANSITIONS.get(current, frozenset())
class PauseBehavior(str, Enum):
    """Workflow pause policy applied after each step."""
    AUTO_PAUSE = "auto_pause"
    CONTINUOUS = "continuous"
    GATES_ONLY = "gates_only"
class StreamMessageType(str, Enum):
    """Types of messages forwarded to the stream sink."""
    PHASE_CHANGE = "phase_change"
    TEXT_DELTA = "text_delta"
    THINKING_START = "thinking_start"
    THINKING_DELTA = "thinking_delta"
    TOOL_START = "tool_start"
    TOOL_UPDATE = "tool_update"
    TOOL_STOP = "tool_stop"
    EXTENDED_THINKING_HEARTBEAT = "extended_thinking_heartbeat"
@dataclass
class StreamMessage:
    """A single event emitted to the stream sink."""
    type: StreamMessageType
    session_id: str
    workflow_id: str
    payload: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)
    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "session_id": self.session_id,
            "workflow_id": self.workflow_id,
            "timestamp": self.timestamp.isoformat(),
            **self.payload,
        }
StreamCallback = Callable[[StreamMessage], None]
@dataclass(frozen=True)
class AgentTool:
    """A tool grant on an agent."""
    tool_name: str
    tool_pattern: Optional[str] = None
    disallowed: bool = False
@dataclass(frozen=True)
class AgentSkill:
    skill_name: str
    is_required: bool = False
@dataclass(frozen=True)
class AgentHook:
    """A lifecycle hook attached to an agent."""
    event_type: str
    body: str
    matcher: Optional[str] = None
@dataclass(frozen=True)
class AgentConfig:
    """Immutable snapshot of the provider configuration for one session."""
    id: str
    name: str
    system_prompt: str
    model: Optional[str] = None
    permission_mode: Optional[str] = None
    tools: Tuple[AgentTool, ...] = ()
    skills: Tuple[AgentSkill, ...] = ()
    hooks: Tuple[AgentHook, ...] = ()
    extended_thinking_enabled: bool = False
    max_thinking_tokens: Optional[int] = None
    @property
    def allowed_tools(self) -> List[str]:
        """Tool names granted to the agent, excluding disallowed entries."""
        return [tool.tool_name for tool in self.tools if not tool.disallowed]
    @property
    def uses_extended_thinking(self) -> bool:
        return bool(self.extended_thinking_enabled and self.max_thinking_tokens)
@dataclass
class UsageStats:
    """Usage statistics reported by a provider result."""
    cost_usd: float = 0.0
    duration_ms: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    num_turns: int = 0
    @classmethod
    def from_message(cls, message: Any) -> "UsageStats":
        """
        Extract usage from a Claude Agent SDK ResultMessage.
        The usage payload may be a dict or an object with attributes.
        """
        stats = cls(
            cost_usd=getattr(message, "total_cost_usd", None) or 0.0,
            duration_ms=getattr(message, "duration_ms", None) or 0,
            num_turns=getattr(message, "num_turns", None) or 0,
        )
        msg_usage = getattr(message, "usage", None)
        if isinstance(msg_usage, dict):
            stats.input_tokens = msg_usage.get("input_tokens", 0) or 0
            stats.output_tokens = msg_usage.get("output_tokens", 0) or 0
        elif msg_usage is not None:
            stats.input_tokens = getattr(msg_usage, "input_tokens", 0) or 0
            stats.output_tokens = getattr(msg_usage, "output_tokens", 0) or 0
        return stats
    def to_dict(self) -> Dict[str, Any]:
        return {
            "cost_usd": self.cost_usd,
            "duration_ms": self.duration_ms,
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "num_turns": self.num_turns,
        }
@dataclass
class ProviderResult:
    """Terminal result of one provider execution."""
    subtype: str
    is_error: bool = False
    structured_output: Any = None
    errors: List[str] = field(default_factory=list)
    session_id: Optional[str] = None
    result: Optional[str] = None
    usage: UsageStats = field(default_factory=UsageStats)
    @classmethod
    def from_message(cls, message: Any) -> "ProviderResult":
        """Normalize a ResultMessage; older SDK releases lack some fields."""
        errors = getattr(message, "errors", None) or []
        return cls(
            subtype=getattr(message, "subtype", "") or "",
            is_error=bool(getattr(message, "is_error", False)),
            structured_output=getattr(message, "structured_output", None),
            errors=[str(e) for e in errors],
            session_id=getattr(message, "session_id", None),
            result=getattr(message, "result", None),
            usage=UsageStats.from_message(message),
        )
@dataclass
class ActiveToolInfo:
    """A tool invocation currently in flight."""
    tool_name: str
    tool_use_id: str
    tool_input: Dict[str, Any] = field(default_factory=dict)
    partial_json: str = ""
    block_index: Optional[int] = None
    def to_dict(self) -> Dict[str, Any]:
        return {
            "tool_name": self.tool_name,
            "tool_use_id": self.tool_use_id,
            "tool_input": dict(self.tool_input),
        }
@dataclass
class ExecutionConfig:
    """Per-call settings handed to the execution adapter."""
    agent_config: AgentConfig
    output_schema: Dict[str, Any]
    repository_path: Optional[str] = None
    heartbeat_interval: float = 5.0
    step_name: str = "step"
class CancellationToken:
    """
    One-shot, idempotent cancellation signal.
    Checked by the timeout race before firing and awaited by the
    execution adapter so an in-flight provider call can be abandoned.
    """
    def __init__(self):
        self._event = asyncio.Event()
        self._reason: Optional[str] = None
    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()
    @property
    def reason(self) -> Optional[str]:
        return self._reason
    def cancel(self, reason: Optional[str] = None) -> bool:
        """
        Signal cancellation.
        Returns:
            True if this call cancelled the token, False if it already was.
        """
        if self._event.is_set():
            return False
        self._reason = reason
        self._event.set()
        return True
    async def wait(self) -> None:
        await self._event.wait()
@dataclass
class Session:
    """In-memory record of one active step execution for a workflow."""
    workflow_id: str
    options: Any = None
    session_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    token: CancellationToken = field(default_factory=CancellationToken)
    phase: StepPhase = StepPhase.IDLE
    streaming_text: str = ""
    thinking_blocks: List[str] = field(default_factory=list)
    active_tools: List[ActiveToolInfo] = field(default_factory=list)
    agent_config: Optional[AgentConfig] = None
    timeout_cleanup: Optional[Callable[[], None]] = None
    state: Dict[str, Any] = field(default_factory=dict)
    started_at: float = field(default_factory=time.monotonic)
    def transition_to(self, phase: StepPhase) -> bool:
        """
        Move to a new phase if the edge is legal.
        Terminal phases are sticky; illegal transitions are logged and ignored.
        Returns:
            True if the phase changed.
        """
        if self.phase == phase:
            return False
        if not can_transition(self.phase, phase):
            logger.warning(
                f"Ignoring phase transition {self.phase.value} -> {phase.value} "
                f"for session {self.session_id}"
            )
            return False
        self.phase = phase
        return True
    def clear_timeout(self) -> None:
        if self.timeout_cleanup is not None:
            self.timeout_cleanup()
            self.timeout_cleanup = None
    def reset_stream(self) -> None:
        """Drop diagnostic stream state before a regeneration pass."""
        self.streaming_text = ""
        self.thinking_blocks = []
        self.active_tools = []
    def snapshot(self, state: Optional[Dict[str, Any]] = None) -> "SessionState":
        return SessionState(
            session_id=self.session_id,
            workflow_id=self.workflow_id,
            phase=self.phase,
            active_tools=[tool.to_dict() for tool in self.active_tools],
            streaming_text=self.streaming_text,
            thinking_blocks=list(self.thinking_blocks),
            state=copy.deepcopy(self.state if state is None else state),
        )
@dataclass(frozen=True)
class SessionState:
    """Read-only view of a session for external observers."""
    session_id: str
    workflow_id: str
    phase: StepPhase
    active_tools: List[Dict[str, Any]]
    streaming_text: str
    thinking_blocks: List[str]
    state: Dict[str, Any]
    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "workflow_id": self.workflow_id,
            "phase": self.phase.value,
            "active_tools": self.active_tools,
            "streaming_text": self.streaming_text,
            "thinking_blocks": self.thinking_blocks,
            "state": self.state,
        }
