"""Core module - configuration, types, validation and the SDK execution adapter."""
from .config import Config, RetryConfig, TimeoutConfig
from .types import (
    AgentConfig,
    CancellationToken,
    PauseBehavior,
    ProviderResult,
    Session,
    SessionState,
    StepPhase,
    StreamMessage,
    StreamMessageType,
    UsageStats,
)
__all__ = [
    "Config",
    "RetryConfig",
    "TimeoutConfig",
    "AgentConfig",
    "CancellationToken",
    "PauseBehavior",
    "ProviderResult",
    "Session",
    "SessionState",
    "StepPhase",
    "StreamMessage",
    "StreamMessageType",
    "UsageStats",
]
