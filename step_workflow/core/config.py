"""
Configuration - Single Source of Truth for step orchestration.
Contains: retry policy, step timeouts, model defaults, provider tool names.
"""
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional
import os
# Aliases for convenience - Claude 4.5 models only
MODEL_ALIASES = {
    "haiku": "claude-haiku-4-5-20251001",
    "sonnet": "claude-sonnet-4-5-20250929",
    "opus": "claude-opus-4-5-20251101",
}
# Built-in tools exposed by the Claude Code runtime
CLAUDE_CODE_TOOLS: List[str] = [
    "Bash",
    "BashOutput",
    "Edit",
    "Glob",
    "Grep",
    "KillShell",
    "NotebookEdit",
    "Read",
    "Skill",
    "SlashCommand",
    "Task",
    "TodoWrite",
    "WebFetch",
    "WebSearch",
    "Write",
]
@dataclass
class TimeoutConfig:
    """Per-step execution timeouts (seconds)."""
    clarification: float = 120.0
    refinement: float = 180.0
    discovery: float = 300.0
    planning: float = 300.0
    default: float = 180.0
    # Interval between extended-thinking heartbeat messages
    heartbeat_interval: float = 5.0
    def for_step(self, step_name: str) -> float:
        """Resolve the timeout for a named step, falling back to the default."""
        return getattr(self, step_name, None) or self.default
@dataclass
class RetryConfig:
    """Retry configuration for step re-execution."""
    max_retries: int = 3
    base_delay_ms: int = 1000 # Exponential backoff: 1s, 2s, 4s...
@dataclass
class Config:
    """Main configuration class - aggregates all config sections."""
    timeout: TimeoutConfig = field(default_factory=TimeoutConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    aliases: Dict[str, str] = field(default_factory=lambda: dict(MODEL_ALIASES))
    default_model: str = "claude-sonnet-4-5-20250929"
    default_permission_mode: str = "default"
    # Repository the agent explores; None means the process cwd
    repository_path: Optional[Path] = None
    def resolve_model(self, model: Optional[str]) -> str:
        """Resolve a model alias to its full identifier."""
        if not model:
            return self.default_model
        return self.aliases.get(model, model)
    @classmethod
    def from_env(cls) -> "Config":
        """Create config with environment variable overrides."""
        config = cls()
        if max_retries := os.getenv("STEP_WORKFLOW_MAX_RETRIES"):
            config.retry.max_retries = int(max_retries)
        if base_delay := os.getenv("STEP_WORKFLOW_RETRY_BASE_DELAY_MS"):
            config.retry.base_delay_ms = int(base_delay)
        if heartbeat := os.getenv("STEP_WORKFLOW_HEARTBEAT_INTERVAL"):
            config.timeout.heartbeat_interval = float(heartbeat)
        for step_name in ("clarification", "refinement", "discovery", "planning"):
            if value := os.getenv(f"STEP_WORKFLOW_{step_name.upper()}_TIMEOUT"):
                setattr(config.timeout, step_name, float(value))
        if model := os.getenv("STEP_WORKFLOW_DEFAULT_MODEL"):
            config.default_model = model
        if repository := os.getenv("STEP_WORKFLOW_REPOSITORY_PATH"):
            config.repository_path = Path(repository)
        return config
