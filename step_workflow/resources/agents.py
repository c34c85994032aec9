"""
Agent Registry - agent configuration lookup for step sessions.
Provides the loader and pause-policy collaborators the orchestrator
depends on, with in-memory implementations suitable for embedding and
testing. Persistent backends implement the same protocols.
"""
from __future__ import annotations
import logging
import threading
from typing import Awaitable, Dict, Protocol, Union
from ..core.types import AgentConfig, PauseBehavior
from ..lib.error_handling import AgentConfigError
logger = logging.getLogger(__name__)
class AgentConfigLoader(Protocol):
    def load_agent_config(self, workflow_id: str, agent_id: str) -> Union[AgentConfig, Awaitable[AgentConfig]]:
        ...
class PauseBehaviorResolver(Protocol):
    def get_pause_behavior(self, workflow_id: str) -> Union[PauseBehavior, str]:
        ...
class AgentRegistry:
    """
    Registry of agent configurations.
    Each instance owns its agents; there is no process-wide registry.
    """
    def __init__(self):
        self._agents: Dict[str, AgentConfig] = {}
        self._deactivated: set[str] = set()
        self._lock = threading.Lock()
    def register(self, agent: AgentConfig) -> None:
        """
        Register an agent configuration.
        Raises:
            ValueError: If an agent with the same id already exists.
        """
        with self._lock:
            if agent.id in self._agents:
                raise ValueError(f"Agent '{agent.id}' is already registered")
            self._agents[agent.id] = agent
    def register_or_update(self, agent: AgentConfig) -> None:
        with self._lock:
            self._agents[agent.id] = agent
            self._deactivated.discard(agent.id)
    def deactivate(self, agent_id: str) -> None:
        with self._lock:
            self._deactivated.add(agent_id)
    def list_all(self) -> list[str]:
        with self._lock:
            return list(self._agents.keys())
    def load_agent_config(self, workflow_id: str, agent_id: str) -> AgentConfig:
        """
        Load the configuration snapshot for a session.
        Args:
            workflow_id: Requesting workflow, used for log context
            agent_id: Agent to load
        Returns:
            The immutable AgentConfig
        Raises:
            AgentConfigError: If the agent is unknown or deactivated
        """
        with self._lock:
            agent = self._agents.get(agent_id)
            deactivated = agent_id in self._deactivated
        if agent is None:
            raise AgentConfigError(f"Agent with ID {agent_id} not found")
        if deactivated:
            raise AgentConfigError(f"Agent {agent.name} is deactivated")
        logger.debug(f"Loaded agent {agent.name} ({agent_id}) for workflow {workflow_id}")
        return agent
class StaticPauseResolver:
    """Pause policy lookup backed by a dict, with a default for unknown workflows."""
    def __init__(self, default: PauseBehavior = PauseBehavior.CONTINUOUS):
        self.default = default
        self._behaviors: Dict[str, PauseBehavior] = {}
    def set_pause_behavior(self, workflow_id: str, behavior: Union[PauseBehavior, str]) -> None:
        self._behaviors[workflow_id] = PauseBehavior(behavior)
    def get_pause_behavior(self, workflow_id: str) -> PauseBehavior:
        return self._behaviors.get(workflow_id, self.default)
