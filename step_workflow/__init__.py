"""
step-workflow - Agent step orchestration on the Claude Agent SDK.
Drives a tool-using agent through named steps (clarification, refinement,
file discovery, planning). Each step is a cancellable, retryable unit of
work that yields a schema-validated outcome or a well-defined failure.
Usage:
    from step_workflow import create_orchestrator, AgentRegistry, StaticPauseResolver
    registry = AgentRegistry()
    registry.register(agent_config)
    planning = create_orchestrator("planning", registry, StaticPauseResolver())
    outcome = await planning.start(PlanningOptions(workflow_id="wf-1", agent_id="planner", ...))
"""
__version__ = "0.1.0"
__all__ = [
    "Config",
    "StepOrchestrator",
    "AgentRegistry",
    "StaticPauseResolver",
    "create_orchestrator",
    "get_step",
]
def create_orchestrator(step: str, agent_loader, pause_resolver, config=None, **kwargs):
    """
    Build an orchestrator for a named step.
    Args:
        step: Step name ("clarification", "refinement", "discovery", "planning")
        agent_loader: Object with load_agent_config(workflow_id, agent_id)
        pause_resolver: Object with get_pause_behavior(workflow_id)
        config: Configuration instance (defaults to Config.from_env())
        **kwargs: Passed through to StepOrchestrator
    Returns:
        A StepOrchestrator owning its own session store and retry tracker
    """
    from .core.config import Config
    from .executors import get_step
    from .executors.orchestrator import StepOrchestrator
    strategy = get_step(step)()
    return StepOrchestrator(
        strategy,
        agent_loader,
        pause_resolver,
        config=config or Config.from_env(),
        **kwargs,
    )
# Lazy imports to avoid pulling in the SDK until needed
def __getattr__(name: str):
    if name == "Config":
        from .core.config import Config
        return Config
    elif name == "StepOrchestrator":
        from .executors.orchestrator import StepOrchestrator
        return StepOrchestrator
    elif name == "AgentRegistry":
        from .resources.agents import AgentRegistry
        return AgentRegistry
    elif name == "StaticPauseResolver":
        from .resources.agents import StaticPauseResolver
        return StaticPauseResolver
    elif name == "get_step":
        from .executors import get_step
        return get_step
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
