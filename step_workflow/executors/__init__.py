"""
Executors module for step-workflow.
Provides the step orchestration engine and the built-in step types:
    - ClarificationStep: Assess a request and ask the user questions
    - RefinementStep: Fold clarification answers into a refined request
    - FileDiscoveryStep: Find files relevant to the refined request
    - PlanningStep: Produce an implementation plan, iterating on feedback
Each step implements the StepStrategy interface and runs on a StepOrchestrator.
"""
__all__ = [
    "StepStrategy",
    "StepOptions",
    "StepOrchestrator",
    "ClarificationStep",
    "RefinementStep",
    "FileDiscoveryStep",
    "PlanningStep",
    "get_step",
]
_STEPS = {
    "clarification": "ClarificationStep",
    "refinement": "RefinementStep",
    "discovery": "FileDiscoveryStep",
    "planning": "PlanningStep",
}
def get_step(name: str):
    """
    Factory function to get the strategy class for a step.
    Args:
        name: Step name ("clarification", "refinement", "discovery", "planning").
    Returns:
        StepStrategy subclass for the step.
    Raises:
        ValueError: If the step is not recognized.
    """
    if name not in _STEPS:
        raise ValueError(
            f"Unknown step: {name}. "
            f"Valid steps: {', '.join(_STEPS.keys())}"
        )
    return __getattr__(_STEPS[name])
# Lazy imports to avoid circular dependencies and speed up import
def __getattr__(name: str):
    if name in ("StepStrategy", "StepOptions"):
        from . import base
        return getattr(base, name)
    elif name == "StepOrchestrator":
        from .orchestrator import StepOrchestrator
        return StepOrchestrator
    elif name == "ClarificationStep":
        from .clarification import ClarificationStep
        return ClarificationStep
    elif name == "RefinementStep":
        from .refinement import RefinementStep
        return RefinementStep
    elif name == "FileDiscoveryStep":
        from .discovery import FileDiscoveryStep
        return FileDiscoveryStep
    elif name == "PlanningStep":
        from .planning import PlanningStep
        return PlanningStep
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
