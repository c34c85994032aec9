"""
Tests for StepOrchestrator lifecycle: start, cancel, retry, get_state,
the planning feedback loop and manual skip.
"""
import asyncio
import time
from unittest.mock import AsyncMock, Mock
import pytest
from conftest import FakeProvider, make_result
from step_workflow import create_orchestrator
from step_workflow.core.types import PauseBehavior, StepPhase, StreamMessageType
from step_workflow.executors.clarification import ClarificationOptions, ClarificationStep
from step_workflow.executors.orchestrator import StepOrchestrator
from step_workflow.executors.planning import PlanningOptions, PlanningStep
from step_workflow.executors.refinement import RefinementOptions, RefinementStep
PLAN = {
    "type": "PLAN_GENERATED",
    "plan": {
        "summary": "Add export button",
        "approach": "Extend the toolbar",
        "estimated_complexity": "low",
        "steps": [
            {
                "order": 1,
                "title": "Add button",
                "description": "Render an export button",
                "files": ["ui/toolbar.py"],
                "success_criteria": ["Button renders"],
                "validation_commands": ["pytest"],
            },
        ],
    },
}
@pytest.fixture
def build(registry, pause_resolver, config, make_adapter):
    def _build(strategy, provider, **kwargs):
        return StepOrchestrator(
            strategy,
            registry,
            pause_resolver,
            config=config,
            adapter=make_adapter(provider),
            audit_sink=Mock(),
            **kwargs,
        )
    return _build
def refinement_options(**overrides):
    kwargs = {"workflow_id": "wf-1", "agent_id": "agent-1", "feature_request": "Export CSV", **overrides}
    return RefinementOptions(**kwargs)
# =============================================================================
# start()
# =============================================================================
class TestStart:
    """Test the start lifecycle."""
    async def test_success(self, build):
        provider = FakeProvider([make_result({"refined_text": "  Export users as CSV  "})])
        orchestrator = build(RefinementStep(), provider)
        messages = []
        outcome = await orchestrator.start(refinement_options(), messages.append)
        assert outcome.type == "SUCCESS"
        assert outcome.outcome.refined_text == "Export users as CSV"
        assert outcome.retry_count == 0
        assert outcome.skip_fallback_available is True
        assert outcome.sdk_session_id == "sdk-session-1"
        assert outcome.usage.num_turns == 3
        assert orchestrator.get_state("wf-1") is None
        phases = [m.payload["phase"] for m in messages if m.type == StreamMessageType.PHASE_CHANGE]
        assert phases == ["loading_agent", "executing", "processing_response", "complete"]
    async def test_completion_logs_duration(self, build, caplog):
        orchestrator = build(RefinementStep(), FakeProvider([make_result({"refined_text": "ok"})]))
        with caplog.at_level("INFO", logger="step_workflow.executors.orchestrator"):
            await orchestrator.start(refinement_options())
        assert "completed with SUCCESS in" in caplog.text
    async def test_prompt_reaches_provider(self, build):
        provider = FakeProvider([make_result({"refined_text": "ok"})])
        await build(RefinementStep(), provider).start(refinement_options())
        assert "Export CSV" in provider.calls[0]["prompt"]
    async def test_pause_requested_from_policy(self, build, pause_resolver):
        pause_resolver.set_pause_behavior("wf-1", PauseBehavior.AUTO_PAUSE)
        provider = FakeProvider([make_result({"refined_text": "ok"})])
        outcome = await build(RefinementStep(), provider).start(refinement_options())
        assert outcome.pause_requested is True
    async def test_existing_session_fails_fast(self, build):
        provider = FakeProvider(FakeProvider.HANG)
        orchestrator = build(RefinementStep(), provider)
        first = asyncio.ensure_future(orchestrator.start(refinement_options()))
        await asyncio.sleep(0.02)
        second = await orchestrator.start(refinement_options())
        assert second.type == "ERROR"
        assert "already exists" in second.outcome.error
        assert len(provider.calls) == 1
        orchestrator.cancel("wf-1")
        assert (await asyncio.wait_for(first, 1)).type == "CANCELLED"
    async def test_unknown_agent_is_error_outcome(self, build):
        provider = FakeProvider([make_result({"refined_text": "ok"})])
        orchestrator = build(RefinementStep(), provider)
        outcome = await orchestrator.start(refinement_options(agent_id="missing"))
        assert outcome.type == "ERROR"
        assert outcome.outcome.error == "Agent with ID missing not found"
        assert provider.calls == []
        assert orchestrator.get_state("wf-1") is None
    async def test_deactivated_agent(self, build, registry):
        registry.deactivate("agent-1")
        outcome = await build(RefinementStep(), FakeProvider([])).start(refinement_options())
        assert outcome.outcome.error == "Agent Test Agent is deactivated"
    async def test_async_loader(self, registry, pause_resolver, config, make_adapter, agent_config):
        loader = Mock()
        loader.load_agent_config = AsyncMock(return_value=agent_config)
        orchestrator = StepOrchestrator(
            RefinementStep(), loader, pause_resolver, config=config,
            adapter=make_adapter(FakeProvider([make_result({"refined_text": "ok"})])),
        )
        outcome = await orchestrator.start(refinement_options())
        assert outcome.type == "SUCCESS"
        loader.load_agent_config.assert_awaited_once_with("wf-1", "agent-1")
    async def test_missing_structured_output(self, build):
        orchestrator = build(RefinementStep(), FakeProvider([make_result(None)]))
        outcome = await orchestrator.start(refinement_options())
        assert outcome.type == "ERROR"
        assert "no structured output" in outcome.outcome.error
        assert orchestrator.get_state("wf-1") is None
    async def test_provider_error_becomes_outcome(self, build):
        orchestrator = build(RefinementStep(), FakeProvider(ConnectionError("network down")))
        outcome = await orchestrator.start(refinement_options())
        assert outcome.type == "ERROR"
        assert outcome.outcome.error == "network down"
        assert outcome.outcome.stack
        assert outcome.skip_fallback_available is True
        assert orchestrator.store.active_count == 0
    async def test_timeout(self, build):
        """A provider that never answers yields TIMEOUT at the deadline."""
        orchestrator = build(RefinementStep(), FakeProvider(FakeProvider.HANG))
        started = time.monotonic()
        outcome = await orchestrator.start(refinement_options(timeout_seconds=1))
        elapsed = time.monotonic() - started
        assert outcome.type == "TIMEOUT"
        assert outcome.outcome.elapsed_seconds == 1
        assert outcome.outcome.error == "Refinement timed out after 1 seconds"
        assert 0.9 <= elapsed < 1.5
        assert orchestrator.get_state("wf-1") is None
# =============================================================================
# cancel()
# =============================================================================
class TestCancel:
    """Test cancellation."""
    async def test_cancel_in_flight(self, build):
        orchestrator = build(RefinementStep(), FakeProvider(FakeProvider.HANG))
        orchestrator.retry_tracker.increment("wf-1")
        task = asyncio.ensure_future(orchestrator.start(refinement_options()))
        await asyncio.sleep(0.02)
        assert orchestrator.get_state("wf-1").phase == StepPhase.EXECUTING
        cancelled = orchestrator.cancel("wf-1")
        assert cancelled.type == "CANCELLED"
        assert cancelled.reason == "User cancelled refinement"
        result = await asyncio.wait_for(task, 1)
        assert result.type == "CANCELLED"
        assert orchestrator.get_retry_count("wf-1") == 0
        assert orchestrator.get_state("wf-1") is None
    async def test_cancel_after_completion_is_not_found(self, build):
        orchestrator = build(RefinementStep(), FakeProvider([make_result({"refined_text": "ok"})]))
        await orchestrator.start(refinement_options())
        outcome = orchestrator.cancel("wf-1")
        assert outcome.type == "ERROR"
        assert outcome.error == "Session not found"
    async def test_cancel_unknown_workflow(self, build):
        outcome = build(RefinementStep(), FakeProvider([])).cancel("never-started")
        assert outcome.error == "Session not found"
    async def test_cancel_during_retry_backoff(self, build, config):
        config.retry.base_delay_ms = 1000
        provider = FakeProvider([make_result({"refined_text": "ok"})])
        orchestrator = build(RefinementStep(), provider)
        task = asyncio.ensure_future(orchestrator.retry(refinement_options()))
        await asyncio.sleep(0.02)
        cancelled = orchestrator.cancel("wf-1")
        assert cancelled.type == "CANCELLED"
        assert cancelled.reason == "User cancelled refinement"
        outcome = await asyncio.wait_for(task, 0.5)
        assert outcome.type == "CANCELLED"
        assert outcome.retry_count == 0
        assert provider.calls == []
        assert orchestrator.get_retry_count("wf-1") == 0
        assert orchestrator.cancel("wf-1").error == "Session not found"
# =============================================================================
# retry()
# =============================================================================
class TestRetry:
    """Test retry with backoff."""
    async def test_counts_then_limit(self, build):
        provider = FakeProvider(ConnectionError("network connection reset"))
        sleep = AsyncMock()
        orchestrator = build(RefinementStep(), provider, sleep=sleep)
        options = refinement_options()
        for expected in (1, 2, 3):
            outcome = await orchestrator.retry(options)
            assert outcome.type == "ERROR"
            assert outcome.retry_count == expected
            assert orchestrator.get_retry_count("wf-1") == expected
        assert orchestrator.is_retry_limit_reached("wf-1")
        assert len(provider.calls) == 3
        final = await orchestrator.retry(options)
        assert final.type == "ERROR"
        assert final.outcome.error == (
            "Maximum retry attempts (3) reached. Please skip refinement or try again later."
        )
        assert final.retry_count == 3
        assert final.skip_fallback_available is True
        assert len(provider.calls) == 3
        assert sleep.await_count == 3
        assert orchestrator.get_retry_count("wf-1") == 3
        await orchestrator.retry(options)
        assert orchestrator.get_retry_count("wf-1") == 3
    async def test_backoff_delays(self, build, config):
        config.retry.base_delay_ms = 1000
        sleep = AsyncMock()
        orchestrator = build(RefinementStep(), FakeProvider(ConnectionError("timeout")), sleep=sleep)
        for _ in range(3):
            await orchestrator.retry(refinement_options())
        assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0, 4.0]
    async def test_success_clears_history(self, build):
        provider = FakeProvider(ConnectionError("network"), [make_result({"refined_text": "ok"})])
        orchestrator = build(RefinementStep(), provider, sleep=AsyncMock())
        assert (await orchestrator.start(refinement_options())).type == "ERROR"
        outcome = await orchestrator.retry(refinement_options())
        assert outcome.type == "SUCCESS"
        assert outcome.retry_count == 1
        assert orchestrator.get_retry_count("wf-1") == 0
    async def test_custom_start_fn(self, build):
        orchestrator = build(RefinementStep(), FakeProvider([]), sleep=AsyncMock())
        start_fn = AsyncMock(return_value=orchestrator.composer.build_error_outcome_with_retry("x", 1))
        options = refinement_options()
        await orchestrator.retry(options, start_fn)
        start_fn.assert_awaited_once_with(options, None)
    async def test_planning_limit_message(self, build):
        orchestrator = build(PlanningStep(), FakeProvider(ConnectionError("network")), sleep=AsyncMock())
        options = PlanningOptions(workflow_id="wf-1", agent_id="agent-1", refined_feature_request="x")
        for _ in range(3):
            await orchestrator.retry(options)
        final = await orchestrator.retry(options)
        assert final.outcome.error == "Maximum retry attempts (3) reached. Please try again later."
        assert final.skip_fallback_available is False
# =============================================================================
# Planning feedback loop
# =============================================================================
class TestPlanningFeedback:
    """Test awaiting_review -> regenerating -> awaiting_review."""
    async def test_review_loop(self, build, pause_resolver):
        pause_resolver.set_pause_behavior("wf-1", PauseBehavior.GATES_ONLY)
        provider = FakeProvider([make_result(PLAN)], [make_result(PLAN)])
        orchestrator = build(PlanningStep(), provider)
        options = PlanningOptions(workflow_id="wf-1", agent_id="agent-1", refined_feature_request="Export CSV")
        outcome = await orchestrator.start(options)
        assert outcome.type == "PLAN_GENERATED"
        assert outcome.pause_requested is True
        state = orchestrator.get_state("wf-1")
        assert state.phase == StepPhase.AWAITING_REVIEW
        assert state.state["current_plan"]["summary"] == "Add export button"
        session_id = state.session_id
        messages = []
        revised = await orchestrator.submit_feedback("wf-1", "Also support JSON", messages.append)
        assert revised.type == "PLAN_GENERATED"
        phases = [m.payload["phase"] for m in messages if m.type == StreamMessageType.PHASE_CHANGE]
        assert phases == ["regenerating", "processing_response", "awaiting_review"]
        prompt = provider.calls[1]["prompt"]
        assert "Also support JSON" in prompt
        assert "### Version 1" in prompt
        state = orchestrator.get_state("wf-1")
        assert state.session_id == session_id
        assert state.state["iteration_count"] == 1
        assert orchestrator.complete_review("wf-1") is True
        assert orchestrator.get_state("wf-1") is None
    async def test_feedback_without_session(self, build):
        outcome = await build(PlanningStep(), FakeProvider([])).submit_feedback("wf-1", "more")
        assert outcome.outcome.error == "Session not found"
    async def test_feedback_rejected_for_step_without_review(self, build):
        orchestrator = build(RefinementStep(), FakeProvider(FakeProvider.HANG))
        task = asyncio.ensure_future(orchestrator.start(refinement_options()))
        await asyncio.sleep(0.02)
        outcome = await orchestrator.submit_feedback("wf-1", "shorter")
        assert outcome.outcome.error == "Refinement is not awaiting review"
        assert orchestrator.get_state("wf-1").phase == StepPhase.EXECUTING
        orchestrator.cancel("wf-1")
        await asyncio.wait_for(task, 1)
    async def test_cannot_plan_releases_session(self, build):
        provider = FakeProvider([make_result({"type": "CANNOT_PLAN", "reason": "Request is empty"})])
        orchestrator = build(PlanningStep(), provider)
        outcome = await orchestrator.start(
            PlanningOptions(workflow_id="wf-1", agent_id="agent-1", refined_feature_request="")
        )
        assert outcome.type == "CANNOT_PLAN"
        assert orchestrator.get_state("wf-1") is None
    async def test_start_with_feedback_regenerates(self, build):
        orchestrator = build(PlanningStep(), FakeProvider([make_result(PLAN)]))
        messages = []
        await orchestrator.start(
            PlanningOptions(workflow_id="wf-1", agent_id="agent-1", user_feedback="shorter"),
            messages.append,
        )
        phases = [m.payload["phase"] for m in messages if m.type == StreamMessageType.PHASE_CHANGE]
        assert phases[:2] == ["loading_agent", "regenerating"]
# =============================================================================
# skip()
# =============================================================================
class TestSkip:
    """Test manual skip."""
    def test_skip_clarification(self, build):
        orchestrator = build(ClarificationStep(), FakeProvider([]))
        orchestrator.retry_tracker.increment("wf-1")
        outcome = orchestrator.skip("wf-1")
        assert outcome.type == "SKIP_CLARIFICATION"
        assert outcome.outcome.assessment.score == 5
        assert outcome.outcome.reason == "User skipped clarification"
        assert orchestrator.get_retry_count("wf-1") == 0
    async def test_skip_cancels_active_session(self, build):
        orchestrator = build(ClarificationStep(), FakeProvider(FakeProvider.HANG))
        task = asyncio.ensure_future(orchestrator.start(
            ClarificationOptions(workflow_id="wf-1", agent_id="agent-1", feature_request="x")
        ))
        await asyncio.sleep(0.02)
        outcome = orchestrator.skip("wf-1", "Clear enough")
        assert outcome.outcome.reason == "Clear enough"
        await asyncio.wait_for(task, 1)
        assert orchestrator.get_state("wf-1") is None
    def test_planning_cannot_skip(self, build):
        outcome = build(PlanningStep(), FakeProvider([])).skip("wf-1")
        assert outcome.type == "ERROR"
# =============================================================================
# Composition root
# =============================================================================
class TestCreateOrchestrator:
    def test_builds_named_step(self, registry, pause_resolver, config):
        orchestrator = create_orchestrator("discovery", registry, pause_resolver, config=config)
        assert orchestrator.step_name == "discovery"
        assert orchestrator.retry_tracker.max_retries == 3
    def test_instances_are_independent(self, registry, pause_resolver, config):
        a = create_orchestrator("planning", registry, pause_resolver, config=config)
        b = create_orchestrator("planning", registry, pause_resolver, config=config)
        assert a.store is not b.store
    def test_unknown_step(self, registry, pause_resolver):
        with pytest.raises(ValueError, match="Unknown step"):
            create_orchestrator("deploy", registry, pause_resolver)
