"""
Step Orchestrator - shared lifecycle engine for agent steps.
Runs one step type (given as a StepStrategy) through its session
lifecycle: session registration, agent loading, execution raced against
a timeout, structured output processing, outcome composition and
teardown. Timeouts, cancellations and errors are returned as outcomes.
Phase order within one attempt:
    loading_agent -> executing -> processing_response -> terminal
Steps that accept feedback re-enter a retained session:
    awaiting_review -> regenerating -> processing_response -> awaiting_review
"""
import asyncio
import inspect
import logging
import threading
import time
from typing import Any, Awaitable, Callable, Dict, Optional
from ..core.agent_client import AgentExecutionAdapter, ExecutionHandlers
from ..core.config import Config
from ..core.outcomes import Outcome, OutcomeComposer, OutcomeWithPause
from ..core.timeout import create_timeout_future
from ..core.types import (
    AgentConfig,
    CancellationToken,
    ExecutionConfig,
    ProviderResult,
    Session,
    SessionState,
    StepPhase,
    StreamCallback,
    StreamMessage,
    StreamMessageType,
    can_transition,
)
from ..core.validator import StructuredOutputValidator
from ..lib.audit import AuditSink, StepAuditLogger
from ..lib.error_handling import handle_step_error
from ..managers.retry_tracker import RetryTracker, calculate_backoff_delay
from ..managers.session_manager import SessionExistsError, StepSessionStore
from ..resources.agents import AgentConfigLoader, PauseBehaviorResolver
from .base import StepOptions, StepStrategy
logger = logging.getLogger(__name__)
StartFn = Callable[[Any, Optional[StreamCallback]], Awaitable[OutcomeWithPause]]
class StepOrchestrator:
    """
    Lifecycle engine for a single step type.
    Each instance owns its session store and retry tracker; build one per
    step type at the composition root and share it between callers.
    Args:
        strategy: Step type extension points
        agent_loader: Loads AgentConfig snapshots
        pause_resolver: Resolves a workflow's pause behavior
        config: Configuration instance
        adapter: Agent execution adapter (built from config if omitted)
        audit_sink: Destination for audit events
        sleep: Coroutine used for retry backoff
    """
    def __init__(
        self,
        strategy: StepStrategy,
        agent_loader: AgentConfigLoader,
        pause_resolver: PauseBehaviorResolver,
        config: Optional[Config] = None,
        adapter: Optional[AgentExecutionAdapter] = None,
        audit_sink: Optional[AuditSink] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.strategy = strategy
        self.config = config or Config()
        self.agent_loader = agent_loader
        self.adapter = adapter or AgentExecutionAdapter(self.config)
        self.store = StepSessionStore()
        self.retry_tracker = RetryTracker(self.config.retry.max_retries)
        self.validator = StructuredOutputValidator(strategy.output_model, strategy.step_name)
        self.composer = OutcomeComposer(pause_resolver)
        self.audit = StepAuditLogger(strategy.step_name, audit_sink)
        self._sleep = sleep
        # Retries waiting out their backoff, before a session is registered
        self._pending_retries: Dict[str, CancellationToken] = {}
        self._pending_lock = threading.Lock()
    @property
    def step_name(self) -> str:
        return self.strategy.step_name
    # =========================================================================
    # Public operations
    # =========================================================================
    async def start(self, options: StepOptions, on_stream_message: Optional[StreamCallback] = None) -> OutcomeWithPause:
        """
        Run the step for a workflow.
        Args:
            options: Step-specific options
            on_stream_message: Receives phase changes and stream events
        Returns:
            OutcomeWithPause; errors, timeouts and cancellations are outcomes
        """
        workflow_id = options.workflow_id
        session = self.strategy.create_session(options)
        try:
            self.store.create(workflow_id, session)
        except SessionExistsError as e:
            logger.warning(f"[{self.step_name}] {e}")
            return self.composer.build_error_outcome_with_retry(
                str(e),
                self.retry_tracker.get(workflow_id),
                self.strategy.skip_fallback_available,
            )
        self.audit.started(session.session_id, workflow_id, {"agent_id": options.agent_id})
        logger.info(f"[{self.step_name}] Starting session {session.session_id} for workflow {workflow_id}")
        return await self._run(session, on_stream_message, self._load_and_execute)
    def cancel(self, workflow_id: str, on_stream_message: Optional[StreamCallback] = None) -> Outcome:
        """
        Cancel the active session and any retry waiting out its backoff.
        Returns:
            The step's CANCELLED outcome, or its not-found outcome
        """
        session = self.store.get(workflow_id)
        with self._pending_lock:
            pending = self._pending_retries.get(workflow_id)
        retry_cancelled = pending is not None and pending.cancel("cancelled")
        if session is None:
            if retry_cancelled:
                outcome = self.strategy.build_cancelled_outcome(Session(workflow_id=workflow_id))
                self.retry_tracker.clear(workflow_id)
                self.audit.cancelled("-", workflow_id, getattr(outcome, "reason", "cancelled"))
                logger.info(f"[{self.step_name}] Cancelled pending retry for workflow {workflow_id}")
                return outcome
            logger.info(f"[{self.step_name}] No active session to cancel for workflow {workflow_id}")
            return self.strategy.build_not_found_outcome()
        session.clear_timeout()
        session.token.cancel("cancelled")
        self._set_phase(session, StepPhase.CANCELLED, on_stream_message)
        outcome = self.strategy.build_cancelled_outcome(session)
        self.store.remove(workflow_id, session)
        self.retry_tracker.clear(workflow_id)
        self.audit.cancelled(session.session_id, workflow_id, getattr(outcome, "reason", "cancelled"))
        logger.info(f"[{self.step_name}] Cancelled session {session.session_id} for workflow {workflow_id}")
        return outcome
    async def retry(
        self,
        options: StepOptions,
        start_fn: Optional[StartFn] = None,
        on_stream_message: Optional[StreamCallback] = None,
    ) -> OutcomeWithPause:
        """
        Retry the step after an exponential backoff delay.
        Returns the max-retries error outcome without executing once the
        retry ceiling is exceeded.
        """
        workflow_id = options.workflow_id
        max_retries = self.retry_tracker.max_retries
        existing = self.store.get(workflow_id)
        session_id = existing.session_id if existing else "-"
        if self.retry_tracker.is_retry_limit_reached(workflow_id):
            logger.warning(f"[{self.step_name}] Retry limit reached for workflow {workflow_id}")
            self.audit.retry_limit_reached(session_id, workflow_id, max_retries, max_retries)
            return self.composer.build_error_outcome_with_retry(
                self.strategy.build_max_retries_message(max_retries),
                max_retries,
                self.strategy.skip_fallback_available,
            )
        retry_count = self.retry_tracker.increment(workflow_id)
        delay_ms = calculate_backoff_delay(retry_count, self.config.retry.base_delay_ms)
        self.audit.retry_started(session_id, workflow_id, retry_count, delay_ms)
        logger.info(
            f"[{self.step_name}] Retry {retry_count}/{max_retries} for workflow {workflow_id} "
            f"in {delay_ms}ms"
        )
        if not await self._wait_backoff(workflow_id, delay_ms / 1000):
            return self.composer.build_failure_outcome(
                self.strategy.build_cancelled_outcome(self.strategy.create_session(options)),
                0,
                self.strategy.skip_fallback_available,
            )
        # A retained or stale session is superseded by the retry
        existing = self.store.get(workflow_id)
        if existing is not None:
            existing.clear_timeout()
            existing.token.cancel("superseded by retry")
            self.store.remove(workflow_id, existing)
        result = await (start_fn or self.start)(options, on_stream_message)
        if result.outcome.is_failure:
            return result
        return result.with_retry_count(retry_count)
    def get_state(self, workflow_id: str) -> Optional[SessionState]:
        """Read-only snapshot of the active session, or None."""
        session = self.store.get(workflow_id)
        if session is None:
            return None
        return session.snapshot(self.strategy.extract_state(session))
    def get_retry_count(self, workflow_id: str) -> int:
        return self.retry_tracker.get(workflow_id)
    def is_retry_limit_reached(self, workflow_id: str) -> bool:
        return self.retry_tracker.is_retry_limit_reached(workflow_id)
    def clear_retry_count(self, workflow_id: str) -> None:
        self.retry_tracker.clear(workflow_id)
    async def submit_feedback(
        self,
        workflow_id: str,
        feedback: str,
        on_stream_message: Optional[StreamCallback] = None,
    ) -> OutcomeWithPause:
        """
        Regenerate a result under review using user feedback.
        Re-enters the retained session instead of creating a new one.
        """
        session = self.store.get(workflow_id)
        skip = self.strategy.skip_fallback_available
        retry_count = self.retry_tracker.get(workflow_id)
        if session is None:
            return self.composer.build_failure_outcome(self.strategy.build_not_found_outcome(), retry_count, skip)
        if not self.strategy.supports_feedback or session.phase != StepPhase.AWAITING_REVIEW:
            return self.composer.build_error_outcome_with_retry(
                f"{self.strategy.display_name} is not awaiting review",
                retry_count,
                skip,
            )
        self.strategy.apply_feedback(session, feedback)
        session.reset_stream()
        logger.info(f"[{self.step_name}] Regenerating session {session.session_id} with feedback")
        return await self._run(
            session,
            on_stream_message,
            lambda s, cb: self._execute(s, cb, StepPhase.REGENERATING),
        )
    def complete_review(self, workflow_id: str, on_stream_message: Optional[StreamCallback] = None) -> bool:
        """
        Accept a result under review and release its session.
        Returns:
            True if a session awaiting review was completed
        """
        session = self.store.get(workflow_id)
        if session is None or session.phase != StepPhase.AWAITING_REVIEW:
            return False
        self._set_phase(session, StepPhase.COMPLETE, on_stream_message)
        return self.store.remove(workflow_id, session)
    def skip(
        self,
        workflow_id: str,
        reason: Optional[str] = None,
        on_stream_message: Optional[StreamCallback] = None,
    ) -> OutcomeWithPause:
        """Manually skip the step, cancelling any active session."""
        skipped = self.strategy.build_skipped_outcome(reason)
        if skipped is None or not self.strategy.skip_fallback_available:
            return self.composer.build_error_outcome_with_retry(
                f"{self.strategy.display_name} cannot be skipped",
                self.retry_tracker.get(workflow_id),
                self.strategy.skip_fallback_available,
            )
        session = self.store.get(workflow_id)
        session_id = "-"
        if session is not None:
            session_id = session.session_id
            session.clear_timeout()
            session.token.cancel("skipped")
            if can_transition(session.phase, StepPhase.COMPLETE):
                self._set_phase(session, StepPhase.COMPLETE, on_stream_message)
            else:
                self._set_phase(session, StepPhase.CANCELLED, on_stream_message)
            self.store.remove(workflow_id, session)
        self.retry_tracker.clear(workflow_id)
        self.audit.skipped(session_id, workflow_id, getattr(skipped, "reason", None) or "skipped")
        return self.composer.build_outcome_with_pause_info(
            skipped,
            workflow_id,
            None,
            self.strategy.skip_fallback_available,
            self.strategy.is_gate_step,
        )
    # =========================================================================
    # Lifecycle internals
    # =========================================================================
    async def _wait_backoff(self, workflow_id: str, delay_seconds: float) -> bool:
        """
        Sleep out a retry backoff while staying cancellable through cancel().
        Returns:
            False if the retry was cancelled during the delay
        """
        token = CancellationToken()
        with self._pending_lock:
            self._pending_retries[workflow_id] = token
        sleeper = asyncio.ensure_future(self._sleep(delay_seconds))
        cancelled = asyncio.ensure_future(token.wait())
        try:
            await asyncio.wait({sleeper, cancelled}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            sleeper.cancel()
            cancelled.cancel()
            with self._pending_lock:
                if self._pending_retries.get(workflow_id) is token:
                    del self._pending_retries[workflow_id]
        return not token.is_cancelled
    async def _run(
        self,
        session: Session,
        on_stream_message: Optional[StreamCallback],
        body: Callable[[Session, Optional[StreamCallback]], Awaitable[OutcomeWithPause]],
    ) -> OutcomeWithPause:
        workflow_id = session.workflow_id
        try:
            return await body(session, on_stream_message)
        except asyncio.CancelledError:
            session.clear_timeout()
            session.token.cancel("task cancelled")
            self.store.remove(workflow_id, session)
            raise
        except Exception as e:
            retry_count = self.retry_tracker.get(workflow_id)
            error = handle_step_error(
                e,
                workflow_id,
                session.session_id,
                retry_count,
                self.retry_tracker.max_retries,
                self.audit,
            )
            session.clear_timeout()
            self._set_phase(session, StepPhase.ERROR, on_stream_message)
            self.store.remove(workflow_id, session)
            return self.composer.build_error_outcome_with_retry(
                error.error_message,
                retry_count,
                self.strategy.skip_fallback_available,
                error.error_stack,
            )
    async def _load_and_execute(self, session: Session, on_stream_message: Optional[StreamCallback]) -> OutcomeWithPause:
        options = session.options
        self._set_phase(session, StepPhase.LOADING_AGENT, on_stream_message)
        session.agent_config = await self._load_agent(session.workflow_id, options.agent_id)
        self.audit.agent_loaded(
            session.session_id, session.workflow_id, session.agent_config.id, session.agent_config.name
        )
        return await self._execute(session, on_stream_message, self.strategy.execution_phase(options))
    async def _load_agent(self, workflow_id: str, agent_id: str) -> AgentConfig:
        loaded = self.agent_loader.load_agent_config(workflow_id, agent_id)
        if inspect.isawaitable(loaded):
            loaded = await loaded
        return loaded
    async def _execute(
        self,
        session: Session,
        on_stream_message: Optional[StreamCallback],
        phase: StepPhase,
    ) -> OutcomeWithPause:
        options = session.options
        self._set_phase(session, phase, on_stream_message)
        prompt = self.strategy.build_prompt(options, session)
        execution_config = ExecutionConfig(
            agent_config=session.agent_config,
            output_schema=self.validator.json_schema,
            repository_path=options.repository_path,
            heartbeat_interval=self.config.timeout.heartbeat_interval,
            step_name=self.step_name,
        )
        timeout_seconds = options.timeout_seconds or self.config.timeout.for_step(self.step_name)
        timeout_future, cleanup = create_timeout_future(
            timeout_seconds,
            session.token,
            lambda: self.strategy.build_timeout_outcome(timeout_seconds),
        )
        session.timeout_cleanup = cleanup
        self.audit.exploring(session.session_id, session.workflow_id, {"timeout_seconds": timeout_seconds})
        execution = asyncio.ensure_future(
            self.adapter.execute_query(session, execution_config, prompt, ExecutionHandlers(on_message=on_stream_message))
        )
        try:
            done, _ = await asyncio.wait({execution, timeout_future}, return_when=asyncio.FIRST_COMPLETED)
            if execution not in done and not timeout_future.cancelled():
                execution.cancel()
                await asyncio.gather(execution, return_exceptions=True)
                return self._finish_timeout(session, timeout_future.result(), timeout_seconds, on_stream_message)
            # A cancel() clears the timer first; the adapter then resolves to None
            result = await execution
        finally:
            session.clear_timeout()
            if not execution.done():
                execution.cancel()
        if result is None:
            return self._finish_cancelled(session, on_stream_message)
        self._set_phase(session, StepPhase.PROCESSING_RESPONSE, on_stream_message)
        outcome = self.strategy.process_structured_output(result, session, self.validator)
        return self._finish(session, outcome, result, on_stream_message)
    def _finish(
        self,
        session: Session,
        outcome: Outcome,
        result: ProviderResult,
        on_stream_message: Optional[StreamCallback],
    ) -> OutcomeWithPause:
        workflow_id = session.workflow_id
        skip = self.strategy.skip_fallback_available
        if outcome.is_failure:
            retry_count = self.retry_tracker.get(workflow_id)
            self._set_phase(session, StepPhase.ERROR, on_stream_message)
            self.store.remove(workflow_id, session)
            self.audit.error(session.session_id, workflow_id, getattr(outcome, "error", outcome.type))
            return self.composer.build_failure_outcome(outcome, retry_count, skip)
        self._set_phase(session, self.strategy.completion_phase(outcome), on_stream_message)
        if not self.strategy.retains_session(outcome):
            self.store.remove(workflow_id, session)
        self.retry_tracker.clear(workflow_id)
        self.audit.completed(session.session_id, workflow_id, outcome.type, result.usage.to_dict())
        elapsed = time.monotonic() - session.started_at
        logger.info(
            f"[{self.step_name}] Session {session.session_id} completed with {outcome.type} in {elapsed:.1f}s"
        )
        return self.composer.build_outcome_with_pause_info(
            outcome,
            workflow_id,
            result,
            skip,
            self.strategy.is_gate_step,
        )
    def _finish_timeout(
        self,
        session: Session,
        outcome: Outcome,
        timeout_seconds: float,
        on_stream_message: Optional[StreamCallback],
    ) -> OutcomeWithPause:
        workflow_id = session.workflow_id
        session.token.cancel("timeout")
        self._set_phase(session, StepPhase.TIMEOUT, on_stream_message)
        self.store.remove(workflow_id, session)
        self.audit.timeout(session.session_id, workflow_id, timeout_seconds)
        logger.warning(f"[{self.step_name}] Session {session.session_id} timed out after {timeout_seconds}s")
        return self.composer.build_failure_outcome(
            outcome,
            self.retry_tracker.get(workflow_id),
            self.strategy.skip_fallback_available,
        )
    def _finish_cancelled(self, session: Session, on_stream_message: Optional[StreamCallback]) -> OutcomeWithPause:
        workflow_id = session.workflow_id
        self._set_phase(session, StepPhase.CANCELLED, on_stream_message)
        self.store.remove(workflow_id, session)
        self.retry_tracker.clear(workflow_id)
        return self.composer.build_failure_outcome(
            self.strategy.build_cancelled_outcome(session),
            0,
            self.strategy.skip_fallback_available,
        )
    def _set_phase(self, session: Session, phase: StepPhase, on_stream_message: Optional[StreamCallback]) -> None:
        if not session.transition_to(phase):
            return
        if on_stream_message is None:
            return
        message = StreamMessage(
            type=StreamMessageType.PHASE_CHANGE,
            session_id=session.session_id,
            workflow_id=session.workflow_id,
            payload={"phase": phase.value},
        )
        try:
            on_stream_message(message)
        except Exception as e:
            logger.error(f"Stream handler failed for phase change: {e}", exc_info=True)
