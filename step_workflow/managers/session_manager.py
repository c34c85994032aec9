"""Step session registry: at most one live session per workflow."""
import logging
import threading
from collections import OrderedDict
from typing import List, Optional
from ..core.types import Session
from ..lib.error_handling import StepWorkflowError
logger = logging.getLogger(__name__)
class SessionExistsError(StepWorkflowError):
    """Raised when a workflow already has an active session."""
    def __init__(self, workflow_id: str):
        super().__init__(f"An active session already exists for workflow {workflow_id}")
        self.workflow_id = workflow_id
class StepSessionStore:
    """
    Registry of active step sessions keyed by workflow id.
    All mutations happen under a lock so a cancel racing a start for the
    same workflow can neither register two sessions nor evict the wrong one.
    No lock is held across an await; uniqueness comes from create()
    rejecting an already-registered id.
    Example:
        >>> store = StepSessionStore()
        >>> session = store.create("wf-1", Session(workflow_id="wf-1"))
        >>> store.get("wf-1") is session
        True
    """
    def __init__(self):
        # Thread safety - RLock so helpers can re-enter
        self._lock = threading.RLock()
        self._sessions: "OrderedDict[str, Session]" = OrderedDict()
    def create(self, workflow_id: str, session: Session) -> Session:
        """
        Register a session for a workflow.
        Args:
            workflow_id: Owning workflow
            session: Freshly built session
        Returns:
            The registered session
        Raises:
            SessionExistsError: If the workflow already has a session
        """
        with self._lock:
            if workflow_id in self._sessions:
                raise SessionExistsError(workflow_id)
            self._sessions[workflow_id] = session
        logger.info(f"Created session {session.session_id} for workflow {workflow_id}")
        return session
    def get(self, workflow_id: str) -> Optional[Session]:
        with self._lock:
            return self._sessions.get(workflow_id)
    def remove(self, workflow_id: str, session: Optional[Session] = None) -> bool:
        """
        Deregister a workflow's session.
        Args:
            workflow_id: Owning workflow
            session: If given, only remove when this exact session is registered
        Returns:
            True if a session was removed
        """
        with self._lock:
            current = self._sessions.get(workflow_id)
            if current is None:
                return False
            if session is not None and current is not session:
                return False
            del self._sessions[workflow_id]
        logger.info(f"Removed session {current.session_id} for workflow {workflow_id}")
        return True
    def list_workflow_ids(self) -> List[str]:
        with self._lock:
            return list(self._sessions.keys())
    @property
    def active_count(self) -> int:
        with self._lock:
            return len(self._sessions)
