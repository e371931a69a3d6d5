"""Hybrid reasoning service: the public boundary of the router."""

from __future__ import annotations

import logging
import threading
from pathlib import Path

from learning import PerformanceLearner, SnapshotStore
from llm_backend import LLMBackend, build_backend
from pipeline.config import Config, get_config
from pipeline.errors import ValidationError
from routing import ModelRouter
from routing.catalog import REASONING_MODES
from schemas.performance import MetricsFilter, PerformanceSummary
from schemas.routing import ReasoningMode, RoutingDecision
from schemas.session import ExecutionResult, ExecutionSession, ReasoningStep
from schemas.task import ExecutionContext, SubmitOptions, Task
from tools.base import ToolBackend
from tools.catalog import ToolCatalog

from .context import CancellationToken
from .runner import ModeExecutor
from .state_machine import SessionStateMachine
from .switch_monitor import SwitchMonitor
from .validation import validate_task

logger = logging.getLogger(__name__)


class HybridReasoningService:
    """Routes, executes and learns from tasks.

    Components are built from the configuration unless injected.

    Example:
        service = HybridReasoningService(config, backend=backend)
        result = service.submit_task(task)
        trace = service.get_reasoning_trace(result.session_id)
    """

    def __init__(
        self,
        config: Config | None = None,
        backend: LLMBackend | None = None,
        tools: ToolBackend | None = None,
        catalog: ToolCatalog | None = None,
        snapshots: SnapshotStore | None = None,
        learner: PerformanceLearner | None = None,
        monitor: SwitchMonitor | None = None,
    ):
        """Initialize service.

        Args:
            config: Application configuration (default: get_config())
            backend: Model backend (default: built from config.llm)
            tools: Tool backend (None = tasks requiring tools are rejected)
            catalog: Tool catalog (default: the tool backend's tools)
            snapshots: Routing snapshots (default: routing.snapshot_file or catalog)
            learner: Performance learner (default: built from config.learning)
            monitor: Mode-switch monitor (default triggers if omitted)
        """
        self.config = config or get_config()
        self.snapshots = snapshots or self._load_snapshots()
        self.router = ModelRouter(self.config.routing, self.snapshots)

        if learner is None and self.config.learning.enabled:
            learner = PerformanceLearner.from_config(self.config.learning, self.snapshots)
        self.learner = learner

        self.backend = backend or build_backend(self.config.llm, self._provider_of)
        self.tools = tools
        if catalog is None and tools is not None:
            catalog = ToolCatalog(tools.available_tools())

        self.executor = ModeExecutor(
            self.config,
            self.router,
            self.backend,
            learner=self.learner,
            tools=tools,
            catalog=catalog,
            monitor=monitor,
        )

        self._sessions: dict[str, SessionStateMachine] = {}
        self._tokens: dict[str, CancellationToken] = {}
        self._lock = threading.Lock()

    def _load_snapshots(self) -> SnapshotStore:
        path = self.config.routing.snapshot_file
        if path and Path(path).exists():
            logger.info("Loading routing snapshot from %s", path)
            return SnapshotStore.load(path)
        return SnapshotStore()

    def _provider_of(self, model_id: str) -> str | None:
        profile = self.snapshots.current().registry.get(model_id)
        return profile.provider if profile is not None else None

    # Execution

    def submit_task(self, task: Task, options: SubmitOptions | None = None) -> ExecutionResult:
        """Route and execute a task.

        Returns:
            ExecutionResult; execution failures are reported in the result

        Raises:
            ValidationError: If the task is malformed (before any model call)
        """
        options = options or SubmitOptions()
        validate_task(task, self.tools)

        machine = SessionStateMachine.create(task.id, options.session_id)
        token = CancellationToken()
        with self._lock:
            if machine.session.id in self._sessions:
                raise ValidationError(f"Session {machine.session.id} already exists")
            self._sessions[machine.session.id] = machine
            self._tokens[machine.session.id] = token

        logger.info("Session %s: submitted task %s", machine.session.id, task.id)
        try:
            return self.executor.run(
                task,
                machine,
                context=options.context,
                token=token,
                budget_seconds=options.session_budget_seconds,
                mode=options.mode,
            )
        finally:
            with self._lock:
                self._tokens.pop(machine.session.id, None)

    def cancel(self, session_id: str) -> bool:
        """Request cancellation of a running session.

        Returns:
            True if the session was running and is now cancelling
        """
        with self._lock:
            token = self._tokens.get(session_id)
        if token is None:
            return False
        token.cancel()
        logger.info("Session %s: cancellation requested", session_id)
        return True

    def resolve_review(self, session_id: str, approved: bool, notes: str | None = None) -> ExecutionSession:
        """Resolve a session held for review."""
        machine = self._machine(session_id)
        machine.resolve_review(approved, notes)
        self.executor.persist(machine)
        return machine.session

    # Queries

    def get_routing_decision(self, task: Task, context: ExecutionContext | None = None) -> RoutingDecision:
        """Dry-run routing: no session, no model calls."""
        return self.router.decide(task, context)

    def explain_routing(self, task: Task, context: ExecutionContext | None = None) -> dict:
        return self.router.explain_routing(task, context)

    def get_session(self, session_id: str) -> ExecutionSession:
        return self._machine(session_id).session

    def get_reasoning_trace(self, session_id: str) -> list[ReasoningStep]:
        """Reasoning steps of a session, in order.

        Raises:
            KeyError: If the session is unknown
        """
        return self._machine(session_id).steps()

    def get_performance_metrics(self, filter: MetricsFilter | None = None) -> PerformanceSummary:
        if self.learner is None:
            return PerformanceSummary()
        if self.config.learning.background:
            self.learner.flush()
        return self.learner.summary(filter)

    def available_modes(self) -> list[ReasoningMode]:
        return list(REASONING_MODES)

    def _machine(self, session_id: str) -> SessionStateMachine:
        with self._lock:
            machine = self._sessions.get(session_id)
        if machine is not None:
            return machine

        sessions_dir = self.config.execution.sessions_dir
        if sessions_dir:
            try:
                machine = SessionStateMachine.load_state(sessions_dir, session_id)
            except FileNotFoundError:
                machine = None
        if machine is None:
            raise KeyError(f"Unknown session: {session_id}")

        with self._lock:
            self._sessions.setdefault(session_id, machine)
        return machine

    def close(self) -> None:
        """Stop the learner and save the routing snapshot if configured."""
        if self.learner is not None:
            self.learner.close()
        if self.config.routing.snapshot_file:
            self.snapshots.save(self.config.routing.snapshot_file)
            logger.info("Routing snapshot v%d saved to %s",
                        self.snapshots.version, self.config.routing.snapshot_file)
