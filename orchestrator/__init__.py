"""Orchestrator module for hybrid reasoning execution.

State machine-based session execution with:
- Explicit session status transitions
- Non-thinking, thinking and hybrid mode handlers
- Mode-switch monitoring and escalate-and-retry attempts
- Session persistence and reasoning traces
"""

from .cache import ResultCache
from .context import CancellationToken, RunContext
from .outcome import ModeOutcome
from .runner import ModeExecutor
from .service import HybridReasoningService
from .state_machine import SessionStateMachine, Transition
from .switch_monitor import DEFAULT_TRIGGERS, SwitchAction, SwitchMonitor, Trigger, TriggerType

__all__ = [
    "CancellationToken",
    "DEFAULT_TRIGGERS",
    "HybridReasoningService",
    "ModeExecutor",
    "ModeOutcome",
    "ResultCache",
    "RunContext",
    "SessionStateMachine",
    "SwitchAction",
    "SwitchMonitor",
    "Transition",
    "Trigger",
    "TriggerType",
]
