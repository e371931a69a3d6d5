"""Multi-model ensemble execution and result synthesis."""

from .orchestrator import EnsembleOrchestrator, EnsembleOutcome, ModelResult
from .synthesizer import ResultSynthesizer, SynthesisResult, consensus_score

__all__ = [
    "EnsembleOrchestrator",
    "EnsembleOutcome",
    "ModelResult",
    "ResultSynthesizer",
    "SynthesisResult",
    "consensus_score",
]
