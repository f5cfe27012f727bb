"""Weekly cycle storage, the synthesis coordinator and the partner flow client."""

from .coordinator import SynthesisCoordinator
from .flow import BackoffPolicy, FlowPhase, FlowSnapshot, HttpTriggerTransport, RitualFlowClient, compute_phase
from .store import (
    CycleNotFoundError,
    CycleStore,
    InputAlreadySubmittedError,
    LockLostError,
    PersistenceError,
    PostgresCycleStore,
)

__all__ = [
    "BackoffPolicy",
    "CycleNotFoundError",
    "CycleStore",
    "FlowPhase",
    "FlowSnapshot",
    "HttpTriggerTransport",
    "InputAlreadySubmittedError",
    "LockLostError",
    "PersistenceError",
    "PostgresCycleStore",
    "RitualFlowClient",
    "SynthesisCoordinator",
    "compute_phase",
]
