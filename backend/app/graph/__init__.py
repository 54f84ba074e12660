"""Graph package: generation workflow and the round state machine."""
from .workflow import create_workflow
from .round_machine import (
    Effect,
    EventType,
    RoundContext,
    RoundDriver,
    RoundState,
    Transition,
    transition,
)

__all__ = [
    "create_workflow",
    "Effect",
    "EventType",
    "RoundContext",
    "RoundDriver",
    "RoundState",
    "Transition",
    "transition",
]
