from .engine import TransitionError, allowed_transitions, apply_transition
from .registry import WORKFLOWS

__all__ = ["TransitionError", "WORKFLOWS", "allowed_transitions", "apply_transition"]
