"""Engine layer — pure rule evaluation, validation, history and diffing.

This layer depends on the domain layer, stdlib and networkx.
It must never import from services, infrastructure, commands, or config.
"""

from formctl.engine.differ import compare
from formctl.engine.history import CommandHistory
from formctl.engine.rules import evaluate
from formctl.engine.validation import AsyncValidationTracker, validate
from formctl.engine.validators import ValidatorRegistry

__all__ = [
    "AsyncValidationTracker",
    "CommandHistory",
    "ValidatorRegistry",
    "compare",
    "evaluate",
    "validate",
]
