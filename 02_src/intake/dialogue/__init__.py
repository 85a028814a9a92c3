"""Dialogue module."""

from .flow import BRANCHES, Branch, FieldSpec
from .machine import DialogueStateMachine, IDialogueStateMachine

__all__ = [
    "BRANCHES",
    "Branch",
    "FieldSpec",
    "DialogueStateMachine",
    "IDialogueStateMachine",
]
