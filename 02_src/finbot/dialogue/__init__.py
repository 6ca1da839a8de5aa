"""Dialogue flow: slot filling, intent dispatch and the per-message agent."""

from .agent import DialogueAgent, IDialogueAgent
from .dispatcher import IntentDispatcher, Turn
from .slot_filling import SlotFillingController, SlotStep

__all__ = [
    "DialogueAgent",
    "IDialogueAgent",
    "IntentDispatcher",
    "Turn",
    "SlotFillingController",
    "SlotStep",
]
