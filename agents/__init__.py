"""
Agents that play a side of the game.
"""

from .base import Action, ActionType, Agent
from .scripted import ScriptedAgent, decide

__all__ = ["Action", "ActionType", "Agent", "ScriptedAgent", "decide"]
