"""
Base agent interface and the action vocabulary agents decide in.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from engine.grid import Position
from engine.units import Side


class ActionType(Enum):
    ATTACK = "attack"
    CAPTURE = "capture"
    MOVE = "move"
    WAIT = "wait"


@dataclass(frozen=True)
class Action:
    """One decision for one unit. target is the tile acted upon."""
    type: ActionType
    unit_id: str
    target: Optional[Position] = None

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "unit_id": self.unit_id,
            "target": self.target.to_dict() if self.target else None,
        }


class Agent(ABC):
    """Base class for agents that play one side through a TurnManager."""

    def __init__(self, side: Side):
        self.side = side
        self.turn_count = 0

    @abstractmethod
    def play_turn(self, manager) -> list[Action]:
        """Play every action for this side's current turn. Does not end the turn."""
        pass

    def reset(self):
        """Reset agent state for a new game."""
        self.turn_count = 0
