"""
Combat resolution.

The same damage primitive drives the initial strike and the counterattack.
"""

from .base import CombatResolver, CombatReport
from .engagement import EngagementCombat

__all__ = [
    "CombatResolver",
    "CombatReport",
    "EngagementCombat",
]
