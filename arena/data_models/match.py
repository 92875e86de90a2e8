"""
Match event models delivered by match listeners.
"""

from dataclasses import dataclass
from enum import Enum

from arena.database.models import Match


class MatchEventType(Enum):
    FOUND = "found"      # First time a match naming the user is seen
    UPDATED = "updated"  # A later change to that match


@dataclass(frozen=True)
class MatchEvent:
    kind: MatchEventType
    match: Match

    @property
    def match_id(self) -> str:
        return self.match.id
