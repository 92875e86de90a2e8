from sqlalchemy import (
    Column, Integer, String, DateTime, Text, JSON,
    ForeignKey, Enum as SQLEnum, UniqueConstraint, CheckConstraint, Index
)
from sqlalchemy.orm import declarative_base, relationship
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional

from arena.constants import ProfileDefaults
from arena.utils.ranking import RankTier

Base = declarative_base()


def utc_now() -> datetime:
    """Naive UTC timestamp (SQLite drops tzinfo, so all stored times are naive UTC)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class QueueStatus(Enum):
    WAITING = "waiting"
    MATCHED = "matched"

class MatchStatus(Enum):
    """Status of a ranked match from pairing to resolution"""
    MATCHED = "matched"          # Players paired, problem assigned
    IN_PROGRESS = "in_progress"  # Players are solving
    COMPLETED = "completed"      # Winner decided
    CANCELLED = "cancelled"      # Abandoned before completion

    @property
    def is_terminal(self) -> bool:
        return self in (MatchStatus.COMPLETED, MatchStatus.CANCELLED)

ACTIVE_MATCH_STATUSES = (MatchStatus.MATCHED, MatchStatus.IN_PROGRESS)

# Allowed status transitions; anything not listed is rejected
MATCH_TRANSITIONS = {
    MatchStatus.MATCHED: {MatchStatus.IN_PROGRESS, MatchStatus.CANCELLED},
    MatchStatus.IN_PROGRESS: {MatchStatus.COMPLETED, MatchStatus.CANCELLED},
    MatchStatus.COMPLETED: set(),
    MatchStatus.CANCELLED: set(),
}


def sources_for(target: MatchStatus):
    """Statuses from which a match may move to the target status"""
    return [status for status, targets in MATCH_TRANSITIONS.items() if target in targets]


class UserProfile(Base):
    __tablename__ = 'user_profiles'

    id = Column(String(128), primary_key=True)  # Auth provider user id
    display_name = Column(String(100), default=ProfileDefaults.DISPLAY_NAME)
    handle = Column(String(100), nullable=True)
    avatar_url = Column(String(500), nullable=True)

    # Practice stats
    problems_solved = Column(Integer, default=0)
    current_streak = Column(Integer, default=0)
    best_streak = Column(Integer, default=0)
    average_solve_time = Column(Integer, nullable=True)  # Seconds, rounded
    total_points = Column(Integer, default=0, index=True)
    solved_problems = Column(JSON, default=list)

    # Ranked stats
    total_rank_points = Column(Integer, default=0, index=True)
    rank_wins = Column(Integer, default=0)
    rank_matches = Column(Integer, default=0)
    rank = Column(String(20), default=RankTier.UNRANKED.value)

    # Metadata
    created_at = Column(DateTime, default=utc_now)
    last_active = Column(DateTime, default=utc_now)

    @property
    def win_rate(self) -> float:
        if not self.rank_matches:
            return 0.0
        return (self.rank_wins / self.rank_matches) * 100

    def __repr__(self):
        return f"<UserProfile(id='{self.id}', name='{self.display_name}', rank='{self.rank}')>"

class MatchQueueEntry(Base):
    __tablename__ = 'match_queue'

    user_id = Column(String(128), primary_key=True)  # One entry per user
    timestamp = Column(DateTime, default=utc_now, nullable=False, index=True)
    status = Column(SQLEnum(QueueStatus), default=QueueStatus.WAITING, nullable=False)
    rating = Column(Integer, nullable=True)

    def __repr__(self):
        return f"<MatchQueueEntry(user_id='{self.user_id}', status={self.status.value})>"

class Match(Base):
    """
    A ranked 1v1 match between two players on one problem.

    Every write bumps `revision` so listeners can tell that the row changed.
    """
    __tablename__ = 'matches'

    id = Column(String(32), primary_key=True)  # uuid4 hex
    player1_id = Column(String(128), nullable=False, index=True)
    player2_id = Column(String(128), nullable=False, index=True)
    problem_id = Column(Integer, nullable=False)

    status = Column(SQLEnum(MatchStatus), default=MatchStatus.MATCHED, nullable=False)
    winner_id = Column(String(128), nullable=True)
    cancel_reason = Column(String(255), nullable=True)

    # Match timing
    start_time = Column(DateTime, default=utc_now, nullable=False)
    end_time = Column(DateTime, nullable=True)

    revision = Column(Integer, default=0, nullable=False)

    submissions = relationship(
        "MatchSubmission",
        back_populates="match",
        cascade="all, delete-orphan",
        lazy="selectin"
    )

    __table_args__ = (
        CheckConstraint('player1_id != player2_id', name='distinct_players_check'),
        CheckConstraint(
            'winner_id IS NULL OR winner_id = player1_id OR winner_id = player2_id',
            name='winner_is_player_check'
        ),
        Index('idx_matches_status_start', 'status', 'start_time'),
    )

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_MATCH_STATUSES

    @property
    def player_ids(self):
        return (self.player1_id, self.player2_id)

    def opponent_of(self, user_id: str) -> str:
        """Get the other player's id"""
        if user_id == self.player1_id:
            return self.player2_id
        if user_id == self.player2_id:
            return self.player1_id
        raise ValueError(f"User {user_id} is not a player in match {self.id}")

    @property
    def submissions_by_user(self) -> Dict[str, 'MatchSubmission']:
        return {submission.user_id: submission for submission in self.submissions}

    def submission_for(self, user_id: str) -> Optional['MatchSubmission']:
        return self.submissions_by_user.get(user_id)

    @property
    def duration_minutes(self) -> Optional[float]:
        """Match duration in minutes if finished"""
        if not self.start_time or not self.end_time:
            return None
        delta = self.end_time - self.start_time
        return delta.total_seconds() / 60

    def __repr__(self):
        return (
            f"<Match(id='{self.id}', players=({self.player1_id}, {self.player2_id}), "
            f"status={self.status.value}, revision={self.revision})>"
        )

class MatchSubmission(Base):
    """A player's latest solution for a match."""
    __tablename__ = 'match_submissions'

    id = Column(Integer, primary_key=True)
    match_id = Column(String(32), ForeignKey('matches.id'), nullable=False, index=True)
    user_id = Column(String(128), nullable=False)

    code = Column(Text, nullable=False)
    language = Column(String(50), nullable=False)
    submission_time = Column(DateTime, default=utc_now, nullable=False)
    test_cases_passed = Column(Integer, default=0, nullable=False)
    total_test_cases = Column(Integer, nullable=False)

    __table_args__ = (
        UniqueConstraint('match_id', 'user_id', name='unique_submission_per_player'),
        CheckConstraint('test_cases_passed >= 0', name='non_negative_passed_check'),
        CheckConstraint('test_cases_passed <= total_test_cases', name='passed_within_total_check'),
    )

    match = relationship("Match", back_populates="submissions")

    def __repr__(self):
        return (
            f"<MatchSubmission(match_id='{self.match_id}', user_id='{self.user_id}', "
            f"passed={self.test_cases_passed}/{self.total_test_cases})>"
        )
