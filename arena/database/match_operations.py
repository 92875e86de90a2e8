"""
Match Operations Module - ranked matchmaking queue and match lifecycle

This module owns the matchmaking queue and the match state machine:
- join / cancel: queue entry lifecycle and pairing of two waiting users
- listeners: polling event streams that report a user's match as it changes
- transitions: matched -> in_progress -> completed, or -> cancelled
- resolution: reward schedule and rank recomputation for both players

Pairing claims a waiting opponent with a conditional delete, so two joiners
can never pair with the same queue entry. Status writes are conditional
updates guarded by MATCH_TRANSITIONS, so a match is completed (and its
rewards applied) at most once.
"""

import asyncio
import inspect
import random
import uuid
from typing import Callable, List, Optional, Set, Tuple
from sqlalchemy import select, update, delete, or_

from arena.config import Config
from arena.constants import QueueConstants, RewardConstants
from arena.data_models.match import MatchEvent, MatchEventType
from arena.data_models.profile import StatsIncrement
from arena.database.models import (
    Match, MatchQueueEntry, MatchSubmission, MatchStatus, QueueStatus,
    ACTIVE_MATCH_STATUSES, sources_for, utc_now
)
from arena.utils.exceptions import ArenaError, NotFoundError, PermissionDeniedError
from arena.utils.judging import determine_winner
from arena.utils.logger import setup_logger
from arena.utils.redis_utils import PairingLock

logger = setup_logger(__name__)

WIN_INCREMENT = StatsIncrement(
    total_rank_points=RewardConstants.WIN_RANK_POINTS,
    rank_wins=1,
    rank_matches=1,
    total_points=RewardConstants.WIN_TOTAL_POINTS
)
LOSS_INCREMENT = StatsIncrement(
    rank_matches=1,
    total_points=RewardConstants.LOSS_TOTAL_POINTS
)


class MatchOperationError(ArenaError):
    """Base exception for match operation errors"""
    pass


class MatchValidationError(MatchOperationError):
    """Raised when match data validation fails"""
    pass


class MatchStateError(MatchOperationError):
    """Raised when match is in invalid state for operation"""
    pass


class MatchNotFoundError(MatchOperationError, NotFoundError):
    """Raised when a referenced match does not exist"""
    def __init__(self, match_id: str):
        super().__init__(f"Match {match_id} not found", "Match not found.")
        self.match_id = match_id


class MatchListener:
    """
    Async stream of match events for one user.

    Yields MatchEvent(FOUND) the first time a match naming the user is seen,
    then MatchEvent(UPDATED) whenever that match's revision grows. Once the
    tracked match reaches a terminal status the listener goes back to waiting
    for a new match. close() ends iteration and may be called any number of
    times; on_close runs once, on the first call.

    queue_status reflects the user's queue entry as of the last poll
    (None when the user is not queued).
    """

    def __init__(self, match_ops: 'MatchOperations', user_id: str, poll_interval: Optional[float] = None,
                 on_close: Optional[Callable[['MatchListener'], None]] = None):
        self._ops = match_ops
        self.user_id = user_id
        self.poll_interval = poll_interval or Config.MATCH_POLL_INTERVAL
        self._on_close = on_close
        self._started_at = utc_now()
        self._closed = asyncio.Event()
        self._seen_ids: Set[str] = set()
        self._tracked_id: Optional[str] = None
        self._tracked_revision = -1
        self._queue_status: Optional[QueueStatus] = None

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    @property
    def tracked_match_id(self) -> Optional[str]:
        return self._tracked_id

    @property
    def queue_status(self) -> Optional[QueueStatus]:
        return self._queue_status

    def close(self):
        if self._closed.is_set():
            return
        self._closed.set()
        if self._on_close is not None:
            self._on_close(self)
        logger.debug(f"Closed match listener for {self.user_id}")

    def __aiter__(self):
        return self

    async def __anext__(self) -> MatchEvent:
        while not self._closed.is_set():
            event = await self._poll()
            if event is not None:
                return event
            try:
                await asyncio.wait_for(self._closed.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                pass
        raise StopAsyncIteration

    async def __aenter__(self) -> 'MatchListener':
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.close()

    async def _poll(self) -> Optional[MatchEvent]:
        await self._observe_queue_entry()

        if self._tracked_id is None:
            match = await self._ops.find_new_match(self.user_id, self._started_at, self._seen_ids)
            if match is None:
                return None
            self._seen_ids.add(match.id)
            self._track(match)
            logger.info(f"Listener for {self.user_id} found Match {match.id} ({match.status.value})")
            return MatchEvent(MatchEventType.FOUND, match)

        match = await self._ops.get_match(self._tracked_id)
        if match is None:
            logger.warning(f"Tracked Match {self._tracked_id} disappeared for {self.user_id}")
            self._tracked_id = None
            return None
        if match.revision <= self._tracked_revision:
            return None

        self._track(match)
        return MatchEvent(MatchEventType.UPDATED, match)

    def _track(self, match: Match):
        self._tracked_id = match.id
        self._tracked_revision = match.revision
        if match.status.is_terminal:
            self._tracked_id = None

    async def _observe_queue_entry(self):
        entry = await self._ops.get_queue_entry(self.user_id)
        status = entry.status if entry else None
        if status != self._queue_status:
            logger.debug(
                f"Queue entry for {self.user_id}: "
                f"{self._queue_status.value if self._queue_status else 'none'} -> "
                f"{status.value if status else 'none'}"
            )
            self._queue_status = status


class MatchOperations:
    """
    Core service class for the matchmaking queue and match lifecycle.

    Every read goes to the database; nothing authoritative is cached here.
    """

    def __init__(self, database, profile_service, rank_service,
                 pairing_lock: Optional[PairingLock] = None, rng: Optional[random.Random] = None):
        """Initialize with database instance and the services used for resolution"""
        self.db = database
        self.profile_service = profile_service
        self.rank_service = rank_service
        self.pairing_lock = pairing_lock or PairingLock()
        self.rng = rng or random.Random()
        self.logger = logger
        self._listeners: Set[MatchListener] = set()
        self._listener_tasks: Set[asyncio.Task] = set()

    # ============================================================================
    # Queue: join / cancel
    # ============================================================================

    async def join(self, user_id: str, rating: Optional[int] = None) -> str:
        """
        Enter ranked matchmaking.

        Clears the user's stale queue entry and dangling active matches, then
        pairs with the longest-waiting other user if there is one.

        Args:
            user_id: Authenticated user id
            rating: Optional skill rating stored on the queue entry

        Returns:
            The new match id, or QueueConstants.WAITING if queued
        """
        if not user_id:
            raise MatchValidationError("user_id is required to join matchmaking")

        await self._self_heal(user_id)

        async with self.pairing_lock.hold():
            async with self.db.transaction() as session:
                result = await session.execute(
                    select(MatchQueueEntry.user_id)
                    .where(MatchQueueEntry.status == QueueStatus.WAITING)
                    .where(MatchQueueEntry.user_id != user_id)
                    .order_by(MatchQueueEntry.timestamp, MatchQueueEntry.user_id)
                )
                candidate_ids = list(result.scalars().all())

                for candidate_id in candidate_ids:
                    # Claim the candidate; zero rows means another client got there first
                    claimed = await session.execute(
                        delete(MatchQueueEntry)
                        .where(MatchQueueEntry.user_id == candidate_id)
                        .where(MatchQueueEntry.status == QueueStatus.WAITING)
                        .execution_options(synchronize_session=False)
                    )
                    if claimed.rowcount != 1:
                        self.logger.info(f"Queue entry for {candidate_id} was claimed by another client")
                        continue

                    match = Match(
                        id=uuid.uuid4().hex,
                        player1_id=candidate_id,
                        player2_id=user_id,
                        problem_id=self._pick_problem(),
                        status=MatchStatus.MATCHED,
                        start_time=utc_now(),
                        revision=0
                    )
                    session.add(match)
                    self.logger.info(
                        f"Paired {candidate_id} with {user_id} in Match {match.id} "
                        f"(problem {match.problem_id})"
                    )
                    return match.id

                session.add(MatchQueueEntry(
                    user_id=user_id,
                    timestamp=utc_now(),
                    status=QueueStatus.WAITING,
                    rating=rating
                ))
                self.logger.info(f"User {user_id} is waiting for an opponent")
                return QueueConstants.WAITING

    async def cancel_matchmaking(self, user_id: str) -> bool:
        """
        Leave the matchmaking queue. Already-created matches are untouched.

        Returns:
            True if a queue entry was removed
        """
        async with self.db.transaction() as session:
            result = await session.execute(
                delete(MatchQueueEntry)
                .where(MatchQueueEntry.user_id == user_id)
                .execution_options(synchronize_session=False)
            )
            removed = result.rowcount > 0

        if removed:
            self.logger.info(f"User {user_id} left the matchmaking queue")
        return removed

    async def get_queue_entry(self, user_id: str) -> Optional[MatchQueueEntry]:
        async with self.db.get_session() as session:
            return await session.get(MatchQueueEntry, user_id)

    async def _self_heal(self, user_id: str):
        """Remove the user's queue entry and cancel matches they abandoned."""
        async with self.db.transaction() as session:
            removed = await session.execute(
                delete(MatchQueueEntry)
                .where(MatchQueueEntry.user_id == user_id)
                .execution_options(synchronize_session=False)
            )
            abandoned = await session.execute(
                update(Match)
                .where(or_(Match.player1_id == user_id, Match.player2_id == user_id))
                .where(Match.status.in_(ACTIVE_MATCH_STATUSES))
                .values(
                    status=MatchStatus.CANCELLED,
                    end_time=utc_now(),
                    cancel_reason="abandoned: player re-entered matchmaking",
                    revision=Match.revision + 1
                )
                .execution_options(synchronize_session=False)
            )

        if removed.rowcount:
            self.logger.info(f"Removed stale queue entry for {user_id}")
        if abandoned.rowcount:
            self.logger.warning(f"Cancelled {abandoned.rowcount} abandoned active match(es) for {user_id}")

    def _pick_problem(self) -> int:
        return self.rng.randint(1, Config.PROBLEM_POOL_SIZE)

    # ============================================================================
    # Listening
    # ============================================================================

    def watch_match(self, user_id: str, poll_interval: Optional[float] = None) -> MatchListener:
        """Open an event stream of the user's match (see MatchListener)."""
        listener = MatchListener(self, user_id, poll_interval, on_close=self._listeners.discard)
        self._listeners.add(listener)
        return listener

    def listen_for_match(
        self,
        user_id: str,
        on_found: Callable[[Match], object],
        on_update: Optional[Callable[[Match], object]] = None,
        poll_interval: Optional[float] = None
    ) -> Callable[[], None]:
        """
        Call on_found when the user's match first appears and on_update on
        each later change. Callbacks may be coroutine functions.

        Returns:
            Unsubscribe function; calling it more than once is a no-op
        """
        listener = self.watch_match(user_id, poll_interval)

        async def pump():
            try:
                async for event in listener:
                    callback = on_found if event.kind == MatchEventType.FOUND else on_update
                    if callback is None:
                        continue
                    try:
                        outcome = callback(event.match)
                        if inspect.isawaitable(outcome):
                            await outcome
                    except Exception:
                        self.logger.error(
                            f"Match listener callback failed for {user_id} ({event.kind.value})",
                            exc_info=True
                        )
            except ArenaError as e:
                self.logger.error(f"Match listener for {user_id} stopped: {e}")
            finally:
                listener.close()

        task = asyncio.get_running_loop().create_task(pump(), name=f"match-listener-{user_id}")
        self._listener_tasks.add(task)
        task.add_done_callback(self._listener_tasks.discard)

        return listener.close

    @property
    def open_listener_count(self) -> int:
        return len(self._listeners)

    async def close_listeners(self):
        """Close every open listener and wait for callback pumps to finish."""
        for listener in list(self._listeners):
            listener.close()
        if self._listener_tasks:
            await asyncio.gather(*self._listener_tasks, return_exceptions=True)

    # ============================================================================
    # Reads
    # ============================================================================

    async def get_match(self, match_id: str) -> Optional[Match]:
        """
        Retrieve Match by ID with submissions loaded.

        Returns:
            Match if exists, None otherwise
        """
        async with self.db.get_session() as session:
            result = await session.execute(
                select(Match).where(Match.id == match_id)
            )
            return result.scalar_one_or_none()

    async def get_active_match(self, user_id: str) -> Optional[Match]:
        """Get the user's newest matched or in-progress match"""
        async with self.db.get_session() as session:
            result = await session.execute(
                select(Match)
                .where(or_(Match.player1_id == user_id, Match.player2_id == user_id))
                .where(Match.status.in_(ACTIVE_MATCH_STATUSES))
                .order_by(Match.start_time.desc(), Match.id.desc())
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def find_new_match(self, user_id: str, since, exclude_ids: Set[str]) -> Optional[Match]:
        """
        Newest match naming the user that is either active or started at or
        after `since`, skipping ids in exclude_ids.
        """
        async with self.db.get_session() as session:
            query = (
                select(Match)
                .where(or_(Match.player1_id == user_id, Match.player2_id == user_id))
                .where(or_(Match.status.in_(ACTIVE_MATCH_STATUSES), Match.start_time >= since))
            )
            if exclude_ids:
                query = query.where(Match.id.notin_(exclude_ids))
            result = await session.execute(
                query.order_by(Match.start_time.desc(), Match.id.desc()).limit(1)
            )
            return result.scalar_one_or_none()

    async def get_user_recent_matches(self, user_id: str, count: int = 5) -> List[Match]:
        """
        Get the user's most recent matches as either player, newest first.

        Args:
            user_id: User to look up
            count: Maximum number of matches to return (at least 1)
        """
        if not isinstance(count, int) or count < 1:
            raise ValueError("count must be a positive integer")

        async with self.db.get_session() as session:
            result = await session.execute(
                select(Match)
                .where(or_(Match.player1_id == user_id, Match.player2_id == user_id))
                .order_by(Match.start_time.desc(), Match.id.desc())
                .limit(count)
            )
            return list(result.scalars().all())

    # ============================================================================
    # Status transitions
    # ============================================================================

    async def _transition(self, match_id: str, target: MatchStatus, **values) -> Match:
        """Move a match to `target` if MATCH_TRANSITIONS allows it from its current status."""
        async with self.db.transaction() as session:
            result = await session.execute(
                update(Match)
                .where(Match.id == match_id)
                .where(Match.status.in_(sources_for(target)))
                .values(status=target, revision=Match.revision + 1, **values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                match = await session.get(Match, match_id)
                if match is None:
                    raise MatchNotFoundError(match_id)
                raise MatchStateError(
                    f"Cannot move Match {match_id} from {match.status.value} to {target.value}",
                    f"This match is already {match.status.value.replace('_', ' ')}."
                )
            match = await session.get(Match, match_id, populate_existing=True)

        self.logger.info(f"Match {match_id} -> {target.value}")
        return match

    async def start_match(self, match_id: str) -> Match:
        """matched -> in_progress"""
        return await self._transition(match_id, MatchStatus.IN_PROGRESS)

    async def cancel_match(self, match_id: str, reason: Optional[str] = None) -> Match:
        """
        Cancel a matched or in-progress match.

        Args:
            match_id: Match to cancel
            reason: Optional cancellation reason
        """
        match = await self._transition(
            match_id,
            MatchStatus.CANCELLED,
            end_time=utc_now(),
            cancel_reason=reason
        )
        self.logger.info(f"Cancelled Match {match_id}: {reason}")
        return match

    async def record_submission(
        self,
        match_id: str,
        user_id: str,
        code: str,
        language: str,
        test_cases_passed: int,
        total_test_cases: int,
        acting_user_id: Optional[str] = None
    ) -> Match:
        """
        Store a player's solution, replacing their previous one.

        The first submission moves a matched match to in_progress.

        Raises:
            PermissionDeniedError: If the submitter is not a player (or not the caller)
            MatchValidationError: If test case counts are inconsistent
            MatchStateError: If the match is already finished
        """
        if acting_user_id is not None and acting_user_id != user_id:
            raise PermissionDeniedError(
                f"User {acting_user_id} may not submit for {user_id}",
                "Permission denied: you can only submit your own solution."
            )
        if total_test_cases <= 0 or not 0 <= test_cases_passed <= total_test_cases:
            raise MatchValidationError(
                f"Invalid test case counts {test_cases_passed}/{total_test_cases} for Match {match_id}"
            )

        async with self.db.transaction() as session:
            match = await session.get(Match, match_id)
            if match is None:
                raise MatchNotFoundError(match_id)
            if user_id not in match.player_ids:
                raise PermissionDeniedError(
                    f"User {user_id} is not a player in Match {match_id}",
                    "Permission denied: only players in this match can update it."
                )
            if match.status.is_terminal:
                raise MatchStateError(
                    f"Match {match_id} is {match.status.value}; submissions are closed",
                    "This match is over; submissions are closed."
                )

            result = await session.execute(
                select(MatchSubmission)
                .where(MatchSubmission.match_id == match_id)
                .where(MatchSubmission.user_id == user_id)
            )
            submission = result.scalar_one_or_none()
            if submission is None:
                submission = MatchSubmission(match_id=match_id, user_id=user_id)
                session.add(submission)
            submission.code = code
            submission.language = language
            submission.submission_time = utc_now()
            submission.test_cases_passed = test_cases_passed
            submission.total_test_cases = total_test_cases

            values = {'revision': Match.revision + 1}
            if match.status == MatchStatus.MATCHED:
                values['status'] = MatchStatus.IN_PROGRESS
            bumped = await session.execute(
                update(Match)
                .where(Match.id == match_id)
                .where(Match.status == match.status)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if bumped.rowcount == 0:
                raise MatchStateError(f"Match {match_id} changed while recording submission")

        self.logger.info(
            f"Recorded submission for {user_id} in Match {match_id}: "
            f"{test_cases_passed}/{total_test_cases} ({language})"
        )
        return await self.get_match(match_id)

    async def complete_match(self, match_id: str, winner_id: str) -> Match:
        """
        Complete an in-progress match and apply its results.

        The status write only succeeds once per match, so rewards are applied
        at most once through this path.
        """
        match = await self.get_match(match_id)
        if match is None:
            raise MatchNotFoundError(match_id)
        if winner_id not in match.player_ids:
            raise MatchValidationError(f"Winner {winner_id} is not a player in Match {match_id}")

        completed = await self._transition(
            match_id,
            MatchStatus.COMPLETED,
            winner_id=winner_id,
            end_time=utc_now()
        )
        await self.update_match_results(winner_id, completed.opponent_of(winner_id))
        return completed

    async def resolve_match(self, match_id: str) -> Match:
        """Decide the winner from submissions and complete the match."""
        match = await self.get_match(match_id)
        if match is None:
            raise MatchNotFoundError(match_id)

        winner_id = determine_winner(match.submissions)
        if winner_id is None:
            raise MatchStateError(
                f"Match {match_id} has no submissions to judge",
                "No solutions were submitted for this match."
            )
        return await self.complete_match(match_id, winner_id)

    # ============================================================================
    # Resolution
    # ============================================================================

    async def update_match_results(self, winner_id: str, loser_id: str) -> Tuple[str, str]:
        """
        Apply the ranked reward schedule and recompute both players' ranks.

        Each player's counters move in one atomic increment. The two updates
        are separate writes, so a failure after the first leaves the winner
        updated; callers must invoke this once per completed match.

        Returns:
            (winner_rank, loser_rank) tier names
        """
        if winner_id == loser_id:
            raise MatchValidationError(f"Winner and loser must differ (got {winner_id})")

        self.logger.info(f"Updating match results - Winner: {winner_id}, Loser: {loser_id}")

        await self.profile_service.ensure_profile(winner_id)
        await self.profile_service.ensure_profile(loser_id)

        await self.profile_service.apply_stats_increment(winner_id, WIN_INCREMENT)
        await self.profile_service.apply_stats_increment(loser_id, LOSS_INCREMENT)

        winner_rank = await self.rank_service.update_user_ranks(winner_id)
        loser_rank = await self.rank_service.update_user_ranks(loser_id)

        self.logger.info(f"Match results applied: {winner_id} -> {winner_rank}, {loser_id} -> {loser_rank}")
        return winner_rank, loser_rank
