"""
Winner determination for ranked matches.

The player with the most accurate solution wins. If both solutions have the
same level of correctness, the fastest submission wins.
"""

from fractions import Fraction
from typing import Iterable, Optional


def accuracy(submission) -> Fraction:
    """Fraction of test cases passed (exact, so ties compare equal)."""
    if not submission.total_test_cases:
        return Fraction(0)
    return Fraction(submission.test_cases_passed, submission.total_test_cases)


def determine_winner(submissions: Iterable) -> Optional[str]:
    """
    Pick the winning user id from a match's submissions.

    Args:
        submissions: MatchSubmission-like objects with user_id, test_cases_passed,
            total_test_cases and submission_time

    Returns:
        Winning user id, or None when nobody submitted
    """
    ranked = sorted(
        submissions,
        key=lambda s: (-accuracy(s), s.submission_time)
    )
    if not ranked:
        return None
    return ranked[0].user_id
