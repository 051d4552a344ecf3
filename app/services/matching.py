"""Candidate selection strategies used when linking TMDB and FlixHQ entries.

Both strategies scan candidates in the order the remote search returned
them and accept the first one that qualifies; the best-scoring candidate is
not searched for.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Protocol, Sequence

from ..utils import compare_titles


class MatchCandidate(Protocol):
    @property
    def title(self) -> str: ...

    @property
    def year(self) -> int | None: ...


class TypedMatchCandidate(MatchCandidate, Protocol):
    @property
    def type(self) -> str: ...


@dataclass(frozen=True, slots=True)
class MatchTarget:
    """The entry we are looking for in the other catalog."""

    title: str
    year: int | None
    content_type: str


class CandidateMatcher(Protocol):
    def select(self, target: MatchTarget, candidates: Sequence) -> object | None:
        """Return the first acceptable candidate or ``None``."""


@dataclass(frozen=True, slots=True)
class TitleMatchPolicy:
    """Similarity thresholds for title matching.

    A candidate is accepted when its score exceeds ``strict_score``, or when
    it exceeds ``loose_score`` and its year is unknown or within
    ``year_tolerance`` of the target year.
    """

    strict_score: float
    loose_score: float
    year_tolerance: int = 0


FORWARD_POLICY = TitleMatchPolicy(strict_score=0.95, loose_score=0.85, year_tolerance=0)
CRAWLER_POLICY = TitleMatchPolicy(strict_score=0.98, loose_score=0.90, year_tolerance=1)


def year_compatible(candidate_year: int | None, target_year: int | None, tolerance: int) -> bool:
    """Unknown candidate years are compatible with anything."""

    if candidate_year is None:
        return True
    if target_year is None:
        return False
    return abs(candidate_year - target_year) <= tolerance


class SimilarityYearMatcher:
    """Forward strategy: FlixHQ cards scored against a TMDB title."""

    def __init__(
        self,
        policy: TitleMatchPolicy = FORWARD_POLICY,
        scorer: Callable[[str, str], float] = compare_titles,
    ) -> None:
        self.policy = policy
        self._scorer = scorer

    def accepts(self, score: float, candidate_year: int | None, target_year: int | None) -> bool:
        if score > self.policy.strict_score:
            return True
        return score > self.policy.loose_score and year_compatible(
            candidate_year, target_year, self.policy.year_tolerance
        )

    def select(
        self, target: MatchTarget, candidates: Sequence[TypedMatchCandidate]
    ) -> TypedMatchCandidate | None:
        wanted = target.title.lower()
        for candidate in candidates:
            if candidate.type != target.content_type:
                continue
            score = self._scorer(candidate.title.lower(), wanted)
            if self.accepts(score, candidate.year, target.year):
                return candidate
        return None


class YearOnlyMatcher:
    """Reverse strategy: TMDB search results checked by release year alone."""

    def __init__(self, year_tolerance: int = 1) -> None:
        self.year_tolerance = year_tolerance

    def select(
        self, target: MatchTarget, candidates: Sequence[MatchCandidate]
    ) -> MatchCandidate | None:
        for candidate in candidates:
            if year_compatible(candidate.year, target.year, self.year_tolerance):
                return candidate
        return None
