"""Community intro/outro timestamps with vote-based trust."""

from __future__ import annotations

import hmac
import logging
import secrets
from datetime import datetime
from typing import Any, Literal, Mapping, Sequence

from ..config import Settings
from ..models import EpisodeSegments, Interval, SkipSubmission, episode_key
from ..utils import parse_timestamp
from .skip_store import SkipSegmentStore

logger = logging.getLogger(__name__)

VoteDirection = Literal["upvote", "downvote"]

TRUSTED_VOTE_THRESHOLD = 3
MIN_TRUSTED_SUBMISSIONS = 3
OUTLIER_TOLERANCE_SECONDS = 30
OUTLIER_STARTING_VOTES = -1


class SubmissionValidationError(ValueError):
    """The submitted timestamps are missing, malformed or inconsistent."""


class SubmissionNotFound(LookupError):
    """No submission exists with the requested id."""


class AdminForbidden(PermissionError):
    """The administrative secret did not match."""


def parse_interval(name: str, value: Any) -> Interval:
    """Validate a ``{start, end}`` mapping into an :class:`Interval`."""

    if not isinstance(value, Mapping):
        raise SubmissionValidationError(f"{name} must be an object with start and end")
    bounds: dict[str, int] = {}
    for field in ("start", "end"):
        if field not in value:
            raise SubmissionValidationError(f"{name}.{field} is required")
        seconds = parse_timestamp(value[field])
        if seconds is None:
            raise SubmissionValidationError(f"{name}.{field} is not a valid timestamp")
        if seconds < 0:
            raise SubmissionValidationError(f"{name}.{field} must not be negative")
        bounds[field] = seconds
    if bounds["start"] >= bounds["end"]:
        raise SubmissionValidationError(f"{name}.start must be before {name}.end")
    return Interval(start=bounds["start"], end=bounds["end"])


def trusted_submissions(submissions: Sequence[SkipSubmission]) -> list[SkipSubmission]:
    """Verified submissions win; otherwise fall back to well-voted ones."""

    verified = [submission for submission in submissions if submission.verified]
    if verified:
        return verified
    return [
        submission
        for submission in submissions
        if submission.votes >= TRUSTED_VOTE_THRESHOLD
    ]


def is_outlier(
    boundaries: tuple[int, int, int, int], trusted: Sequence[SkipSubmission]
) -> bool:
    """Return whether any boundary strays too far from the trusted mean.

    Too small a trusted set means there is nothing to compare against.
    """

    if len(trusted) < MIN_TRUSTED_SUBMISSIONS:
        return False
    count = len(trusted)
    for index, value in enumerate(boundaries):
        mean = sum(submission.boundaries[index] for submission in trusted) / count
        if abs(value - mean) > OUTLIER_TOLERANCE_SECONDS:
            return True
    return False


def select_best(submissions: Sequence[SkipSubmission]) -> SkipSubmission | None:
    """Highest vote score wins; the earliest submission wins a tie."""

    best: SkipSubmission | None = None
    for submission in submissions:
        if best is None or submission.votes > best.votes:
            best = submission
    return best


class SkipSegmentService:
    """Validates, ranks and moderates skip segment submissions."""

    def __init__(self, settings: Settings, store: SkipSegmentStore):
        self._settings = settings
        self._store = store

    async def submit(
        self,
        tmdb_id: int,
        season: int,
        episode: int,
        intro: Any,
        outro: Any,
    ) -> SkipSubmission:
        key = episode_key(tmdb_id, season, episode)
        intro_interval = parse_interval("intro", intro)
        outro_interval = parse_interval("outro", outro)

        def build(existing: list[SkipSubmission]) -> SkipSubmission:
            created_at = datetime.utcnow()
            candidate = SkipSubmission(
                id=self._new_id(key, created_at),
                episode_key=key,
                intro=intro_interval,
                outro=outro_interval,
                votes=0,
                verified=False,
                created_at=created_at,
            )
            if is_outlier(candidate.boundaries, trusted_submissions(existing)):
                logger.info("Submission %s deviates from consensus", candidate.id)
                candidate = candidate.model_copy(update={"votes": OUTLIER_STARTING_VOTES})
            return candidate

        submission = await self._store.append(key, build)
        logger.info("Stored skip submission %s (votes=%s)", submission.id, submission.votes)
        return submission

    async def best_for(self, tmdb_id: int, season: int, episode: int) -> EpisodeSegments:
        key = episode_key(tmdb_id, season, episode)
        visible = [
            submission
            for submission in await self._store.list_episode(key)
            if submission.visible
        ]
        return EpisodeSegments(
            episode_key=key, best=select_best(visible), submissions=visible
        )

    async def vote(self, submission_id: str, direction: str) -> SkipSubmission:
        if direction == "upvote":
            delta = 1
        elif direction == "downvote":
            delta = -1
        else:
            raise SubmissionValidationError("direction must be 'upvote' or 'downvote'")
        submission = await self._store.adjust_votes(submission_id, delta)
        if submission is None:
            raise SubmissionNotFound(f"Submission {submission_id} not found")
        return submission

    async def verify(self, submission_id: str, secret: str | None) -> SkipSubmission:
        self._require_admin(secret)
        submission = await self._store.mark_verified(submission_id)
        if submission is None:
            raise SubmissionNotFound(f"Submission {submission_id} not found")
        logger.info("Submission %s verified", submission_id)
        return submission

    async def purge_episode(
        self, tmdb_id: int, season: int, episode: int, secret: str | None
    ) -> tuple[str, int]:
        self._require_admin(secret)
        key = episode_key(tmdb_id, season, episode)
        removed = await self._store.delete_episode(key)
        logger.warning("Purged %s submissions for episode %s", removed, key)
        return key, removed

    async def purge_all(self, secret: str | None) -> int:
        self._require_admin(secret)
        removed = await self._store.delete_all()
        logger.warning("Purged all %s skip submissions", removed)
        return removed

    def _require_admin(self, secret: str | None) -> None:
        expected = self._settings.admin_secret
        if not expected or not secret:
            raise AdminForbidden("Invalid admin secret")
        if not hmac.compare_digest(secret.encode("utf-8"), expected.encode("utf-8")):
            raise AdminForbidden("Invalid admin secret")

    @staticmethod
    def _new_id(key: str, created_at: datetime) -> str:
        millis = int(created_at.timestamp() * 1000)
        return f"{key}-{millis}-{secrets.token_hex(3)}"
