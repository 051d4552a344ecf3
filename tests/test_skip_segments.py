from __future__ import annotations

import asyncio

import pytest

from app.config import Settings
from app.database import Database
from app.services.skip_segments import (
    AdminForbidden,
    OUTLIER_STARTING_VOTES,
    SkipSegmentService,
    SubmissionNotFound,
    SubmissionValidationError,
    parse_interval,
)
from app.services.skip_store import SkipSegmentStore

INTRO = {"start": 0, "end": 100}
OUTRO = {"start": 2500, "end": 2600}


def _run(database_url: str, scenario, admin_secret: str | None = "letmein"):
    async def runner():
        database = Database(database_url)
        await database.create_all()
        settings = Settings(_env_file=None, ADMIN_SECRET=admin_secret or "")
        service = SkipSegmentService(settings, SkipSegmentStore(database.session_factory))
        try:
            return await scenario(service)
        finally:
            await database.dispose()

    return asyncio.run(runner())


def test_parse_interval_accepts_clock_strings() -> None:
    interval = parse_interval("intro", {"start": "0:30", "end": "1:30"})

    assert (interval.start, interval.end) == (30, 90)


@pytest.mark.parametrize(
    ("value", "message"),
    [
        (None, "intro must be an object"),
        ({"end": 10}, "intro.start is required"),
        ({"start": "abc", "end": 10}, "intro.start is not a valid timestamp"),
        ({"start": -1, "end": 10}, "intro.start must not be negative"),
        ({"start": -0.5, "end": 10}, "intro.start must not be negative"),
        ({"start": "-0.5", "end": 10}, "intro.start must not be negative"),
        ({"start": "-0.9", "end": 10}, "intro.start must not be negative"),
        ({"start": 10, "end": 10}, "intro.start must be before intro.end"),
        ({"start": "1:40", "end": 90}, "intro.start must be before intro.end"),
    ],
)
def test_parse_interval_rejects_bad_input(value, message) -> None:
    with pytest.raises(SubmissionValidationError, match=message):
        parse_interval("intro", value)


def test_submit_and_query_single_submission(database_url) -> None:
    async def scenario(service: SkipSegmentService):
        submission = await service.submit(1399, 1, 1, INTRO, {"start": "41:40", "end": "43:20"})
        segments = await service.best_for(1399, 1, 1)
        other = await service.best_for(1399, 1, 2)
        return submission, segments, other

    submission, segments, other = _run(database_url, scenario)

    assert submission.episode_key == "1399:1:1"
    assert submission.id.startswith("1399:1:1-")
    assert submission.votes == 0
    assert submission.verified is False
    assert (submission.outro.start, submission.outro.end) == (2500, 2600)
    assert segments.found is True
    assert segments.best == submission
    assert other.found is False
    assert other.to_payload() == {
        "found": False,
        "episodeKey": "1399:1:2",
        "best": None,
        "all": [],
    }


def test_submission_ids_are_unique(database_url) -> None:
    async def scenario(service: SkipSegmentService):
        return await asyncio.gather(
            *(service.submit(1, 1, 1, INTRO, OUTRO) for _ in range(5))
        )

    submissions = _run(database_url, scenario)

    assert len({submission.id for submission in submissions}) == 5


def test_outlier_starts_with_negative_votes(database_url) -> None:
    async def scenario(service: SkipSegmentService):
        for _ in range(3):
            trusted = await service.submit(1, 1, 1, INTRO, OUTRO)
            await service.verify(trusted.id, "letmein")
        far = await service.submit(1, 1, 1, {"start": 0, "end": 140}, OUTRO)
        near = await service.submit(1, 1, 1, {"start": 0, "end": 120}, OUTRO)
        return far, near

    far, near = _run(database_url, scenario)

    assert far.votes == OUTLIER_STARTING_VOTES == -1
    assert near.votes == 0


def test_outlier_on_intro_start(database_url) -> None:
    trusted_intro = {"start": 100, "end": 200}

    async def scenario(service: SkipSegmentService):
        for _ in range(3):
            trusted = await service.submit(1, 1, 1, trusted_intro, OUTRO)
            await service.verify(trusted.id, "letmein")
        far = await service.submit(1, 1, 1, {"start": 140, "end": 200}, OUTRO)
        near = await service.submit(1, 1, 1, {"start": 120, "end": 200}, OUTRO)
        return far, near

    far, near = _run(database_url, scenario)

    assert far.votes == -1
    assert near.votes == 0


def test_no_outlier_check_without_enough_trusted(database_url) -> None:
    async def scenario(service: SkipSegmentService):
        for _ in range(2):
            trusted = await service.submit(1, 1, 1, INTRO, OUTRO)
            await service.verify(trusted.id, "letmein")
        return await service.submit(1, 1, 1, {"start": 0, "end": 900}, OUTRO)

    assert _run(database_url, scenario).votes == 0


def test_well_voted_submissions_are_trusted_without_verification(database_url) -> None:
    async def scenario(service: SkipSegmentService):
        for _ in range(3):
            trusted = await service.submit(1, 1, 1, INTRO, OUTRO)
            for _ in range(3):
                await service.vote(trusted.id, "upvote")
        return await service.submit(1, 1, 1, INTRO, {"start": 2400, "end": 2600})

    assert _run(database_url, scenario).votes == -1


def test_votes_accumulate_and_hide_submissions(database_url) -> None:
    async def scenario(service: SkipSegmentService):
        submission = await service.submit(1, 1, 1, INTRO, OUTRO)
        await service.vote(submission.id, "upvote")
        await service.vote(submission.id, "upvote")
        net = await service.vote(submission.id, "downvote")
        await service.vote(submission.id, "downvote")
        still_visible = await service.vote(submission.id, "downvote")
        visible = await service.best_for(1, 1, 1)
        hidden_vote = await service.vote(submission.id, "downvote")
        hidden = await service.best_for(1, 1, 1)
        return net, still_visible, visible, hidden_vote, hidden

    net, still_visible, visible, hidden_vote, hidden = _run(database_url, scenario)

    assert net.votes == 1
    assert still_visible.votes == -1
    assert visible.found is True
    assert hidden_vote.votes == -2
    assert hidden.found is False
    assert hidden.submissions == []


def test_best_prefers_votes_then_earliest(database_url) -> None:
    async def scenario(service: SkipSegmentService):
        first = await service.submit(1, 1, 1, INTRO, OUTRO)
        second = await service.submit(1, 1, 1, {"start": 5, "end": 95}, OUTRO)
        tie = await service.best_for(1, 1, 1)
        await service.vote(second.id, "upvote")
        leader = await service.best_for(1, 1, 1)
        return first, second, tie, leader

    first, second, tie, leader = _run(database_url, scenario)

    assert tie.best is not None and tie.best.id == first.id
    assert leader.best is not None and leader.best.id == second.id
    assert [submission.id for submission in leader.submissions] == [first.id, second.id]


def test_vote_rejects_unknown_direction_and_submission(database_url) -> None:
    async def scenario(service: SkipSegmentService):
        submission = await service.submit(1, 1, 1, INTRO, OUTRO)
        with pytest.raises(SubmissionValidationError):
            await service.vote(submission.id, "sideways")
        with pytest.raises(SubmissionNotFound):
            await service.vote("missing", "upvote")

    _run(database_url, scenario)


def test_admin_operations_require_matching_secret(database_url) -> None:
    async def scenario(service: SkipSegmentService):
        submission = await service.submit(1, 1, 1, INTRO, OUTRO)
        for secret in (None, "", "wrong"):
            with pytest.raises(AdminForbidden):
                await service.verify(submission.id, secret)
            with pytest.raises(AdminForbidden):
                await service.purge_all(secret)
        with pytest.raises(SubmissionNotFound):
            await service.verify("missing", "letmein")
        verified = await service.verify(submission.id, "letmein")
        again = await service.verify(submission.id, "letmein")
        return verified, again

    verified, again = _run(database_url, scenario)

    assert verified.verified is True
    assert again.verified is True


def test_admin_operations_forbidden_without_configured_secret(database_url) -> None:
    async def scenario(service: SkipSegmentService):
        submission = await service.submit(1, 1, 1, INTRO, OUTRO)
        with pytest.raises(AdminForbidden):
            await service.verify(submission.id, "")
        with pytest.raises(AdminForbidden):
            await service.purge_episode(1, 1, 1, "anything")

    _run(database_url, scenario, admin_secret=None)


def test_purge_counts_removed_submissions(database_url) -> None:
    async def scenario(service: SkipSegmentService):
        for _ in range(2):
            await service.submit(1, 1, 1, INTRO, OUTRO)
        await service.submit(1, 1, 2, INTRO, OUTRO)
        await service.submit(2, 1, 1, INTRO, OUTRO)
        episode = await service.purge_episode(1, 1, 1, "letmein")
        empty = await service.purge_episode(1, 1, 1, "letmein")
        remaining = await service.purge_all("letmein")
        after = await service.best_for(1, 1, 2)
        return episode, empty, remaining, after

    episode, empty, remaining, after = _run(database_url, scenario)

    assert episode == ("1:1:1", 2)
    assert empty == ("1:1:1", 0)
    assert remaining == 2
    assert after.found is False
