"""
Tests for vote recording and merged tallies.
"""

import asyncio

import pytest

from core.exceptions import ValidationError
from core.security import hash_phone
from models.vote import PollKind
from repositories.vote_repository import VoteRepository
from services.keyed_lock import KeyedLock
from services.vote_service import (
    VoteService,
    clean_other_text,
    merge_counts,
    parse_kind,
    validate_option,
)

ASHA = hash_phone("+919876543210")
BINU = hash_phone("+919812345678")


@pytest.fixture
def vote_service(db_session) -> VoteService:
    return VoteService(db_session, KeyedLock())


@pytest.mark.unit
class TestHelpers:
    def test_merge_counts_is_pointwise_sum(self) -> None:
        merged = merge_counts({"kadavu": 10, "vythiri": 2}, {"kadavu": 1, "bolgatty": 3})
        assert merged == {"kadavu": 11, "vythiri": 2, "bolgatty": 3}

    def test_merge_counts_does_not_mutate_inputs(self) -> None:
        legacy = {"kadavu": 1}
        merge_counts(legacy, {"kadavu": 1})
        assert legacy == {"kadavu": 1}

    @pytest.mark.parametrize(
        "raw,expected",
        [("date", PollKind.DATE), ("venue", PollKind.VENUE), (None, PollKind.VENUE), ("DATE", PollKind.VENUE)],
    )
    def test_parse_kind_defaults_to_venue(self, raw, expected) -> None:
        assert parse_kind(raw) == expected

    def test_validate_option(self) -> None:
        assert validate_option(PollKind.VENUE, "kadavu") == "kadavu"
        assert validate_option(PollKind.DATE, "other") == "other"

    @pytest.mark.parametrize("option", ["aug8_9", "Kadavu", "", None, 3])
    def test_invalid_venue_option(self, option) -> None:
        with pytest.raises(ValidationError) as exc_info:
            validate_option(PollKind.VENUE, option)
        assert exc_info.value.message == "Invalid venue option"

    def test_invalid_date_option(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            validate_option(PollKind.DATE, "kadavu")
        assert exc_info.value.message == "Invalid date option"

    def test_other_text_kept_only_for_other(self) -> None:
        assert clean_other_text("other", "  mid September  ") == "mid September"
        assert clean_other_text("aug8_9", "mid September") is None
        assert clean_other_text("other", None) is None
        assert len(clean_other_text("other", "x" * 100)) == 40


@pytest.mark.unit
class TestVenueVotes:
    async def test_toggle_on_and_off(self, vote_service: VoteService) -> None:
        assert await vote_service.toggle_venue_vote(ASHA, "kadavu") is True
        assert await vote_service.venue_selections(ASHA) == ["kadavu"]

        assert await vote_service.toggle_venue_vote(ASHA, "kadavu") is False
        assert await vote_service.venue_selections(ASHA) == []

    async def test_multiple_venues_per_voter(self, vote_service: VoteService) -> None:
        await vote_service.toggle_venue_vote(ASHA, "vythiri")
        await vote_service.toggle_venue_vote(ASHA, "kadavu")

        assert await vote_service.venue_selections(ASHA) == ["kadavu", "vythiri"]
        counts = await vote_service.live_counts(PollKind.VENUE)
        assert counts == {"kadavu": 1, "vythiri": 1}

    async def test_invalid_option_writes_nothing(self, vote_service: VoteService) -> None:
        with pytest.raises(ValidationError):
            await vote_service.toggle_venue_vote(ASHA, "munnar")
        assert await vote_service.live_counts(PollKind.VENUE) == {}


@pytest.mark.unit
class TestDateVotes:
    async def test_new_choice_replaces_old(self, vote_service: VoteService) -> None:
        await vote_service.record_date_vote(ASHA, "july18_19")
        await vote_service.record_date_vote(ASHA, "aug8_9")

        assert await vote_service.date_selection(ASHA) == "aug8_9"
        assert await vote_service.live_counts(PollKind.DATE) == {"aug8_9": 1}

    async def test_other_text_stored(self, vote_service: VoteService, db_session) -> None:
        await vote_service.record_date_vote(ASHA, "other", "  first week of Sept ")

        vote = await VoteRepository(db_session).get_date_vote(ASHA)
        assert vote is not None
        assert vote.other_text == "first week of Sept"

    async def test_switching_away_from_other_clears_text(self, vote_service: VoteService, db_session) -> None:
        await vote_service.record_date_vote(ASHA, "other", "Sept")
        await vote_service.record_date_vote(ASHA, "aug8_9", "ignored")

        vote = await VoteRepository(db_session).get_date_vote(ASHA)
        assert vote is not None
        assert vote.other_text is None

    async def test_invalid_option(self, vote_service: VoteService) -> None:
        with pytest.raises(ValidationError):
            await vote_service.record_date_vote(ASHA, "bolgatty")


@pytest.mark.unit
class TestTallies:
    async def test_merged_counts_add_legacy_and_live(self, vote_service: VoteService, db_session) -> None:
        repo = VoteRepository(db_session)
        await repo.set_legacy_counts(PollKind.VENUE, {"kadavu": 10, "bolgatty": 4})
        await repo.set_legacy_counts(PollKind.DATE, {"july18_19": 6})
        await db_session.commit()

        await vote_service.toggle_venue_vote(ASHA, "kadavu")
        await vote_service.toggle_venue_vote(BINU, "vythiri")
        await vote_service.record_date_vote(ASHA, "aug8_9")

        tallies = await vote_service.tallies()
        assert tallies.venue == {"kadavu": 11, "bolgatty": 4, "vythiri": 1}
        assert tallies.date == {"july18_19": 6, "aug8_9": 1}

        for kind in PollKind:
            legacy = await vote_service.legacy_counts(kind)
            live = await vote_service.live_counts(kind)
            merged = await vote_service.merged_counts(kind)
            assert set(merged) == set(legacy) | set(live)
            for option, count in merged.items():
                assert count == legacy.get(option, 0) + live.get(option, 0)

    async def test_toggles_never_touch_legacy(self, vote_service: VoteService, db_session) -> None:
        await VoteRepository(db_session).set_legacy_counts(PollKind.VENUE, {"kadavu": 3})
        await db_session.commit()

        await vote_service.toggle_venue_vote(ASHA, "kadavu")
        await vote_service.toggle_venue_vote(ASHA, "kadavu")

        assert await vote_service.legacy_counts(PollKind.VENUE) == {"kadavu": 3}
        assert await vote_service.merged_counts(PollKind.VENUE) == {"kadavu": 3}


@pytest.mark.unit
class TestVoterLookup:
    async def test_names_sorted_case_insensitively(self, vote_service: VoteService) -> None:
        carol = hash_phone("+919800000003")
        await vote_service.record_user(ASHA, "zara")
        await vote_service.record_user(BINU, "Binu")
        await vote_service.record_user(carol, "anil")
        for voter in (ASHA, BINU, carol):
            await vote_service.toggle_venue_vote(voter, "kadavu")

        assert await vote_service.voters_for_option(PollKind.VENUE, "kadavu") == ["anil", "Binu", "zara"]

    async def test_voter_without_name_is_unknown(self, vote_service: VoteService) -> None:
        await vote_service.record_date_vote(ASHA, "other")
        assert await vote_service.voters_for_option(PollKind.DATE, "other") == ["(unknown)"]

    async def test_unselected_venue_drops_voter(self, vote_service: VoteService) -> None:
        await vote_service.record_user(ASHA, "Asha")
        await vote_service.toggle_venue_vote(ASHA, "bolgatty")
        await vote_service.toggle_venue_vote(ASHA, "bolgatty")

        assert await vote_service.voters_for_option(PollKind.VENUE, "bolgatty") == []

    async def test_invalid_option(self, vote_service: VoteService) -> None:
        with pytest.raises(ValidationError):
            await vote_service.voters_for_option(PollKind.DATE, "kadavu")

    async def test_selections_for_voter(self, vote_service: VoteService) -> None:
        await vote_service.record_user(ASHA, "Asha")
        await vote_service.toggle_venue_vote(ASHA, "vythiri")
        await vote_service.record_date_vote(ASHA, "july18_19")

        selections = await vote_service.selections_for(ASHA)
        assert selections.name == "Asha"
        assert selections.venues == ["vythiri"]
        assert selections.date == "july18_19"

        empty = await vote_service.selections_for(BINU)
        assert empty.name is None and empty.venues == [] and empty.date is None

    async def test_record_user_overwrites_name(self, vote_service: VoteService) -> None:
        await vote_service.record_user(ASHA, "Asha")
        await vote_service.record_user(ASHA, "Asha Menon")
        assert (await vote_service.selections_for(ASHA)).name == "Asha Menon"


@pytest.mark.unit
class TestConcurrentWrites:
    async def test_racing_toggles_for_one_voter_alternate(self, context) -> None:
        async def toggle() -> bool:
            async with context.session_factory() as db:
                return await context.vote_service(db).toggle_venue_vote(ASHA, "kadavu")

        results = await asyncio.gather(*(toggle() for _ in range(6)))

        assert results.count(True) == 3
        assert results.count(False) == 3
        async with context.session_factory() as db:
            assert await context.vote_service(db).live_counts(PollKind.VENUE) == {}

    async def test_racing_date_votes_leave_one_row(self, context) -> None:
        async def vote(option: str) -> str:
            async with context.session_factory() as db:
                return await context.vote_service(db).record_date_vote(ASHA, option)

        await asyncio.gather(*(vote(option) for option in ("july18_19", "aug8_9", "other", "aug8_9")))

        async with context.session_factory() as db:
            counts = await context.vote_service(db).live_counts(PollKind.DATE)
        assert sum(counts.values()) == 1
