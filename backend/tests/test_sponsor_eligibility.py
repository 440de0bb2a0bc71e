"""
Eligibility: a unit is blocked only when it is both paid and prioritized.
"""
import pytest

from conftest import ledger_for_movie, ledger_for_series
from models import EpisodeRef, LedgerEpisode, MediaType
from services.sponsor_eligibility import (
    NOT_SPONSORED,
    blocked_episode_keys,
    check_episode,
    check_movie,
    check_unit,
)


def test_no_ledger_entry_means_not_sponsored():
    assert check_movie(None) == NOT_SPONSORED
    assert check_episode(None, 1, 1) == NOT_SPONSORED
    assert blocked_episode_keys(None) == frozenset()


@pytest.mark.parametrize("is_paid,is_priority,blocked", [
    (False, False, False),
    (True, False, False),
    (False, True, False),
    (True, True, True),
])
def test_movie_flags(is_paid, is_priority, blocked):
    eligibility = check_movie(ledger_for_movie(is_paid=is_paid, is_priority=is_priority))
    assert eligibility.blocked is blocked
    assert eligibility.already_paid is is_paid
    assert eligibility.already_priority is is_priority


def test_episode_without_record_is_not_sponsored():
    entry = ledger_for_series(LedgerEpisode(season=1, episode=1, is_paid=True, is_priority=True))
    assert check_episode(entry, 1, 2) == NOT_SPONSORED
    assert check_episode(entry, 1, 1).blocked is True


def test_series_top_level_flags_do_not_block_episodes():
    entry = ledger_for_series(LedgerEpisode(season=1, episode=1, is_paid=True, is_priority=True))
    assert entry.is_paid and entry.is_priority
    assert check_episode(entry, 2, 1).blocked is False


def test_blocked_episode_keys():
    entry = ledger_for_series(
        LedgerEpisode(season=1, episode=1, is_paid=True, is_priority=True),
        LedgerEpisode(season=1, episode=2, is_paid=True, is_priority=False),
        LedgerEpisode(season=2, episode=1, is_paid=True, is_priority=True),
    )
    assert blocked_episode_keys(entry) == frozenset({(1, 1), (2, 1)})


def test_check_unit_dispatches_on_media_type():
    entry = ledger_for_series(LedgerEpisode(season=1, episode=2, is_paid=True, is_priority=False))
    eligibility = check_unit(entry, MediaType.SERIES, EpisodeRef(season=1, episode=2))
    assert eligibility.already_paid is True
    assert eligibility.blocked is False

    with pytest.raises(ValueError):
        check_unit(entry, MediaType.SERIES)

    assert check_unit(ledger_for_movie(is_paid=True, is_priority=True), MediaType.MOVIE).blocked is True
