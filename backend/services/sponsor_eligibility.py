"""
Sponsor Eligibility - decides which units can still be ordered.

A unit (a whole movie, or one episode of a series) is blocked iff the ledger
has it both paid and prioritized. An absent ledger entry or episode record
means nothing is paid and nothing is blocked. Pure reads only.
"""
from dataclasses import dataclass
from typing import Optional, FrozenSet, Tuple

from models import MediaType, SponsorshipLedgerEntry, EpisodeRef


@dataclass(frozen=True)
class Eligibility:
    blocked: bool = False
    already_paid: bool = False
    already_priority: bool = False


NOT_SPONSORED = Eligibility()


def _from_flags(is_paid: bool, is_priority: bool) -> Eligibility:
    return Eligibility(
        blocked=is_paid and is_priority,
        already_paid=is_paid,
        already_priority=is_priority,
    )


def check_movie(entry: Optional[SponsorshipLedgerEntry]) -> Eligibility:
    if entry is None:
        return NOT_SPONSORED
    return _from_flags(entry.is_paid, entry.is_priority)


def check_episode(entry: Optional[SponsorshipLedgerEntry], season: int, episode: int) -> Eligibility:
    if entry is None:
        return NOT_SPONSORED
    record = entry.find_episode(season, episode)
    if record is None:
        return NOT_SPONSORED
    return _from_flags(record.is_paid, record.is_priority)


def check_unit(
    entry: Optional[SponsorshipLedgerEntry],
    media_type: MediaType,
    episode: Optional[EpisodeRef] = None,
) -> Eligibility:
    """Eligibility of one unit: the movie itself, or a single episode."""
    if media_type == MediaType.MOVIE:
        return check_movie(entry)
    if episode is None:
        raise ValueError("An episode is required to check a series unit")
    return check_episode(entry, episode.season, episode.episode)


def blocked_episode_keys(entry: Optional[SponsorshipLedgerEntry]) -> FrozenSet[Tuple[int, int]]:
    """(season, episode) keys that can no longer be ordered."""
    if entry is None:
        return frozenset()
    return frozenset(
        (ep.season, ep.episode) for ep in entry.episodes if ep.is_paid and ep.is_priority
    )
