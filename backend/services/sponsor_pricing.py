"""
Sponsor Pricing Engine
Computes base, priority and total prices for a sponsorship selection.

All amounts are integers in minor currency units (cents). Rounding to two
decimals only happens in format_amount(), at display time.
"""
import os
from dataclasses import dataclass
from typing import Optional, List, Tuple, Dict, Any

from models import ContentRef, EpisodeRef, PriceList
from services.sponsor_eligibility import Eligibility, NOT_SPONSORED

CURRENCY = os.getenv("SPONSORSHIP_CURRENCY", "brl")

# Runtimes strictly above this many minutes use the long movie price
LONG_MOVIE_THRESHOLD_MINUTES = 120
DEFAULT_RUNTIME_MINUTES = 90


@dataclass(frozen=True)
class EpisodeSelection:
    """A selected episode with its ledger eligibility and requested priority."""
    episode: EpisodeRef
    eligibility: Eligibility = NOT_SPONSORED
    wants_priority: bool = False


@dataclass(frozen=True)
class UnitQuote:
    content: ContentRef
    episode: Optional[EpisodeRef]
    already_paid: bool
    wants_priority: bool
    base_price: int
    priority_price: int

    @property
    def total(self) -> int:
        return self.base_price + self.priority_price


@dataclass(frozen=True)
class Quote:
    units: Tuple[UnitQuote, ...]
    subtotal: int
    priority_total: int

    @property
    def total(self) -> int:
        return self.subtotal + self.priority_total

    def to_dict(self) -> Dict[str, Any]:
        return {
            "units": [
                {
                    "content_id": unit.content.content_id,
                    "title": unit.content.title,
                    "season": unit.episode.season if unit.episode else None,
                    "episode": unit.episode.episode if unit.episode else None,
                    "already_paid": unit.already_paid,
                    "wants_priority": unit.wants_priority,
                    "base_price": unit.base_price,
                    "priority_price": unit.priority_price,
                }
                for unit in self.units
            ],
            "subtotal": self.subtotal,
            "priority_total": self.priority_total,
            "total": self.total,
            "currency": CURRENCY,
            # Formatted for display
            "subtotal_display": format_amount(self.subtotal),
            "priority_total_display": format_amount(self.priority_total),
            "total_display": format_amount(self.total),
        }


EMPTY_QUOTE = Quote(units=(), subtotal=0, priority_total=0)


def format_amount(amount: int) -> str:
    """Render minor units with two decimals, e.g. 4050 -> '40.50'."""
    sign = "-" if amount < 0 else ""
    whole, cents = divmod(abs(amount), 100)
    return f"{sign}{whole}.{cents:02d}"


def movie_base_price(price_list: PriceList, runtime_minutes: Optional[int]) -> int:
    """Long price applies when runtime > 120 minutes, else short price."""
    runtime = runtime_minutes if runtime_minutes is not None else DEFAULT_RUNTIME_MINUTES
    if runtime > LONG_MOVIE_THRESHOLD_MINUTES:
        return price_list.movie_price_long or 0
    return price_list.movie_price_short or 0


def quote_movie(
    content: ContentRef,
    runtime_minutes: Optional[int],
    eligibility: Eligibility,
    wants_priority: bool,
    price_list: PriceList,
) -> Quote:
    """Price a whole movie. An already-paid movie may still buy priority."""
    if eligibility.blocked:
        return EMPTY_QUOTE

    base = 0 if eligibility.already_paid else movie_base_price(price_list, runtime_minutes)
    priority = (price_list.priority_price or 0) if wants_priority else 0

    unit = UnitQuote(
        content=content,
        episode=None,
        already_paid=eligibility.already_paid,
        wants_priority=wants_priority,
        base_price=base,
        priority_price=priority,
    )
    return Quote(units=(unit,), subtotal=base, priority_total=priority)


def quote_series(
    content: ContentRef,
    selections: List[EpisodeSelection],
    price_list: PriceList,
) -> Quote:
    """
    Price selected episodes.
    base = episode_price per unpaid episode; priority = priority_price per
    episode with wants_priority, whatever its paid state. Blocked episodes
    never contribute.
    """
    episode_price = price_list.episode_price or 0
    priority_price = price_list.priority_price or 0

    units = []
    subtotal = 0
    priority_total = 0
    for selection in selections:
        if selection.eligibility.blocked:
            continue
        base = 0 if selection.eligibility.already_paid else episode_price
        priority = priority_price if selection.wants_priority else 0
        subtotal += base
        priority_total += priority
        units.append(UnitQuote(
            content=content,
            episode=selection.episode,
            already_paid=selection.eligibility.already_paid,
            wants_priority=selection.wants_priority,
            base_price=base,
            priority_price=priority,
        ))

    return Quote(units=tuple(units), subtotal=subtotal, priority_total=priority_total)


def price_card(price_list: PriceList) -> Dict[str, Any]:
    """Public price card for a creator profile."""
    return {
        "movie_price_short": price_list.movie_price_short,
        "movie_price_long": price_list.movie_price_long,
        "episode_price": price_list.episode_price,
        "priority_price": price_list.priority_price,
        "currency": CURRENCY,
        "long_movie_threshold_minutes": LONG_MOVIE_THRESHOLD_MINUTES,
        # Formatted for display
        "movie_price_short_display": format_amount(price_list.movie_price_short),
        "movie_price_long_display": format_amount(price_list.movie_price_long),
        "episode_price_display": format_amount(price_list.episode_price),
        "priority_price_display": format_amount(price_list.priority_price),
    }
