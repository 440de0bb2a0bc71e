"""
Sponsor Order Wizard - pure state machine.

Steps:
  Searching -> SelectingUnits (series only) -> PriorityOption -> BuyerInfoStep
  -> Summary -> Confirmed

Each step is a frozen dataclass; transition(state, event) returns the next
state and never performs I/O. Catalog calls and order submission are done by
SponsorWizardSession, which feeds their outcomes back in as events.

Rules:
- Catalog responses carry the request id they answer. A response whose id is
  not the active request is stale and is ignored.
- Validation failures (no episode selected, missing buyer name or contact)
  keep the current step and set an inline error.
- An order must cost something: units that are already paid can only be
  bought again as a priority add-on, so Next on a zero total is refused.
- A movie that is already paid and prioritized halts on PriorityOption. It
  never moves forward; only Back or Restart leave it.
- Back keeps everything entered so far; Restart discards it all.
- Events a step does not accept raise WizardTransitionError.
"""
import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import ClassVar, Dict, FrozenSet, Optional, Tuple, Union

from models import (
    BuyerInfo,
    ContactPlatform,
    ContentDetails,
    ContentRef,
    EpisodeRef,
    MediaType,
    PriceList,
    SponsorshipLedgerEntry,
)
from services.sponsor_eligibility import Eligibility, blocked_episode_keys, check_episode, check_movie
from services.sponsor_pricing import EpisodeSelection, Quote, quote_movie, quote_series
from services.sponsorship_errors import WizardTransitionError

logger = logging.getLogger(__name__)

NOTHING_TO_BUY = "Everything selected is already paid, add priority to continue"


class WizardStep(str, Enum):
    SEARCHING = "searching"
    SELECTING_UNITS = "selecting_units"
    PRIORITY_OPTION = "priority_option"
    BUYER_INFO = "buyer_info"
    SUMMARY = "summary"
    CONFIRMED = "confirmed"


# ============================================================================
# DRAFT DATA
# ============================================================================

@dataclass(frozen=True)
class BuyerDraft:
    name: str = ""
    contact_platform: ContactPlatform = ContactPlatform.WHATSAPP
    contact_value: str = ""
    email: str = ""

    def missing_fields(self) -> Tuple[str, ...]:
        missing = []
        if not self.name.strip():
            missing.append("name")
        if not self.contact_value.strip():
            missing.append("contact_value")
        return tuple(missing)

    def to_buyer_info(self) -> BuyerInfo:
        return BuyerInfo(
            name=self.name.strip(),
            contact_platform=self.contact_platform,
            contact_value=self.contact_value.strip(),
            email=self.email.strip() or None,
        )


@dataclass(frozen=True)
class Searching:
    query: str = ""
    results: Tuple[ContentRef, ...] = ()
    active_request: Optional[str] = None
    error: Optional[str] = None

    step: ClassVar[WizardStep] = WizardStep.SEARCHING

    @property
    def loading(self) -> bool:
        return self.active_request is not None


@dataclass(frozen=True)
class OrderDraft:
    """Everything the buyer entered after picking a content item."""
    details: ContentDetails
    price_list: PriceList
    ledger: Optional[SponsorshipLedgerEntry]
    search: Searching = field(default_factory=Searching)
    viewed_season: Optional[int] = None
    season_episodes: Dict[int, Tuple[EpisodeRef, ...]] = field(default_factory=dict)
    selected: Tuple[EpisodeRef, ...] = ()
    movie_priority: bool = False
    priority_keys: FrozenSet[Tuple[int, int]] = frozenset()
    buyer: BuyerDraft = field(default_factory=BuyerDraft)
    message: str = ""

    @property
    def content(self) -> ContentRef:
        return self.details.content

    @property
    def is_series(self) -> bool:
        return self.details.content.media_type == MediaType.SERIES

    @property
    def movie_eligibility(self) -> Eligibility:
        return check_movie(self.ledger)

    @property
    def movie_blocked(self) -> bool:
        return not self.is_series and self.movie_eligibility.blocked

    def episode_eligibility(self, episode: EpisodeRef) -> Eligibility:
        return check_episode(self.ledger, episode.season, episode.episode)

    def is_selected(self, episode: EpisodeRef) -> bool:
        return any(ep.key == episode.key for ep in self.selected)

    def quote(self) -> Quote:
        if not self.is_series:
            return quote_movie(
                self.content,
                self.details.runtime_minutes,
                self.movie_eligibility,
                self.movie_priority,
                self.price_list,
            )
        selections = [
            EpisodeSelection(
                episode=ep,
                eligibility=self.episode_eligibility(ep),
                wants_priority=ep.key in self.priority_keys,
            )
            for ep in self.selected
        ]
        return quote_series(self.content, selections, self.price_list)


@dataclass(frozen=True)
class SelectingUnits:
    draft: OrderDraft
    active_request: Optional[str] = None
    error: Optional[str] = None

    step: ClassVar[WizardStep] = WizardStep.SELECTING_UNITS

    @property
    def loading(self) -> bool:
        return self.active_request is not None


@dataclass(frozen=True)
class PriorityOption:
    draft: OrderDraft
    error: Optional[str] = None

    step: ClassVar[WizardStep] = WizardStep.PRIORITY_OPTION

    @property
    def blocked(self) -> bool:
        return self.draft.movie_blocked


@dataclass(frozen=True)
class BuyerInfoStep:
    draft: OrderDraft
    errors: Tuple[str, ...] = ()

    step: ClassVar[WizardStep] = WizardStep.BUYER_INFO


@dataclass(frozen=True)
class Summary:
    draft: OrderDraft
    notice: Optional[str] = None

    step: ClassVar[WizardStep] = WizardStep.SUMMARY

    @property
    def quote(self) -> Quote:
        return self.draft.quote()


@dataclass(frozen=True)
class Confirmed:
    order_code: str
    total: int
    currency: str
    creator_username: str
    creator_display_name: str = ""
    creator_links: Tuple[Tuple[str, str], ...] = ()
    notification_failed: bool = False

    step: ClassVar[WizardStep] = WizardStep.CONFIRMED


WizardState = Union[Searching, SelectingUnits, PriorityOption, BuyerInfoStep, Summary, Confirmed]


# ============================================================================
# EVENTS
# ============================================================================

@dataclass(frozen=True)
class SearchRequested:
    query: str
    request_id: str


@dataclass(frozen=True)
class SearchSucceeded:
    request_id: str
    results: Tuple[ContentRef, ...]


@dataclass(frozen=True)
class LookupFailed:
    request_id: str
    message: str


@dataclass(frozen=True)
class ContentRequested:
    content_id: int
    media_type: MediaType
    request_id: str


@dataclass(frozen=True)
class ContentLoaded:
    request_id: str
    details: ContentDetails
    ledger: Optional[SponsorshipLedgerEntry]
    price_list: PriceList


@dataclass(frozen=True)
class SeasonRequested:
    season: int
    request_id: str


@dataclass(frozen=True)
class SeasonLoaded:
    request_id: str
    season: int
    episodes: Tuple[EpisodeRef, ...]


@dataclass(frozen=True)
class EpisodeToggled:
    season: int
    episode: int


@dataclass(frozen=True)
class SelectAllAvailable:
    pass


@dataclass(frozen=True)
class PriorityToggled:
    season: Optional[int] = None
    episode: Optional[int] = None


@dataclass(frozen=True)
class BuyerInfoChanged:
    name: Optional[str] = None
    contact_platform: Optional[ContactPlatform] = None
    contact_value: Optional[str] = None
    email: Optional[str] = None


@dataclass(frozen=True)
class MessageChanged:
    message: str


@dataclass(frozen=True)
class LedgerRefreshed:
    ledger: Optional[SponsorshipLedgerEntry]


@dataclass(frozen=True)
class OrderSubmitted:
    order_code: str
    total: int
    currency: str
    creator_username: str
    creator_display_name: str = ""
    creator_links: Tuple[Tuple[str, str], ...] = ()
    notification_failed: bool = False


@dataclass(frozen=True)
class Next:
    pass


@dataclass(frozen=True)
class Back:
    pass


@dataclass(frozen=True)
class Restart:
    pass


# ============================================================================
# TRANSITIONS
# ============================================================================

def initial_season(details: ContentDetails) -> Optional[int]:
    """Season shown first: season 1 when present, else the first listed."""
    numbers = [s.season_number for s in details.seasons]
    if not numbers:
        return None
    regular = [n for n in numbers if n >= 1]
    return min(regular) if regular else numbers[0]


def _reject(state: WizardState, event) -> WizardState:
    raise WizardTransitionError(state.step.value, type(event).__name__)


def _back_to_search(draft: OrderDraft) -> Searching:
    return replace(draft.search, active_request=None, error=None)


def _on_searching(state: Searching, event) -> WizardState:
    if isinstance(event, SearchRequested):
        return Searching(query=event.query, results=state.results, active_request=event.request_id)

    if isinstance(event, SearchSucceeded):
        if event.request_id != state.active_request:
            logger.debug(f"Discarding stale search response {event.request_id}")
            return state
        error = None if event.results else f"No results for '{state.query}'"
        return replace(state, results=tuple(event.results), active_request=None, error=error)

    if isinstance(event, LookupFailed):
        if event.request_id != state.active_request:
            return state
        return replace(state, active_request=None, error=event.message)

    if isinstance(event, ContentRequested):
        return replace(state, active_request=event.request_id, error=None)

    if isinstance(event, ContentLoaded):
        if event.request_id != state.active_request:
            logger.debug(f"Discarding stale content response {event.request_id}")
            return state
        draft = OrderDraft(
            details=event.details,
            price_list=event.price_list,
            ledger=event.ledger,
            search=replace(state, active_request=None, error=None),
        )
        if draft.is_series:
            return SelectingUnits(draft=draft)
        return PriorityOption(draft=draft)

    return _reject(state, event)


def _on_selecting_units(state: SelectingUnits, event) -> WizardState:
    draft = state.draft

    if isinstance(event, SeasonRequested):
        return replace(state, active_request=event.request_id, error=None)

    if isinstance(event, SeasonLoaded):
        if event.request_id != state.active_request:
            logger.debug(f"Discarding stale season response {event.request_id}")
            return state
        season_episodes = dict(draft.season_episodes)
        season_episodes[event.season] = tuple(event.episodes)
        new_draft = replace(draft, viewed_season=event.season, season_episodes=season_episodes)
        return SelectingUnits(draft=new_draft)

    if isinstance(event, LookupFailed):
        if event.request_id != state.active_request:
            return state
        return replace(state, active_request=None, error=event.message)

    if isinstance(event, EpisodeToggled):
        episode = next(
            (ep for ep in draft.season_episodes.get(event.season, ()) if ep.episode == event.episode),
            None,
        )
        if episode is None:
            return replace(state, error=f"Episode S{event.season}E{event.episode} is not available")

        if draft.is_selected(episode):
            selected = tuple(ep for ep in draft.selected if ep.key != episode.key)
            priority_keys = draft.priority_keys - {episode.key}
            return SelectingUnits(draft=replace(draft, selected=selected, priority_keys=priority_keys))

        if draft.episode_eligibility(episode).blocked:
            return replace(
                state,
                error=f"Episode S{episode.season}E{episode.episode} is already fully sponsored",
            )
        return SelectingUnits(draft=replace(draft, selected=draft.selected + (episode,)))

    if isinstance(event, SelectAllAvailable):
        if draft.viewed_season is None:
            return replace(state, error="No season loaded")
        blocked = blocked_episode_keys(draft.ledger)
        chosen = {ep.key for ep in draft.selected}
        additions = tuple(
            ep for ep in draft.season_episodes.get(draft.viewed_season, ())
            if ep.key not in blocked and ep.key not in chosen
        )
        return SelectingUnits(draft=replace(draft, selected=draft.selected + additions))

    if isinstance(event, Next):
        if not draft.selected:
            return replace(state, error="Select at least one episode")
        return PriorityOption(draft=draft)

    if isinstance(event, Back):
        return _back_to_search(draft)

    return _reject(state, event)


def _on_priority_option(state: PriorityOption, event) -> WizardState:
    draft = state.draft

    if state.blocked and not isinstance(event, Back):
        # Fully sponsored content never moves forward
        return _reject(state, event)

    if isinstance(event, PriorityToggled):
        if not draft.is_series:
            if event.season is not None or event.episode is not None:
                return _reject(state, event)
            return PriorityOption(draft=replace(draft, movie_priority=not draft.movie_priority))

        if event.season is None or event.episode is None:
            return _reject(state, event)
        key = (event.season, event.episode)
        if not any(ep.key == key for ep in draft.selected):
            return _reject(state, event)
        if key in draft.priority_keys:
            priority_keys = draft.priority_keys - {key}
        else:
            priority_keys = draft.priority_keys | {key}
        return PriorityOption(draft=replace(draft, priority_keys=priority_keys))

    if isinstance(event, Next):
        if draft.quote().total == 0:
            return replace(state, error=NOTHING_TO_BUY)
        return BuyerInfoStep(draft=draft)

    if isinstance(event, Back):
        if draft.is_series:
            return SelectingUnits(draft=draft)
        return _back_to_search(draft)

    return _reject(state, event)


def _on_buyer_info(state: BuyerInfoStep, event) -> WizardState:
    draft = state.draft

    if isinstance(event, BuyerInfoChanged):
        buyer = draft.buyer
        changes = {}
        if event.name is not None:
            changes["name"] = event.name
        if event.contact_platform is not None:
            changes["contact_platform"] = ContactPlatform(event.contact_platform)
        if event.contact_value is not None:
            changes["contact_value"] = event.contact_value
        if event.email is not None:
            changes["email"] = event.email
        return BuyerInfoStep(draft=replace(draft, buyer=replace(buyer, **changes)))

    if isinstance(event, Next):
        missing = draft.buyer.missing_fields()
        if missing:
            return replace(state, errors=tuple(f"{name} is required" for name in missing))
        return Summary(draft=draft)

    if isinstance(event, Back):
        return PriorityOption(draft=draft)

    return _reject(state, event)


def _on_summary(state: Summary, event) -> WizardState:
    draft = state.draft

    if isinstance(event, MessageChanged):
        return replace(state, draft=replace(draft, message=event.message))

    if isinstance(event, LedgerRefreshed):
        return _apply_ledger_refresh(state, event.ledger)

    if isinstance(event, OrderSubmitted):
        return Confirmed(
            order_code=event.order_code,
            total=event.total,
            currency=event.currency,
            creator_username=event.creator_username,
            creator_display_name=event.creator_display_name,
            creator_links=event.creator_links,
            notification_failed=event.notification_failed,
        )

    if isinstance(event, Back):
        return BuyerInfoStep(draft=draft)

    return _reject(state, event)


def _apply_ledger_refresh(state: Summary, ledger: Optional[SponsorshipLedgerEntry]) -> WizardState:
    """Re-price the summary against a fresh ledger read taken just before submission."""
    before = state.draft.quote()
    draft = replace(state.draft, ledger=ledger)

    if draft.movie_blocked:
        return PriorityOption(draft=draft)

    if draft.is_series:
        blocked = blocked_episode_keys(ledger)
        selected = tuple(ep for ep in draft.selected if ep.key not in blocked)
        draft = replace(
            draft,
            selected=selected,
            priority_keys=frozenset(k for k in draft.priority_keys if k not in blocked),
        )
        if not selected:
            return SelectingUnits(draft=draft, error="The selected episodes are no longer available")

    after = draft.quote()
    if after.total == 0:
        return PriorityOption(draft=draft, error=NOTHING_TO_BUY)
    if after == before:
        return Summary(draft=draft)
    return Summary(draft=draft, notice="Sponsorship status changed, please review the updated total")


_HANDLERS = {
    Searching: _on_searching,
    SelectingUnits: _on_selecting_units,
    PriorityOption: _on_priority_option,
    BuyerInfoStep: _on_buyer_info,
    Summary: _on_summary,
}


def transition(state: WizardState, event) -> WizardState:
    """Apply one event to the wizard and return the resulting state."""
    if isinstance(event, Restart):
        return Searching()

    handler = _HANDLERS.get(type(state))
    if handler is None:
        # Confirmed is terminal for the session
        return _reject(state, event)
    return handler(state, event)


# ============================================================================
# SNAPSHOT (API representation)
# ============================================================================

def _content_dict(content: ContentRef) -> Dict:
    return {
        "content_id": content.content_id,
        "title": content.title,
        "media_type": content.media_type.value,
        "poster_path": content.poster_path,
    }


def _draft_dict(draft: OrderDraft) -> Dict:
    data = {
        "content": _content_dict(draft.content),
        "runtime_minutes": draft.details.runtime_minutes if not draft.is_series else None,
        "buyer": {
            "name": draft.buyer.name,
            "contact_platform": draft.buyer.contact_platform.value,
            "contact_value": draft.buyer.contact_value,
            "email": draft.buyer.email,
        },
        "message": draft.message,
        "quote": draft.quote().to_dict(),
    }
    if draft.is_series:
        data["seasons"] = [s.model_dump() for s in draft.details.seasons]
        data["viewed_season"] = draft.viewed_season
        data["episodes"] = [
            {
                "season": ep.season,
                "episode": ep.episode,
                "name": ep.name,
                "selected": draft.is_selected(ep),
                "blocked": draft.episode_eligibility(ep).blocked,
                "already_paid": draft.episode_eligibility(ep).already_paid,
            }
            for ep in draft.season_episodes.get(draft.viewed_season, ())
        ]
        data["selected"] = [
            {
                "season": ep.season,
                "episode": ep.episode,
                "name": ep.name,
                "wants_priority": ep.key in draft.priority_keys,
            }
            for ep in draft.selected
        ]
    else:
        eligibility = draft.movie_eligibility
        data["movie"] = {
            "blocked": eligibility.blocked,
            "already_paid": eligibility.already_paid,
            "already_priority": eligibility.already_priority,
            "wants_priority": draft.movie_priority,
        }
    return data


def snapshot(state: WizardState) -> Dict:
    """Serializable view of the current step for the HTTP layer."""
    data = {"step": state.step.value}

    if isinstance(state, Searching):
        data.update({
            "query": state.query,
            "results": [_content_dict(c) for c in state.results],
            "loading": state.loading,
            "error": state.error,
        })
    elif isinstance(state, Confirmed):
        data.update({
            "order_code": state.order_code,
            "total": state.total,
            "currency": state.currency,
            "creator_username": state.creator_username,
            "creator_display_name": state.creator_display_name,
            "creator_links": dict(state.creator_links),
            "notification_failed": state.notification_failed,
        })
    else:
        data["draft"] = _draft_dict(state.draft)
        if isinstance(state, SelectingUnits):
            data["loading"] = state.loading
            data["error"] = state.error
        elif isinstance(state, PriorityOption):
            data["blocked"] = state.blocked
            data["error"] = state.error
        elif isinstance(state, BuyerInfoStep):
            data["errors"] = list(state.errors)
        elif isinstance(state, Summary):
            data["notice"] = state.notice

    data["can_go_back"] = isinstance(state, (SelectingUnits, PriorityOption, BuyerInfoStep, Summary))
    return data
