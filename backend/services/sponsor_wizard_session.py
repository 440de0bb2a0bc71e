"""
Sponsor Wizard Session
Async driver for the pure wizard state machine.

The session performs the I/O the machine cannot: catalog calls, ledger reads
and order submission. Every catalog call is tagged with a fresh request id;
if the buyer moves on before it answers, the machine discards the answer.
"""
import logging
import uuid
from datetime import datetime, timedelta
from typing import Dict, Optional

from models import ContactPlatform, CreatorProfile, MediaType, utc_now
from services.catalog_lookup import CatalogLookup
from services.sponsor_order_service import SubmissionResult, build_order, submit_order
from services.sponsor_wizard import (
    Back,
    BuyerInfoChanged,
    ContentLoaded,
    ContentRequested,
    EpisodeToggled,
    LedgerRefreshed,
    LookupFailed,
    MessageChanged,
    Next,
    OrderSubmitted,
    PriorityToggled,
    Restart,
    SearchRequested,
    SearchSucceeded,
    Searching,
    SeasonLoaded,
    SeasonRequested,
    SelectAllAvailable,
    SelectingUnits,
    Summary,
    WizardState,
    initial_season,
    transition,
)
from services.sponsorship_errors import (
    CatalogLookupError,
    WizardSessionNotFoundError,
    WizardTransitionError,
)
from stores.interfaces import NotificationStore, OrderStore, SponsorshipLedgerStore

logger = logging.getLogger(__name__)

WIZARD_SESSION_TTL_MINUTES = 60


def _new_request_id() -> str:
    return uuid.uuid4().hex


class SponsorWizardSession:
    """One buyer's pass through the order wizard for one creator."""

    def __init__(
        self,
        creator: CreatorProfile,
        catalog: CatalogLookup,
        order_store: OrderStore,
        ledger_store: SponsorshipLedgerStore,
        notification_store: NotificationStore,
        session_id: Optional[str] = None,
    ):
        self.session_id = session_id or str(uuid.uuid4())
        self.creator = creator
        self._catalog = catalog
        self._order_store = order_store
        self._ledger_store = ledger_store
        self._notification_store = notification_store
        self.state: WizardState = Searching()
        self.last_activity: datetime = utc_now()
        self._submitting = False

    @property
    def creator_username(self) -> str:
        return self.creator.username

    def dispatch(self, event) -> WizardState:
        self.state = transition(self.state, event)
        self.last_activity = utc_now()
        return self.state

    # ------------------------------------------------------------------
    # Catalog-backed steps
    # ------------------------------------------------------------------

    async def search(self, query: str) -> WizardState:
        request_id = _new_request_id()
        self.dispatch(SearchRequested(query=query, request_id=request_id))
        try:
            results = await self._catalog.search(query)
        except CatalogLookupError as e:
            logger.error(f"Catalog search failed for session {self.session_id}: {e.detail}")
            return self.dispatch(LookupFailed(request_id=request_id, message=e.message))
        return self.dispatch(SearchSucceeded(request_id=request_id, results=tuple(results)))

    async def select_content(self, content_id: int, media_type: MediaType) -> WizardState:
        request_id = _new_request_id()
        self.dispatch(ContentRequested(content_id=content_id, media_type=media_type, request_id=request_id))
        try:
            details = await self._catalog.get_details(content_id, media_type)
        except CatalogLookupError as e:
            logger.error(f"Catalog details failed for content {content_id}: {e.detail}")
            return self.dispatch(LookupFailed(request_id=request_id, message=e.message))

        ledger = await self._ledger_store.get(self.creator_username, content_id)
        state = self.dispatch(ContentLoaded(
            request_id=request_id,
            details=details,
            ledger=ledger,
            price_list=self.creator.price_list,
        ))

        if isinstance(state, SelectingUnits):
            season = initial_season(details)
            if season is not None:
                return await self.view_season(season)
        return self.state

    async def view_season(self, season: int) -> WizardState:
        if not isinstance(self.state, SelectingUnits):
            raise WizardTransitionError(self.state.step.value, "SeasonRequested")

        content_id = self.state.draft.content.content_id
        request_id = _new_request_id()
        self.dispatch(SeasonRequested(season=season, request_id=request_id))
        try:
            episodes = await self._catalog.get_season_episodes(content_id, season)
        except CatalogLookupError as e:
            logger.error(f"Catalog season {season} failed for content {content_id}: {e.detail}")
            return self.dispatch(LookupFailed(request_id=request_id, message=e.message))
        return self.dispatch(SeasonLoaded(request_id=request_id, season=season, episodes=tuple(episodes)))

    # ------------------------------------------------------------------
    # Pure steps
    # ------------------------------------------------------------------

    def toggle_episode(self, season: int, episode: int) -> WizardState:
        return self.dispatch(EpisodeToggled(season=season, episode=episode))

    def select_all_available(self) -> WizardState:
        return self.dispatch(SelectAllAvailable())

    def toggle_priority(self, season: Optional[int] = None, episode: Optional[int] = None) -> WizardState:
        return self.dispatch(PriorityToggled(season=season, episode=episode))

    def update_buyer(
        self,
        name: Optional[str] = None,
        contact_platform: Optional[ContactPlatform] = None,
        contact_value: Optional[str] = None,
        email: Optional[str] = None,
    ) -> WizardState:
        return self.dispatch(BuyerInfoChanged(
            name=name,
            contact_platform=contact_platform,
            contact_value=contact_value,
            email=email,
        ))

    def update_message(self, message: str) -> WizardState:
        return self.dispatch(MessageChanged(message=message))

    def next(self) -> WizardState:
        return self.dispatch(Next())

    def back(self) -> WizardState:
        return self.dispatch(Back())

    def restart(self) -> WizardState:
        return self.dispatch(Restart())

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    async def submit(self) -> Optional[SubmissionResult]:
        """
        Submit the order shown on the summary.
        Returns None, without writing anything, when a fresh ledger read changed
        the price; the buyer then reviews the updated summary.
        """
        if self._submitting:
            raise WizardTransitionError("submitting", "OrderSubmitted")
        if not isinstance(self.state, Summary):
            raise WizardTransitionError(self.state.step.value, "OrderSubmitted")

        # Claimed before the first await so a concurrent submit is refused
        self._submitting = True
        try:
            return await self._submit_summary(self.state)
        finally:
            self._submitting = False

    async def _submit_summary(self, summary: Summary) -> Optional[SubmissionResult]:
        draft = summary.draft
        fresh_ledger = await self._ledger_store.get(self.creator_username, draft.content.content_id)
        refreshed = self.dispatch(LedgerRefreshed(ledger=fresh_ledger))
        if not isinstance(refreshed, Summary) or refreshed.notice:
            logger.info(f"Session {self.session_id}: sponsorship changed before submit, review required")
            return None

        order = build_order(
            creator_username=self.creator_username,
            content=draft.content,
            quote=refreshed.quote,
            buyer_info=draft.buyer.to_buyer_info(),
            message=draft.message,
        )
        result = await submit_order(order, self._order_store, self._notification_store)

        self.dispatch(OrderSubmitted(
            order_code=result.order.order_code,
            total=result.order.total,
            currency=result.order.currency,
            creator_username=self.creator_username,
            creator_display_name=self.creator.display_name or self.creator.username,
            creator_links=tuple(sorted(self.creator.social_links.items())),
            notification_failed=result.notification_failed,
        ))
        return result


class WizardSessionRegistry:
    """In-process wizard sessions keyed by session id. Discarding has no side effects."""

    def __init__(self, ttl_minutes: int = WIZARD_SESSION_TTL_MINUTES):
        self._sessions: Dict[str, SponsorWizardSession] = {}
        self._ttl = timedelta(minutes=ttl_minutes)

    def add(self, session: SponsorWizardSession) -> SponsorWizardSession:
        self.purge_expired()
        self._sessions[session.session_id] = session
        return session

    def get(self, session_id: str) -> SponsorWizardSession:
        session = self._sessions.get(session_id)
        if session is None or utc_now() - session.last_activity > self._ttl:
            self._sessions.pop(session_id, None)
            raise WizardSessionNotFoundError(session_id)
        return session

    def discard(self, session_id: str) -> bool:
        return self._sessions.pop(session_id, None) is not None

    def purge_expired(self) -> int:
        cutoff = utc_now() - self._ttl
        expired = [sid for sid, s in self._sessions.items() if s.last_activity < cutoff]
        for sid in expired:
            del self._sessions[sid]
        if expired:
            logger.info(f"Purged {len(expired)} expired wizard sessions")
        return len(expired)

    def __len__(self) -> int:
        return len(self._sessions)


# Singleton instance
wizard_sessions = WizardSessionRegistry()
