"""
Sponsorship Routes - Public buyer side
Creator price card, catalog search and the order wizard.

The wizard runs server side: each call applies one step to the buyer's
session and returns a snapshot of the resulting state. Validation problems
come back inside the snapshot (200); only invalid moves are HTTP errors.
"""
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from typing import Optional
import logging

from models import ContactPlatform, MediaType
from routes.dependencies import (
    get_catalog_lookup,
    get_ledger_store,
    get_notification_store,
    get_order_store,
    get_profile_store,
    get_wizard_registry,
    http_error,
)
from services.catalog_lookup import CatalogLookup, poster_url
from services.sponsor_pricing import price_card
from services.sponsor_wizard import snapshot
from services.sponsor_wizard_session import SponsorWizardSession, WizardSessionRegistry
from services.sponsorship_errors import CreatorNotFoundError, SponsorshipError, WizardSessionNotFoundError
from stores.interfaces import CreatorProfileStore, NotificationStore, OrderStore, SponsorshipLedgerStore

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/sponsorship", tags=["sponsorship"])


# ============================================
# MODELS
# ============================================

class SearchRequest(BaseModel):
    query: str


class ContentRequest(BaseModel):
    content_id: int
    media_type: MediaType


class SeasonRequest(BaseModel):
    season: int


class EpisodeRequest(BaseModel):
    season: int
    episode: int


class PriorityRequest(BaseModel):
    # Omit both for a movie
    season: Optional[int] = None
    episode: Optional[int] = None


class BuyerRequest(BaseModel):
    name: Optional[str] = None
    contact_platform: Optional[ContactPlatform] = None
    contact_value: Optional[str] = None
    email: Optional[str] = None


class MessageRequest(BaseModel):
    message: str = ""


def _session_response(session: SponsorWizardSession) -> dict:
    state = snapshot(session.state)
    for result in state.get("results", []):
        result["poster_url"] = poster_url(result.get("poster_path"))
    if "draft" in state:
        content = state["draft"]["content"]
        content["poster_url"] = poster_url(content.get("poster_path"))
    return {
        "session_id": session.session_id,
        "creator_username": session.creator_username,
        "state": state,
    }


def _get_session(registry: WizardSessionRegistry, session_id: str) -> SponsorWizardSession:
    try:
        return registry.get(session_id)
    except SponsorshipError as e:
        raise http_error(e)


# ============================================
# CREATOR & CATALOG
# ============================================

@router.get("/creators/{username}")
async def get_creator_price_card(
    username: str,
    profile_store: CreatorProfileStore = Depends(get_profile_store),
):
    """Public profile card with the creator's prices."""
    profile = await profile_store.get_profile(username)
    if profile is None or not profile.is_public:
        raise http_error(CreatorNotFoundError(username))

    return {
        "username": profile.username,
        "display_name": profile.display_name or profile.username,
        "bio": profile.bio,
        "social_links": profile.social_links,
        "prices": price_card(profile.price_list),
    }


@router.get("/catalog/search")
async def search_catalog(
    q: str = Query(..., min_length=1),
    catalog: CatalogLookup = Depends(get_catalog_lookup),
):
    """Direct catalog search (movies and series only)."""
    try:
        results = await catalog.search(q)
    except SponsorshipError as e:
        raise http_error(e)

    return {
        "query": q,
        "results": [
            {**r.model_dump(mode="json"), "poster_url": poster_url(r.poster_path)}
            for r in results
        ],
    }


# ============================================
# WIZARD
# ============================================

@router.post("/creators/{username}/wizard")
async def start_wizard(
    username: str,
    profile_store: CreatorProfileStore = Depends(get_profile_store),
    catalog: CatalogLookup = Depends(get_catalog_lookup),
    order_store: OrderStore = Depends(get_order_store),
    ledger_store: SponsorshipLedgerStore = Depends(get_ledger_store),
    notification_store: NotificationStore = Depends(get_notification_store),
    registry: WizardSessionRegistry = Depends(get_wizard_registry),
):
    """Open a new order wizard for a public creator."""
    profile = await profile_store.get_profile(username)
    if profile is None or not profile.is_public:
        raise http_error(CreatorNotFoundError(username))

    session = registry.add(SponsorWizardSession(
        creator=profile,
        catalog=catalog,
        order_store=order_store,
        ledger_store=ledger_store,
        notification_store=notification_store,
    ))
    logger.info(f"Wizard session {session.session_id} opened for {username}")
    return _session_response(session)


@router.get("/wizard/{session_id}")
async def get_wizard(session_id: str, registry: WizardSessionRegistry = Depends(get_wizard_registry)):
    return _session_response(_get_session(registry, session_id))


@router.post("/wizard/{session_id}/search")
async def wizard_search(
    session_id: str,
    request: SearchRequest,
    registry: WizardSessionRegistry = Depends(get_wizard_registry),
):
    """Search the catalog. A lookup failure is reported on the state, not as an HTTP error."""
    session = _get_session(registry, session_id)
    try:
        await session.search(request.query)
    except SponsorshipError as e:
        raise http_error(e)
    return _session_response(session)


@router.post("/wizard/{session_id}/content")
async def wizard_select_content(
    session_id: str,
    request: ContentRequest,
    registry: WizardSessionRegistry = Depends(get_wizard_registry),
):
    session = _get_session(registry, session_id)
    try:
        await session.select_content(request.content_id, request.media_type)
    except SponsorshipError as e:
        raise http_error(e)
    return _session_response(session)


@router.post("/wizard/{session_id}/season")
async def wizard_view_season(
    session_id: str,
    request: SeasonRequest,
    registry: WizardSessionRegistry = Depends(get_wizard_registry),
):
    session = _get_session(registry, session_id)
    try:
        await session.view_season(request.season)
    except SponsorshipError as e:
        raise http_error(e)
    return _session_response(session)


@router.post("/wizard/{session_id}/episodes/toggle")
async def wizard_toggle_episode(
    session_id: str,
    request: EpisodeRequest,
    registry: WizardSessionRegistry = Depends(get_wizard_registry),
):
    session = _get_session(registry, session_id)
    try:
        session.toggle_episode(request.season, request.episode)
    except SponsorshipError as e:
        raise http_error(e)
    return _session_response(session)


@router.post("/wizard/{session_id}/episodes/select-all")
async def wizard_select_all(session_id: str, registry: WizardSessionRegistry = Depends(get_wizard_registry)):
    """Select every available episode of the season on screen."""
    session = _get_session(registry, session_id)
    try:
        session.select_all_available()
    except SponsorshipError as e:
        raise http_error(e)
    return _session_response(session)


@router.post("/wizard/{session_id}/priority")
async def wizard_toggle_priority(
    session_id: str,
    request: PriorityRequest,
    registry: WizardSessionRegistry = Depends(get_wizard_registry),
):
    session = _get_session(registry, session_id)
    try:
        session.toggle_priority(request.season, request.episode)
    except SponsorshipError as e:
        raise http_error(e)
    return _session_response(session)


@router.put("/wizard/{session_id}/buyer")
async def wizard_update_buyer(
    session_id: str,
    request: BuyerRequest,
    registry: WizardSessionRegistry = Depends(get_wizard_registry),
):
    session = _get_session(registry, session_id)
    try:
        session.update_buyer(
            name=request.name,
            contact_platform=request.contact_platform,
            contact_value=request.contact_value,
            email=request.email,
        )
    except SponsorshipError as e:
        raise http_error(e)
    return _session_response(session)


@router.put("/wizard/{session_id}/message")
async def wizard_update_message(
    session_id: str,
    request: MessageRequest,
    registry: WizardSessionRegistry = Depends(get_wizard_registry),
):
    session = _get_session(registry, session_id)
    try:
        session.update_message(request.message)
    except SponsorshipError as e:
        raise http_error(e)
    return _session_response(session)


@router.post("/wizard/{session_id}/next")
async def wizard_next(session_id: str, registry: WizardSessionRegistry = Depends(get_wizard_registry)):
    session = _get_session(registry, session_id)
    try:
        session.next()
    except SponsorshipError as e:
        raise http_error(e)
    return _session_response(session)


@router.post("/wizard/{session_id}/back")
async def wizard_back(session_id: str, registry: WizardSessionRegistry = Depends(get_wizard_registry)):
    session = _get_session(registry, session_id)
    try:
        session.back()
    except SponsorshipError as e:
        raise http_error(e)
    return _session_response(session)


@router.post("/wizard/{session_id}/restart")
async def wizard_restart(session_id: str, registry: WizardSessionRegistry = Depends(get_wizard_registry)):
    session = _get_session(registry, session_id)
    session.restart()
    return _session_response(session)


@router.post("/wizard/{session_id}/submit")
async def wizard_submit(session_id: str, registry: WizardSessionRegistry = Depends(get_wizard_registry)):
    """
    Submit the order on the summary step.
    If sponsorship changed since the summary was shown, nothing is written and
    the refreshed state is returned with submitted=False.
    """
    session = _get_session(registry, session_id)
    try:
        result = await session.submit()
    except SponsorshipError as e:
        raise http_error(e)

    response = _session_response(session)
    if result is None:
        response["submitted"] = False
        return response

    response.update({
        "submitted": True,
        "order_id": result.order.order_id,
        "order_code": result.order.order_code,
        "total": result.order.total,
        "notification_failed": result.notification_failed,
    })
    if result.notification_failed:
        response["warning"] = (
            "Your order was saved but the creator could not be notified. "
            f"Please send them your order code {result.order.order_code}."
        )
    return response


@router.delete("/wizard/{session_id}")
async def cancel_wizard(session_id: str, registry: WizardSessionRegistry = Depends(get_wizard_registry)):
    """Close the wizard. Nothing entered so far is kept."""
    if not registry.discard(session_id):
        raise http_error(WizardSessionNotFoundError(session_id))
    return {"success": True, "session_id": session_id}
