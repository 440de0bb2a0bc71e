"""
Pytest configuration and shared fixtures for backend tests.
Stores are the in-memory implementations and the catalog is a canned fake,
so no MongoDB or TMDB access is needed.
"""
import os
import sys
from pathlib import Path
from typing import Dict, List, Optional

BACKEND_DIR = Path(__file__).resolve().parent.parent
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

os.environ.setdefault("PYTEST_RUNNING", "1")

import pytest
from fastapi.testclient import TestClient

from models import (
    BuyerInfo,
    ContactPlatform,
    ContentDetails,
    ContentRef,
    CreatorProfile,
    EpisodeRef,
    LedgerEpisode,
    MediaType,
    PriceList,
    SeasonRef,
    SponsorshipLedgerEntry,
)
from routes.dependencies import (
    get_catalog_lookup,
    get_ledger_store,
    get_notification_store,
    get_order_store,
    get_profile_store,
    get_wizard_registry,
)
from server import app
from services.catalog_lookup import CatalogLookup
from services.sponsor_wizard_session import SponsorWizardSession, WizardSessionRegistry
from services.sponsorship_errors import CatalogLookupError
from stores.memory_store import (
    InMemoryCreatorProfileStore,
    InMemoryNotificationStore,
    InMemoryOrderStore,
    InMemorySponsorshipLedgerStore,
)

CREATOR = "alice"

LONG_MOVIE = ContentRef(content_id=550, title="Fight Club", media_type=MediaType.MOVIE, poster_path="/fc.jpg")
SHORT_MOVIE = ContentRef(content_id=13, title="Forrest Gump", media_type=MediaType.MOVIE, poster_path="/fg.jpg")
SERIES = ContentRef(content_id=1399, title="Game of Thrones", media_type=MediaType.SERIES, poster_path="/got.jpg")


def make_price_list(**overrides) -> PriceList:
    values = {
        "movie_price_short": 3000,
        "movie_price_long": 4500,
        "episode_price": 1000,
        "priority_price": 500,
    }
    values.update(overrides)
    return PriceList(**values)


def make_buyer(name: str = "Bob", email: Optional[str] = "bob@example.com") -> BuyerInfo:
    return BuyerInfo(
        name=name,
        contact_platform=ContactPlatform.INSTAGRAM,
        contact_value="@bob",
        email=email,
    )


def ledger_for_series(*episodes: LedgerEpisode) -> SponsorshipLedgerEntry:
    return SponsorshipLedgerEntry(
        creator_username=CREATOR,
        content_id=SERIES.content_id,
        title=SERIES.title,
        media_type=MediaType.SERIES,
        is_paid=any(ep.is_paid for ep in episodes),
        is_priority=any(ep.is_priority for ep in episodes),
        episodes=list(episodes),
    )


def ledger_for_movie(content: ContentRef = LONG_MOVIE, is_paid=True, is_priority=False) -> SponsorshipLedgerEntry:
    return SponsorshipLedgerEntry(
        creator_username=CREATOR,
        content_id=content.content_id,
        title=content.title,
        media_type=MediaType.MOVIE,
        is_paid=is_paid,
        is_priority=is_priority,
    )


class FakeCatalogLookup(CatalogLookup):
    """Canned catalog: two movies and one two-season series."""

    def __init__(self):
        self.fail = False
        self.calls: List[str] = []
        self.details: Dict[int, ContentDetails] = {
            LONG_MOVIE.content_id: ContentDetails(content=LONG_MOVIE, runtime_minutes=139),
            SHORT_MOVIE.content_id: ContentDetails(content=SHORT_MOVIE, runtime_minutes=95),
            SERIES.content_id: ContentDetails(
                content=SERIES,
                seasons=[
                    SeasonRef(season_number=1, name="Season 1", episode_count=3),
                    SeasonRef(season_number=2, name="Season 2", episode_count=2),
                ],
            ),
        }
        self.episodes: Dict[int, List[EpisodeRef]] = {
            1: [EpisodeRef(season=1, episode=n, name=f"S1 Episode {n}") for n in (1, 2, 3)],
            2: [EpisodeRef(season=2, episode=n, name=f"S2 Episode {n}") for n in (1, 2)],
        }

    def _check(self, call: str) -> None:
        self.calls.append(call)
        if self.fail:
            raise CatalogLookupError("status 503")

    async def search(self, text: str) -> List[ContentRef]:
        self._check(f"search:{text}")
        needle = text.lower()
        return [d.content for d in self.details.values() if needle in d.content.title.lower()]

    async def get_details(self, content_id: int, media_type: MediaType) -> ContentDetails:
        self._check(f"details:{content_id}")
        return self.details[content_id]

    async def get_season_episodes(self, content_id: int, season: int) -> List[EpisodeRef]:
        self._check(f"season:{content_id}:{season}")
        return list(self.episodes.get(season, []))


@pytest.fixture
def price_list():
    return make_price_list()


@pytest.fixture
def creator(price_list):
    return CreatorProfile(
        username=CREATOR,
        display_name="Alice Reacts",
        price_list=price_list,
        social_links={"instagram": "@alice", "youtube": "youtube.com/alice"},
        is_public=True,
    )


@pytest.fixture
def order_store():
    return InMemoryOrderStore()


@pytest.fixture
def ledger_store():
    return InMemorySponsorshipLedgerStore()


@pytest.fixture
def notification_store():
    return InMemoryNotificationStore()


@pytest.fixture
def profile_store(creator):
    private = CreatorProfile(username="hidden", display_name="Hidden", is_public=False)
    return InMemoryCreatorProfileStore([creator, private])


@pytest.fixture
def catalog():
    return FakeCatalogLookup()


@pytest.fixture
def wizard_registry():
    return WizardSessionRegistry()


@pytest.fixture
def wizard(creator, catalog, order_store, ledger_store, notification_store):
    return SponsorWizardSession(
        creator=creator,
        catalog=catalog,
        order_store=order_store,
        ledger_store=ledger_store,
        notification_store=notification_store,
    )


@pytest.fixture
def client(order_store, ledger_store, notification_store, profile_store, catalog, wizard_registry):
    """TestClient for server:app with in-memory stores. Lifespan (MongoDB) is not started."""
    app.dependency_overrides[get_order_store] = lambda: order_store
    app.dependency_overrides[get_ledger_store] = lambda: ledger_store
    app.dependency_overrides[get_notification_store] = lambda: notification_store
    app.dependency_overrides[get_profile_store] = lambda: profile_store
    app.dependency_overrides[get_catalog_lookup] = lambda: catalog
    app.dependency_overrides[get_wizard_registry] = lambda: wizard_registry
    yield TestClient(app)
    app.dependency_overrides.clear()
