from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, Dict, List
from datetime import datetime, timezone
from enum import Enum
import uuid

from services.sponsor_order_workflow import SponsorOrderStatus


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# ENUMS (System Constants)
# ============================================================================

class MediaType(str, Enum):
    MOVIE = "movie"
    SERIES = "series"


class ContactPlatform(str, Enum):
    WHATSAPP = "whatsapp"
    INSTAGRAM = "instagram"
    DISCORD = "discord"
    TELEGRAM = "telegram"
    TWITTER = "twitter"
    EMAIL = "email"


class LedgerPriority(str, Enum):
    NORMAL = "normal"
    HIGH = "high"


class NotificationType(str, Enum):
    NEW_ORDER = "new_order"


# ============================================================================
# CATALOG MODELS (fetched from the catalog lookup, immutable)
# ============================================================================

class ContentRef(BaseModel):
    """A sponsorable work as returned by the catalog lookup."""
    model_config = ConfigDict(frozen=True, extra="ignore")

    content_id: int
    title: str
    media_type: MediaType
    poster_path: Optional[str] = None
    runtime_minutes: Optional[int] = None


class SeasonRef(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    season_number: int
    name: str = ""
    episode_count: int = 0


class EpisodeRef(BaseModel):
    """One unit of a series. Identity is (season, episode)."""
    model_config = ConfigDict(frozen=True, extra="ignore")

    season: int
    episode: int
    name: str = ""

    @property
    def key(self) -> tuple:
        return (self.season, self.episode)


class ContentDetails(BaseModel):
    """Full details for a content item: runtime for movies, seasons for series."""
    model_config = ConfigDict(frozen=True, extra="ignore")

    content: ContentRef
    runtime_minutes: int = 90
    seasons: List[SeasonRef] = Field(default_factory=list)


# ============================================================================
# CREATOR PROFILE (external, read only)
# ============================================================================

class PriceList(BaseModel):
    """Creator price list. All amounts in minor currency units (cents)."""
    model_config = ConfigDict(extra="ignore")

    movie_price_short: int = Field(default=0, ge=0)
    movie_price_long: int = Field(default=0, ge=0)
    episode_price: int = Field(default=0, ge=0)
    priority_price: int = Field(default=0, ge=0)


class CreatorProfile(BaseModel):
    model_config = ConfigDict(extra="ignore")

    username: str
    display_name: str = ""
    bio: str = ""
    price_list: PriceList = Field(default_factory=PriceList)
    social_links: Dict[str, str] = Field(default_factory=dict)
    is_public: bool = False


# ============================================================================
# SPONSORSHIP LEDGER (organizer catalogue projection)
# ============================================================================

class LedgerEpisode(BaseModel):
    model_config = ConfigDict(extra="ignore")

    season: int
    episode: int
    is_paid: bool = False
    is_priority: bool = False
    sponsor_name: Optional[str] = None
    paid_at: Optional[datetime] = None


class SponsorshipLedgerEntry(BaseModel):
    """Per-content sponsorship state for one creator.

    For movies is_paid/is_priority describe the whole work. For series the
    top-level flags are summaries; the episodes list is authoritative.
    """
    model_config = ConfigDict(extra="ignore")

    creator_username: str
    content_id: int
    title: str
    media_type: MediaType
    poster_path: Optional[str] = None
    is_paid: bool = False
    is_priority: bool = False
    priority: LedgerPriority = LedgerPriority.NORMAL
    sponsor_name: Optional[str] = None
    sponsor_contact: Optional[str] = None
    sponsor_email: Optional[str] = None
    order_code: Optional[str] = None
    episodes: List[LedgerEpisode] = Field(default_factory=list)
    added_at: datetime = Field(default_factory=utc_now)
    version: int = 0

    def find_episode(self, season: int, episode: int) -> Optional[LedgerEpisode]:
        for ep in self.episodes:
            if ep.season == season and ep.episode == episode:
                return ep
        return None


# ============================================================================
# ORDERS
# ============================================================================

class BuyerInfo(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str
    contact_platform: ContactPlatform
    contact_value: str
    email: Optional[str] = None

    @property
    def contact_display(self) -> str:
        return f"{self.contact_platform.value}: {self.contact_value}"


class OrderLineItem(BaseModel):
    """One purchasable unit: a whole movie or a single episode."""
    model_config = ConfigDict(extra="ignore")

    content: ContentRef
    media_type: MediaType
    episode: Optional[EpisodeRef] = None
    unit_price: int = 0  # Base price charged, 0 when the unit was already paid
    priority_price: int = 0
    wants_priority: bool = False


class Order(BaseModel):
    """A submitted sponsorship order. Only status and paid_at change after creation."""
    model_config = ConfigDict(extra="ignore")

    order_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    order_code: str
    creator_username: str
    items: List[OrderLineItem]
    buyer_info: BuyerInfo
    message: Optional[str] = None
    subtotal: int
    priority_total: int
    total: int
    currency: str = "brl"
    status: SponsorOrderStatus = SponsorOrderStatus.PENDING
    created_at: datetime = Field(default_factory=utc_now)
    paid_at: Optional[datetime] = None


# ============================================================================
# NOTIFICATIONS
# ============================================================================

class NotificationEvent(BaseModel):
    model_config = ConfigDict(extra="ignore")

    notification_id: str = Field(default_factory=lambda: f"NOTIF-{uuid.uuid4().hex[:8].upper()}")
    creator_username: str
    type: NotificationType = NotificationType.NEW_ORDER
    order_code: Optional[str] = None
    message: str
    buyer_name: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)
    read: bool = False
