"""
Route dependencies - stores, catalog and wizard registry.
Routes receive these through Depends() so tests can swap in the in-memory stores.
"""
from typing import Dict

from fastapi import HTTPException

from database import database
from services.catalog_lookup import CatalogLookup, catalog_lookup
from services.sponsor_wizard_session import WizardSessionRegistry, wizard_sessions
from services.sponsorship_errors import ErrorCode, SponsorshipError
from stores.interfaces import CreatorProfileStore, NotificationStore, OrderStore, SponsorshipLedgerStore
from stores.mongo_store import (
    MongoCreatorProfileStore,
    MongoNotificationStore,
    MongoOrderStore,
    MongoSponsorshipLedgerStore,
)


def get_order_store() -> OrderStore:
    return MongoOrderStore(database.get_db())


def get_ledger_store() -> SponsorshipLedgerStore:
    return MongoSponsorshipLedgerStore(database.get_db())


def get_notification_store() -> NotificationStore:
    return MongoNotificationStore(database.get_db())


def get_profile_store() -> CreatorProfileStore:
    return MongoCreatorProfileStore(database.get_db())


def get_catalog_lookup() -> CatalogLookup:
    return catalog_lookup


def get_wizard_registry() -> WizardSessionRegistry:
    return wizard_sessions


# HTTP status per domain error code
ERROR_STATUS: Dict[ErrorCode, int] = {
    ErrorCode.ORDER_NOT_FOUND: 404,
    ErrorCode.CREATOR_NOT_FOUND: 404,
    ErrorCode.WIZARD_SESSION_NOT_FOUND: 404,
    ErrorCode.INVALID_STATUS_TRANSITION: 400,
    ErrorCode.ORDER_NOT_PAID: 400,
    ErrorCode.WIZARD_TRANSITION_INVALID: 409,
    ErrorCode.LEDGER_CONFLICT: 409,
    ErrorCode.CATALOG_LOOKUP_FAILED: 502,
    ErrorCode.ORDER_PERSISTENCE_FAILED: 500,
}


def http_error(error: SponsorshipError) -> HTTPException:
    """Map a domain error to an HTTPException with a structured detail."""
    return HTTPException(
        status_code=ERROR_STATUS.get(error.code, 400),
        detail={
            "error_code": error.code.value,
            "message": error.message,
        },
    )
