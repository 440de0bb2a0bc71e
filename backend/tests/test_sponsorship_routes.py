"""
Buyer side HTTP flow: price card, catalog search and the order wizard.
Uses the client fixture (in-memory stores, canned catalog).
"""
import asyncio

import pytest

from conftest import CREATOR, LONG_MOVIE, SERIES, ledger_for_movie, ledger_for_series
from models import LedgerEpisode

API = "/api/sponsorship"

BUYER = {
    "name": "Bob",
    "contact_platform": "instagram",
    "contact_value": "@bob",
    "email": "bob@example.com",
}


def open_wizard(client, username=CREATOR):
    response = client.post(f"{API}/creators/{username}/wizard")
    assert response.status_code == 200
    return response.json()["session_id"]


def step(client, session_id, action, method="post", **payload):
    call = getattr(client, method)
    url = f"{API}/wizard/{session_id}/{action}"
    response = call(url, json=payload)
    assert response.status_code == 200, response.text
    return response.json()["state"]


def fill_buyer_and_review(client, session_id):
    state = step(client, session_id, "next")
    assert state["step"] == "buyer_info"
    step(client, session_id, "buyer", method="put", **BUYER)
    state = step(client, session_id, "next")
    assert state["step"] == "summary"
    return state


def submit(client, session_id):
    response = client.post(f"{API}/wizard/{session_id}/submit")
    assert response.status_code == 200, response.text
    return response.json()


# ============================================
# PRICE CARD & CATALOG
# ============================================

class TestPriceCard:

    def test_public_creator(self, client):
        response = client.get(f"{API}/creators/{CREATOR}")
        assert response.status_code == 200
        data = response.json()
        assert data["display_name"] == "Alice Reacts"
        assert data["prices"]["movie_price_long"] == 4500
        assert data["prices"]["priority_price"] == 500
        assert data["social_links"]["instagram"] == "@alice"

    @pytest.mark.parametrize("username", ["hidden", "nobody"])
    def test_private_or_unknown_creator(self, client, username):
        response = client.get(f"{API}/creators/{username}")
        assert response.status_code == 404
        assert response.json()["detail"]["error_code"] == "CREATOR_NOT_FOUND"

    def test_wizard_requires_public_creator(self, client):
        assert client.post(f"{API}/creators/hidden/wizard").status_code == 404


class TestCatalogSearch:

    def test_search_adds_poster_urls(self, client):
        response = client.get(f"{API}/catalog/search", params={"q": "fight"})
        assert response.status_code == 200
        results = response.json()["results"]
        assert [r["content_id"] for r in results] == [LONG_MOVIE.content_id]
        assert results[0]["poster_url"].endswith("/fc.jpg")

    def test_lookup_failure_is_bad_gateway(self, client, catalog):
        catalog.fail = True
        response = client.get(f"{API}/catalog/search", params={"q": "fight"})
        assert response.status_code == 502
        assert response.json()["detail"]["error_code"] == "CATALOG_LOOKUP_FAILED"


# ============================================
# WIZARD
# ============================================

class TestMovieWizard:

    def test_full_flow_with_priority(self, client, notification_store):
        session_id = open_wizard(client)

        state = step(client, session_id, "search", query="fight")
        assert state["step"] == "searching"
        assert [r["content_id"] for r in state["results"]] == [LONG_MOVIE.content_id]

        state = step(client, session_id, "content", content_id=LONG_MOVIE.content_id, media_type="movie")
        assert state["step"] == "priority_option"
        assert state["draft"]["quote"]["total"] == 4500
        assert state["draft"]["content"]["poster_url"].endswith("/fc.jpg")

        state = step(client, session_id, "priority")
        assert state["draft"]["movie"]["wants_priority"] is True
        assert state["draft"]["quote"]["total"] == 5000

        fill_buyer_and_review(client, session_id)
        step(client, session_id, "message", method="put", message="Please react live!")

        result = submit(client, session_id)
        assert result["submitted"] is True
        assert result["total"] == 5000
        assert result["notification_failed"] is False
        assert "warning" not in result
        assert result["state"]["step"] == "confirmed"
        assert result["state"]["order_code"] == result["order_code"]
        assert result["state"]["creator_display_name"] == "Alice Reacts"
        assert result["state"]["can_go_back"] is False

        orders = client.get(f"/api/creators/{CREATOR}/orders").json()["orders"]
        assert len(orders) == 1
        assert orders[0]["message"] == "Please react live!"
        assert orders[0]["buyer_info"]["contact_platform"] == "instagram"

    def test_buyer_fields_validated_on_step(self, client):
        session_id = open_wizard(client)
        step(client, session_id, "content", content_id=LONG_MOVIE.content_id, media_type="movie")
        step(client, session_id, "next")

        state = step(client, session_id, "next")
        assert state["step"] == "buyer_info"
        assert state["errors"] == ["name is required", "contact_value is required"]

    def test_fully_sponsored_movie_only_goes_back(self, client, ledger_store):
        asyncio.run(ledger_store.save(ledger_for_movie(is_paid=True, is_priority=True), expected_version=None))

        session_id = open_wizard(client)
        step(client, session_id, "search", query="fight")
        state = step(client, session_id, "content", content_id=LONG_MOVIE.content_id, media_type="movie")
        assert state["step"] == "priority_option"
        assert state["blocked"] is True

        response = client.post(f"{API}/wizard/{session_id}/next")
        assert response.status_code == 409
        assert response.json()["detail"]["error_code"] == "WIZARD_TRANSITION_INVALID"

        state = step(client, session_id, "back")
        assert state["step"] == "searching"
        assert state["query"] == "fight"

    def test_invalid_move_is_conflict(self, client):
        session_id = open_wizard(client)
        response = client.post(f"{API}/wizard/{session_id}/next")
        assert response.status_code == 409

    def test_search_failure_stays_on_step(self, client, catalog):
        session_id = open_wizard(client)
        catalog.fail = True
        state = step(client, session_id, "search", query="fight")
        assert state["step"] == "searching"
        assert state["error"] == "Content search is unavailable, please try again"
        assert state["loading"] is False


class TestSeriesWizard:

    def test_episode_selection_and_priority(self, client):
        session_id = open_wizard(client)
        state = step(client, session_id, "content", content_id=SERIES.content_id, media_type="series")
        assert state["step"] == "selecting_units"
        assert state["draft"]["viewed_season"] == 1
        assert [ep["episode"] for ep in state["draft"]["episodes"]] == [1, 2, 3]

        step(client, session_id, "episodes/toggle", season=1, episode=1)
        state = step(client, session_id, "episodes/select-all")
        assert [ep["episode"] for ep in state["draft"]["selected"]] == [1, 2, 3]

        state = step(client, session_id, "season", season=2)
        assert state["draft"]["viewed_season"] == 2
        assert len(state["draft"]["selected"]) == 3

        state = step(client, session_id, "next")
        assert state["step"] == "priority_option"
        state = step(client, session_id, "priority", season=1, episode=2)
        assert state["draft"]["quote"]["total"] == 3500

        fill_buyer_and_review(client, session_id)
        result = submit(client, session_id)
        assert result["submitted"] is True
        assert result["total"] == 3500

    def test_sponsored_episode_cannot_be_selected(self, client, ledger_store):
        asyncio.run(ledger_store.save(
            ledger_for_series(LedgerEpisode(season=1, episode=1, is_paid=True, is_priority=True)),
            expected_version=None,
        ))
        session_id = open_wizard(client)
        state = step(client, session_id, "content", content_id=SERIES.content_id, media_type="series")
        assert state["draft"]["episodes"][0]["blocked"] is True

        state = step(client, session_id, "episodes/toggle", season=1, episode=1)
        assert state["draft"]["selected"] == []
        assert "already fully sponsored" in state["error"]

    def test_next_without_selection_reports_error(self, client):
        session_id = open_wizard(client)
        step(client, session_id, "content", content_id=SERIES.content_id, media_type="series")
        state = step(client, session_id, "next")
        assert state["step"] == "selecting_units"
        assert state["error"] == "Select at least one episode"

    def test_sponsorship_change_before_submit_requires_review(self, client, ledger_store, order_store):
        session_id = open_wizard(client)
        step(client, session_id, "content", content_id=SERIES.content_id, media_type="series")
        step(client, session_id, "episodes/toggle", season=1, episode=1)
        step(client, session_id, "episodes/toggle", season=1, episode=2)
        step(client, session_id, "next")
        summary = fill_buyer_and_review(client, session_id)
        assert summary["draft"]["quote"]["total"] == 2000

        # Another buyer's order for S1E2 with priority is marked paid meanwhile
        asyncio.run(ledger_store.save(
            ledger_for_series(LedgerEpisode(season=1, episode=2, is_paid=True, is_priority=True)),
            expected_version=None,
        ))

        result = submit(client, session_id)
        assert result["submitted"] is False
        assert result["state"]["step"] == "summary"
        assert result["state"]["notice"] is not None
        assert result["state"]["draft"]["quote"]["total"] == 1000
        assert asyncio.run(order_store.list_for_creator(CREATOR)) == []

        result = submit(client, session_id)
        assert result["submitted"] is True
        assert result["total"] == 1000


class TestWizardSession:

    def test_unknown_session(self, client):
        response = client.get(f"{API}/wizard/does-not-exist")
        assert response.status_code == 404
        assert response.json()["detail"]["error_code"] == "WIZARD_SESSION_NOT_FOUND"

    def test_restart_returns_to_search(self, client):
        session_id = open_wizard(client)
        step(client, session_id, "content", content_id=LONG_MOVIE.content_id, media_type="movie")
        state = step(client, session_id, "restart")
        assert state["step"] == "searching"
        assert state["results"] == []

    def test_cancel_discards_session(self, client):
        session_id = open_wizard(client)
        assert client.delete(f"{API}/wizard/{session_id}").json()["success"] is True
        assert client.get(f"{API}/wizard/{session_id}").status_code == 404
        assert client.delete(f"{API}/wizard/{session_id}").status_code == 404

    def test_request_validation_error_shape(self, client):
        session_id = open_wizard(client)
        response = client.post(f"{API}/wizard/{session_id}/content", json={"content_id": "abc"})
        assert response.status_code == 422
        body = response.json()
        assert "request_id" in body
        assert isinstance(body["detail"], list)
