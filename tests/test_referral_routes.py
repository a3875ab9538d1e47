"""
tests/test_referral_routes.py -- Integration tests for GET /api/v1/referrals*.

Covers:
  - Both endpoints require auth
  - List returns only the caller's direct referrals with program status
  - Stats reports the caller's key, referrer, total and active counts
  - Referrals outside the two-year window count in total but not active
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from auth.models import User


def _bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def test_referrals_require_auth(api) -> None:
    assert api.client.get("/api/v1/referrals").status_code == 401
    assert api.client.get("/api/v1/referrals/stats").status_code == 401


def test_list_direct_referrals_only(api) -> None:
    referrer = api.register()
    child = api.register(ref=referrer["user"]["key"])
    api.register(ref=child["user"]["key"])  # grandchild, not a direct referral

    resp = api.client.get("/api/v1/referrals", headers=_bearer(referrer["token"]))
    assert resp.status_code == 200
    rows = resp.json()
    assert [r["id"] for r in rows] == [child["user"]["id"]]
    assert rows[0]["program_active"] is True
    assert "email" not in rows[0]


def test_empty_list(api) -> None:
    registered = api.register()
    resp = api.client.get("/api/v1/referrals", headers=_bearer(registered["token"]))
    assert resp.status_code == 200
    assert resp.json() == []


def test_stats(api) -> None:
    grand = api.register()
    referrer = api.register(ref=grand["user"]["key"])
    api.register(ref=referrer["user"]["key"])
    api.register(ref=referrer["user"]["key"])

    old_id = api.store.create_user(
        User(
            name="Old",
            email=api.unique_email("old"),
            referrer_id=referrer["user"]["id"],
            created_at=(datetime.now(timezone.utc) - timedelta(days=3 * 365)).isoformat(),
        )
    )

    resp = api.client.get("/api/v1/referrals/stats", headers=_bearer(referrer["token"]))
    assert resp.status_code == 200
    data = resp.json()
    assert data["referral_key"] == referrer["user"]["key"]
    assert data["referrer_id"] == grand["user"]["id"]
    assert data["total_referrals"] == 3
    assert data["active_referrals"] == 2

    rows = api.client.get("/api/v1/referrals", headers=_bearer(referrer["token"])).json()
    status = {r["id"]: r["program_active"] for r in rows}
    assert status[old_id] is False
