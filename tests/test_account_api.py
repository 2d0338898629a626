"""End-user and admin endpoints, authenticated with signed identity tokens."""

import pytest

from rewards_ledger.models.fraud_log import FraudLog
from rewards_ledger.models.user import User

pytestmark = pytest.mark.asyncio

UID = "member-uid-MEM001"


async def test_requires_token(client):
    r = await client.get("/v1/account/me")
    assert r.status_code == 401
    assert r.json()["error"]["code"] == "UNAUTHENTICATED"
    bad = await client.get("/v1/account/me", headers={"Authorization": "Bearer forged"})
    assert bad.status_code == 401


async def test_profile_created_with_referral(client, auth_headers):
    r = await client.post("/v1/account/profile", json={"referred_by": " abc123 "}, headers=auth_headers(UID))
    assert r.status_code == 200
    body = r.json()
    assert body["referral_code"] == "MEM001"
    assert body["referred_by"] == "ABC123"
    assert body["email_verified"] is True
    user = await User.find_one(User.uid == UID)
    assert user.referral_pending is True


async def test_profile_completes_account_created_by_credit(client, auth_headers, make_user):
    await make_user(UID, balance=1.0)
    r = await client.post(
        "/v1/account/profile", json={"referred_by": "ABC123", "device_id": "dev-1"}, headers=auth_headers(UID)
    )
    assert r.status_code == 200
    user = await User.find_one(User.uid == UID)
    assert user.balance == 1.0
    assert user.referred_by == "ABC123"
    assert user.device_id == "dev-1"
    assert user.email == f"{UID}@example.com"


async def test_me(client, auth_headers, make_user):
    await make_user(UID, balance=2.5, daily_streak=3)
    r = await client.get("/v1/account/me", headers=auth_headers(UID))
    assert r.status_code == 200
    assert r.json()["balance"] == 2.5
    assert r.json()["daily_streak"] == 3


async def test_me_not_found(client, auth_headers):
    r = await client.get("/v1/account/me", headers=auth_headers("unknown"))
    assert r.status_code == 404


async def test_check_in_endpoint(client, auth_headers, make_user):
    await make_user(UID)
    r = await client.post("/v1/account/check-in", headers=auth_headers(UID))
    body = r.json()
    assert (body["updated"], body["daily_streak"], body["bonus_percent"]) == (True, 1, 0.5)
    again = await client.post("/v1/account/check-in", headers=auth_headers(UID))
    assert again.json()["updated"] is False


async def test_referral_flow_over_http(client, auth_headers, make_user):
    referrer = await make_user("host-uid-HOST01")
    await client.post("/v1/account/profile", json={"referred_by": referrer.referral_code}, headers=auth_headers(UID))
    not_yet = await client.post("/v1/account/referrals/process", headers=auth_headers(UID, email_verified=False))
    assert not_yet.json()["status"] == "email_not_verified"
    r = await client.post("/v1/account/referrals/process", headers=auth_headers(UID))
    assert r.json() == {"status": "paid_normal", "message": "Referral processed"}
    summary = await client.get("/v1/account/referrals", headers=auth_headers(referrer.uid))
    assert summary.json()["referred_count"] == 1


async def test_apply_referral_code(client, auth_headers, make_user):
    await make_user(UID)
    own = await client.post("/v1/account/referrals/apply", json={"code": "mem001"}, headers=auth_headers(UID))
    assert own.status_code == 400
    r = await client.post("/v1/account/referrals/apply", json={"code": "host01"}, headers=auth_headers(UID))
    assert r.json()["status"] == "applied"
    again = await client.post("/v1/account/referrals/apply", json={"code": "OTHER1"}, headers=auth_headers(UID))
    assert again.json()["status"] == "already_referred"
    assert (await User.find_one(User.uid == UID)).referred_by == "HOST01"


async def test_shortcut_bonus_once(client, auth_headers, make_user):
    await make_user(UID)
    r = await client.post("/v1/account/shortcut-bonus", headers=auth_headers(UID))
    assert r.status_code == 200
    assert r.json()["balance"] == 0.05
    again = await client.post("/v1/account/shortcut-bonus", headers=auth_headers(UID))
    assert again.status_code == 409
    assert again.json()["error"]["code"] == "ALREADY_DONE"
    started = await client.get("/v1/account/offers/started", headers=auth_headers(UID))
    assert started.json()["items"][0]["status"] == "completed"


async def test_fingerprint(client, auth_headers, make_user):
    await make_user(UID)
    await make_user("other-uid-OTH001")
    payload = {"device_id": "dev-9", "user_agent": "UA", "ip": "203.0.113.7"}
    await client.post("/v1/account/fingerprint", json=payload, headers=auth_headers("other-uid-OTH001"))
    r = await client.post("/v1/account/fingerprint", json=payload, headers=auth_headers(UID))
    body = r.json()
    assert body["device_user_count"] == 2
    assert body["ip_user_count"] == 2
    assert len(body["ip_hash"]) == 64

    user = await User.find_one(User.uid == UID)
    assert user.device_id == "dev-9"
    assert user.last_ip_masked == "203.0.113.***"
    assert await FraudLog.find(FraudLog.type == "fingerprint").count() == 2

    await client.post("/v1/account/fingerprint", json={"device_id": "dev-10"}, headers=auth_headers(UID))
    user = await User.find_one(User.uid == UID)
    assert user.device_id == "dev-9"
    assert user.last_device_id == "dev-10"


async def test_offer_history_and_audit(client, auth_headers, make_user):
    await make_user(UID)
    for i in range(3):
        await client.get(
            "/v1/postbacks/adgem",
            params={"secret": "offers-secret", "uid": UID, "offer_id": f"g{i}", "amount": "100", "transaction_id": f"t{i}"},
        )
    r = await client.get("/v1/account/offers", params={"limit": 2}, headers=auth_headers(UID))
    body = r.json()
    assert body["total"] == 3
    assert len(body["items"]) == 2
    assert {item["kind"] for item in body["items"]} == {"credit"}
    audit = await client.get("/v1/account/audit", headers=auth_headers(UID))
    assert audit.json()["total"] == 3
    assert audit.json()["entries"][0]["tx_id"] == "t2"
    assert (await client.get("/v1/account/offers", params={"limit": 500}, headers=auth_headers(UID))).status_code == 422


async def test_admin_endpoints(client, auth_headers, make_user):
    await make_user(UID, balance=5.0)
    assert (await client.get(f"/v1/admin/users/{UID}/ledger", headers=auth_headers(UID))).status_code == 403

    admin = auth_headers("admin-uid-ADM001", admin=True)
    r = await client.post(f"/v1/admin/users/{UID}/adjust", json={"amount": -5.0, "note": "cashout"}, headers=admin)
    assert r.json() == {"uid": UID, "balance": 0.0}
    ledger = await client.get(f"/v1/admin/users/{UID}/ledger", headers=admin)
    assert ledger.json()["audit_log"][0]["type"] == "admin_adjustment"
    assert (await client.get("/v1/admin/users/ghost/ledger", headers=admin)).status_code == 404
    logs = await client.get("/v1/admin/fraud-logs", params={"type": "velocity"}, headers=admin)
    assert logs.json()["items"] == []
