from datetime import timedelta

from services.auction import finish_auction, utcnow
from tests.conftest import auth_headers


def _reserve_body(**overrides):
    now = utcnow()
    body = {
        "title": "Signed guitar",
        "description": "Signed by the whole band",
        "category": "Music",
        "auctionType": "reserve",
        "startingPrice": 200,
        "minimumPrice": 100,
        "bidIncrement": 10,
        "images": ["https://cdn.example.com/guitar.jpg"],
        "certificates": ["https://cdn.example.com/guitar-ownership.pdf"],
        "startsAt": (now - timedelta(minutes=1)).isoformat(),
        "endsAt": (now + timedelta(hours=1)).isoformat(),
    }
    body.update(overrides)
    return body


async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


async def test_missing_token_is_rejected(client):
    response = await client.get("/auctions/my")
    assert response.status_code in (401, 403)


async def test_invalid_token_is_rejected(client):
    response = await client.get("/auctions/my", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401
    assert response.json() == {"message": "Invalid token"}


async def test_admin_routes_require_admin_role(client, bidder):
    response = await client.get("/admin/payments/payment-requests", headers=auth_headers(bidder))
    assert response.status_code == 403
    assert response.json() == {"message": "Admin access required"}


async def test_malformed_body_returns_400(client, seller):
    response = await client.post(
        "/auctions",
        json=_reserve_body(category="Spaceships"),
        headers=auth_headers(seller),
    )
    assert response.status_code == 400
    assert response.json()["errors"]


async def test_english_auction_and_low_bid(client, seller, bidder):
    body = _reserve_body(auctionType="english")
    del body["minimumPrice"]
    del body["certificates"]
    response = await client.post("/auctions", json=body, headers=auth_headers(seller))
    assert response.status_code == 201
    data = response.json()
    assert data["requiresApproval"] is False
    auction_id = data["auction"]["id"]
    assert data["auction"]["status"] == "active"

    response = await client.post(f"/auctions/{auction_id}/bid", json={"amount": 205}, headers=auth_headers(bidder))
    assert response.status_code == 400
    assert response.json()["currentBid"] == 200

    response = await client.post(f"/auctions/{auction_id}/bid", json={"amount": 210}, headers=auth_headers(bidder))
    assert response.status_code == 200
    assert response.json()["auction"]["currentBid"] == 210
    assert response.json()["auction"]["currentHighestBidderId"] == bidder.id

    response = await client.get(f"/auctions/{auction_id}", headers=auth_headers(bidder))
    assert response.json()["currentBid"] == 210


async def test_unknown_auction_is_404(client, bidder):
    response = await client.get("/auctions/999", headers=auth_headers(bidder))
    assert response.status_code == 404
    assert response.json() == {"message": "Auction not found"}


async def test_reserve_auction_end_to_end(client, session, seller, bidder, admin):
    seller_headers = auth_headers(seller)
    bidder_headers = auth_headers(bidder)
    admin_headers = auth_headers(admin)

    # Заявка и модерация
    response = await client.post("/auctions", json=_reserve_body(), headers=seller_headers)
    assert response.status_code == 201
    assert response.json()["requiresApproval"] is True
    request_id = response.json()["auctionRequest"]["id"]

    response = await client.get("/admin/auction-requests", headers=admin_headers)
    assert [r["id"] for r in response.json()["requests"]] == [request_id]

    response = await client.post(f"/admin/auction-requests/{request_id}/approve", headers=admin_headers)
    assert response.status_code == 200
    auction_id = response.json()["auction"]["id"]

    response = await client.post(f"/admin/auction-requests/{request_id}/approve", headers=admin_headers)
    assert response.status_code == 409

    # Участие требует подтвержденного взноса
    response = await client.post(f"/auctions/{auction_id}/bid", json={"amount": 250}, headers=bidder_headers)
    assert response.status_code == 403
    assert response.json()["requiresPayment"] is True

    response = await client.get(f"/payments/payment-details/{auction_id}", headers=bidder_headers)
    assert response.json()["paymentDetails"]["initialPaymentAmount"] == 100

    fee_body = {"auctionId": auction_id, "paymentScreenshot": "https://cdn.example.com/fee.png"}
    response = await client.post("/payments/submit-payment", json=fee_body, headers=bidder_headers)
    assert response.status_code == 201
    fee_id = response.json()["paymentRequest"]["id"]

    response = await client.post("/payments/submit-payment", json=fee_body, headers=bidder_headers)
    assert response.status_code == 409

    response = await client.get("/admin/payments/payment-requests?status=pending", headers=admin_headers)
    data = response.json()
    assert [p["id"] for p in data["paymentRequests"]] == [fee_id]
    assert data["counts"]["pending"] == 1
    assert data["pagination"]["totalRecords"] == 1

    response = await client.post(
        f"/admin/payments/payment-requests/{fee_id}/approve",
        json={"adminNotes": "Fee received"},
        headers=admin_headers,
    )
    assert response.status_code == 200
    assert response.json()["paymentRequest"]["verificationStatus"] == "approved"

    response = await client.get(f"/payments/payment-status/{auction_id}", headers=bidder_headers)
    assert response.json()["canBid"] is True

    response = await client.post(f"/auctions/{auction_id}/bid", json={"amount": 250}, headers=bidder_headers)
    assert response.status_code == 200

    await finish_auction(session, auction_id)

    # Доплата победителя и раскрытие телефона
    response = await client.get(f"/auctions/{auction_id}/contacts", headers=bidder_headers)
    assert response.json()["counterparty"]["phone"] is None

    winner_body = {"auctionId": auction_id, "paymentScreenshot": "https://cdn.example.com/receipt.png"}
    response = await client.post("/payments/submit-winner-payment", json=winner_body, headers=bidder_headers)
    assert response.status_code == 201
    assert response.json()["paymentRequest"]["paymentAmount"] == 150
    winner_payment_id = response.json()["paymentRequest"]["id"]

    response = await client.post(
        f"/admin/payments/payment-requests/{winner_payment_id}/reject",
        json={"adminNotes": ""},
        headers=admin_headers,
    )
    assert response.status_code == 400

    response = await client.post(
        f"/admin/payments/payment-requests/{winner_payment_id}/approve",
        headers=admin_headers,
    )
    assert response.status_code == 200

    response = await client.post(
        f"/admin/payments/payment-requests/{winner_payment_id}/reject",
        json={"adminNotes": "Too late"},
        headers=admin_headers,
    )
    assert response.status_code == 409

    response = await client.get(f"/auctions/{auction_id}/contacts", headers=bidder_headers)
    assert response.json()["counterparty"]["phone"] == seller.phone

    response = await client.get(f"/payments/winner-payment-status/{auction_id}", headers=seller_headers)
    data = response.json()
    assert data["isAuctionCreator"] is True
    assert data["winnerPayment"]["status"] == "approved"

    response = await client.get("/auctions/user/winner-notifications", headers=bidder_headers)
    notifications = response.json()["notifications"]
    assert notifications[0]["seller"]["phone"] == seller.phone

    response = await client.get(f"/admin/payments/payment-requests/{winner_payment_id}", headers=admin_headers)
    detail = response.json()["paymentRequest"]
    assert detail["user"]["id"] == bidder.id
    assert detail["auction"]["seller"]["id"] == seller.id
    assert detail["verifiedBy"]["id"] == admin.id


async def test_admin_suspends_user(client, bidder, admin):
    response = await client.put(f"/admin/users/{bidder.id}/suspend", headers=auth_headers(admin))
    assert response.status_code == 200
    assert response.json()["user"]["isSuspended"] is True

    response = await client.post(
        "/auctions",
        json=_reserve_body(),
        headers=auth_headers(bidder),
    )
    assert response.status_code == 403

    response = await client.get("/admin/users?search=bea", headers=auth_headers(admin))
    assert [u["id"] for u in response.json()["users"]] == [bidder.id]


async def test_seller_lifecycle_routes(client, seller, bidder):
    seller_headers = auth_headers(seller)
    body = _reserve_body(auctionType="english")
    del body["minimumPrice"]
    del body["certificates"]
    response = await client.post("/auctions", json=body, headers=seller_headers)
    auction_id = response.json()["auction"]["id"]

    response = await client.put(f"/auctions/{auction_id}", json={"title": "Too late"}, headers=seller_headers)
    assert response.status_code == 400
    assert response.json() == {"message": "Only upcoming auctions can be updated"}

    new_end = (utcnow() + timedelta(days=2)).isoformat()
    response = await client.put(
        f"/auctions/{auction_id}/endtime", json={"endsAt": new_end}, headers=auth_headers(bidder)
    )
    assert response.status_code == 403

    response = await client.put(f"/auctions/{auction_id}/endtime", json={"endsAt": new_end}, headers=seller_headers)
    assert response.status_code == 200
    assert response.json()["auction"]["status"] == "active"

    await client.post(f"/auctions/{auction_id}/bid", json={"amount": 210}, headers=auth_headers(bidder))

    response = await client.post(f"/auctions/{auction_id}/force-end", headers=seller_headers)
    assert response.status_code == 200
    assert response.json()["auction"]["status"] == "ended"
    assert response.json()["auction"]["winnerId"] == bidder.id

    response = await client.post(f"/auctions/{auction_id}/force-end", headers=seller_headers)
    assert response.status_code == 400


async def test_auction_request_stats_route(client, seller, admin):
    await client.post("/auctions", json=_reserve_body(), headers=auth_headers(seller))

    response = await client.get("/admin/auction-requests/stats", headers=auth_headers(admin))
    assert response.status_code == 200
    assert response.json() == {"pending": 1, "approved": 0, "rejected": 0, "total": 1}
