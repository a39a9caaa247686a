"""
Integration tests: full marketplace flows through the HTTP API.

Request -> bids -> acceptance -> booking -> completion -> payment release -> wallet.
"""
import pytest
from fastapi.testclient import TestClient

from easyserve.api.app import app


client = TestClient(app)


def signup(name, role="user", category_id=None):
    body = {
        "name": name,
        "email": f"{name.lower()}@example.com",
        "password": "secret123",
        "role": role,
    }
    if category_id:
        body["categoryId"] = category_id
    response = client.post("/auth/signup", json=body)
    assert response.status_code == 201, response.text
    data = response.json()
    return data["user"]["id"], {"Authorization": f"Bearer {data['token']}"}


@pytest.fixture
def marketplace():
    """A client, a category, and two providers in it."""
    client_id, client_headers = signup("Alice")
    response = client.post("/categories", json={"name": "Plumbing", "icon": "water"}, headers=client_headers)
    assert response.status_code == 201
    category_id = response.json()["id"]

    p1_id, p1_headers = signup("Bob", role="provider", category_id=category_id)
    p2_id, p2_headers = signup("Carol", role="provider", category_id=category_id)
    return {
        "category_id": category_id,
        "client": (client_id, client_headers),
        "p1": (p1_id, p1_headers),
        "p2": (p2_id, p2_headers),
    }


def create_request(headers, category_id, **pricing):
    body = {"categoryId": category_id, "description": "Leaking pipe under the sink", **pricing}
    response = client.post("/service-requests", json=body, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["request"]


@pytest.mark.integration
def test_bidding_scenario(marketplace):
    """Two providers bid; the client takes the cheaper one."""
    client_id, client_headers = marketplace["client"]
    p1_id, p1_headers = marketplace["p1"]
    p2_id, p2_headers = marketplace["p2"]

    request = create_request(client_headers, marketplace["category_id"], requestType="bidding")
    assert request["status"] == "open"
    assert request["fixedAmount"] is None

    response = client.post(
        "/service-requests/bid",
        json={"serviceRequestId": request["id"], "proposedAmount": 500, "note": "Today"},
        headers=p1_headers,
    )
    assert response.status_code == 201
    assert response.json()["bid"]["status"] == "pending"

    response = client.post(
        "/service-requests/bid",
        json={"serviceRequestId": request["id"], "proposedAmount": 450},
        headers=p2_headers,
    )
    assert response.status_code == 201
    p2_bid_id = response.json()["bid"]["id"]

    bids = client.get(f"/service-requests/{request['id']}/bids", headers=client_headers).json()
    assert [(b["providerId"], b["proposedAmount"]) for b in bids] == [(p2_id, 450), (p1_id, 500)]

    response = client.post("/service-requests/accept-bid", json={"bidId": p2_bid_id}, headers=client_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["request"]["status"] == "assigned"
    assert data["request"]["assignedProviderId"] == p2_id
    assert data["request"]["finalAmount"] == 450
    assert data["booking"]["agreedPrice"] == 450
    assert data["booking"]["bidId"] == p2_bid_id
    assert data["booking"]["status"] == "confirmed"

    bids = client.get(f"/service-requests/{request['id']}/bids", headers=client_headers).json()
    assert {b["providerId"]: b["status"] for b in bids} == {p2_id: "accepted", p1_id: "rejected"}

    p1_bid_id = next(b["id"] for b in bids if b["providerId"] == p1_id)
    response = client.post("/service-requests/accept-bid", json={"bidId": p1_bid_id}, headers=client_headers)
    assert response.status_code == 400
    assert response.json()["error"] == "invalid_state"

    assert len(client.get("/bookings", params={"providerId": p2_id}, headers=p2_headers).json()) == 1
    assert len(client.get("/bookings", headers=client_headers).json()) == 1
    assert client.get("/bookings", headers=p1_headers).json() == []
    # Filters never widen the caller's view
    assert client.get("/bookings", params={"providerId": p2_id}, headers=p1_headers).json() == []

    assigned = client.get(
        "/service-requests",
        params={"userId": client_id, "status": "assigned,in-progress"},
        headers=client_headers,
    ).json()
    assert [r["id"] for r in assigned] == [request["id"]]


@pytest.mark.integration
def test_duplicate_bid_returns_conflict(marketplace):
    _, client_headers = marketplace["client"]
    _, p1_headers = marketplace["p1"]
    request = create_request(client_headers, marketplace["category_id"], requestType="bidding")

    body = {"serviceRequestId": request["id"], "proposedAmount": 300}
    assert client.post("/service-requests/bid", json=body, headers=p1_headers).status_code == 201
    response = client.post("/service-requests/bid", json=body, headers=p1_headers)

    assert response.status_code == 409
    assert response.json()["message"] == "You have already placed a bid"


@pytest.mark.integration
def test_settlement_scenario(marketplace):
    """Fixed-price job runs to payment release and the provider withdraws."""
    _, client_headers = marketplace["client"]
    p1_id, p1_headers = marketplace["p1"]

    request = create_request(client_headers, marketplace["category_id"], requestType="fixed", fixedAmount=1000)
    response = client.post("/service-requests/accept-fixed", json={"requestId": request["id"]}, headers=p1_headers)
    assert response.status_code == 200
    booking = response.json()["booking"]
    assert booking["bidId"] is None
    assert booking["agreedPrice"] == 1000

    # Client cannot release before the provider has finished
    response = client.post(f"/bookings/{booking['id']}/confirm-release", json={"rating": 5}, headers=client_headers)
    assert response.status_code == 400
    assert client.get("/wallets/me", headers=p1_headers).json()["balance"] == 0

    response = client.post(f"/bookings/{booking['id']}/start", headers=p1_headers)
    assert response.json()["booking"]["status"] == "in-progress"
    assert client.get(f"/service-requests/{request['id']}", headers=client_headers).json()["status"] == "in-progress"

    response = client.post(f"/bookings/{booking['id']}/provider-complete", headers=p1_headers)
    assert response.json()["booking"]["completedByProvider"] is True

    response = client.post(
        f"/bookings/{booking['id']}/confirm-release",
        json={"rating": 5, "review": "Fixed in an hour"},
        headers=client_headers,
    )
    assert response.status_code == 200
    data = response.json()
    assert data["walletUpdated"] is True
    assert data["booking"]["status"] == "payment-released"
    assert data["booking"]["userRating"] == 5

    wallet = client.get("/wallets/me", headers=p1_headers).json()
    assert wallet["balance"] == 1000
    assert wallet["totalEarned"] == 1000
    assert len(wallet["transactions"]) == 1
    assert wallet["transactions"][0]["type"] == "credit"
    assert wallet["transactions"][0]["reference"] == f"Booking #{booking['id'][-6:]}"
    assert wallet["transactions"][0]["bookingId"] == booking["id"]

    response = client.post(f"/bookings/{booking['id']}/confirm-release", json={"rating": 5}, headers=client_headers)
    assert response.status_code == 409
    assert client.get("/wallets/me", headers=p1_headers).json()["balance"] == 1000

    assert client.get(f"/service-requests/{request['id']}", headers=client_headers).json()["status"] == "completed"

    stats = client.get(f"/bookings/provider/{p1_id}/stats", headers=p1_headers).json()
    assert stats == {"providerId": p1_id, "totalBookings": 1, "completedJobs": 1, "averageRating": 5.0}

    response = client.post("/wallets/me/withdraw", json={"amount": 1500}, headers=p1_headers)
    assert response.status_code == 400
    assert response.json()["error"] == "insufficient_funds"

    response = client.post("/wallets/me/withdraw", json={"amount": 400}, headers=p1_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["wallet"]["balance"] == 600
    assert data["transaction"]["reference"] == "withdrawal"
    assert data["transaction"]["status"] == "withdrawn"


@pytest.mark.integration
def test_booking_messages_and_status(marketplace):
    _, client_headers = marketplace["client"]
    _, p1_headers = marketplace["p1"]
    _, p2_headers = marketplace["p2"]

    request = create_request(client_headers, marketplace["category_id"], requestType="fixed", fixedAmount=300)
    booking = client.post(
        "/bookings", json={"requestId": request["id"]}, headers=p1_headers
    ).json()["booking"]

    client.post(f"/bookings/{booking['id']}/messages", json={"message": "Ring the bell"}, headers=client_headers)
    response = client.post(f"/bookings/{booking['id']}/messages", json={"message": "On my way"}, headers=p1_headers)
    assert response.status_code == 200
    assert [m["text"] for m in response.json()["messages"]] == ["Ring the bell", "On my way"]

    response = client.get(f"/bookings/{booking['id']}/messages", headers=p2_headers)
    assert response.status_code == 403

    response = client.put(f"/bookings/{booking['id']}/status", json={"status": "bogus"}, headers=client_headers)
    assert response.status_code == 400
    assert response.json()["message"] == "Invalid status"

    response = client.post(f"/bookings/{booking['id']}/pay", headers=client_headers)
    assert response.json()["booking"]["isPaid"] is True

    response = client.put(f"/bookings/{booking['id']}/status", json={"status": "cancelled"}, headers=client_headers)
    assert response.status_code == 200
    assert response.json()["booking"]["status"] == "cancelled"
    assert client.get(f"/service-requests/{request['id']}", headers=client_headers).json()["status"] == "cancelled"


@pytest.mark.integration
def test_owner_cancels_open_request(marketplace):
    _, client_headers = marketplace["client"]
    _, p1_headers = marketplace["p1"]
    request = create_request(client_headers, marketplace["category_id"], requestType="bidding")

    response = client.post(f"/service-requests/{request['id']}/cancel", headers=p1_headers)
    assert response.status_code == 403

    response = client.post(f"/service-requests/{request['id']}/cancel", headers=client_headers)
    assert response.status_code == 200
    assert response.json()["request"]["status"] == "cancelled"


@pytest.mark.integration
def test_pricing_mismatch_rejected(marketplace):
    _, client_headers = marketplace["client"]
    body = {
        "categoryId": marketplace["category_id"],
        "description": "Assemble a wardrobe",
        "requestType": "bidding",
        "fixedAmount": 200,
    }
    response = client.post("/service-requests", json=body, headers=client_headers)

    assert response.status_code == 400
    assert response.json()["error"] == "validation_failure"


@pytest.mark.integration
def test_invalid_status_filter(marketplace):
    _, client_headers = marketplace["client"]
    response = client.get("/service-requests", params={"status": "open,sleeping"}, headers=client_headers)
    assert response.status_code == 400


@pytest.mark.integration
def test_provider_directory(marketplace):
    p1_id, _ = marketplace["p1"]

    providers = client.get("/providers", params={"categoryId": marketplace["category_id"]}).json()
    assert {p["name"] for p in providers} == {"Bob", "Carol"}

    response = client.get(f"/providers/{p1_id}")
    assert response.status_code == 200
    assert response.json()["name"] == "Bob"

    assert client.get(f"/providers/{marketplace['category_id']}").status_code == 404


@pytest.mark.integration
def test_booking_reads_need_a_party(marketplace):
    _, client_headers = marketplace["client"]
    _, p1_headers = marketplace["p1"]
    _, p2_headers = marketplace["p2"]
    request = create_request(client_headers, marketplace["category_id"], requestType="fixed", fixedAmount=300)
    booking = client.post("/bookings", json={"requestId": request["id"]}, headers=p1_headers).json()["booking"]

    assert client.get("/bookings").status_code == 401
    assert client.get(f"/bookings/{booking['id']}").status_code == 401

    response = client.get(f"/bookings/{booking['id']}", headers=p2_headers)
    assert response.status_code == 403
    assert response.json()["error"] == "forbidden"

    for headers in (client_headers, p1_headers):
        response = client.get(f"/bookings/{booking['id']}", headers=headers)
        assert response.status_code == 200
        assert response.json()["agreedPrice"] == 300


@pytest.mark.integration
def test_booking_bid_must_match_request(marketplace):
    _, client_headers = marketplace["client"]
    _, p1_headers = marketplace["p1"]
    bidding = create_request(client_headers, marketplace["category_id"], requestType="bidding")
    other = create_request(client_headers, marketplace["category_id"], requestType="bidding")
    bid = client.post(
        "/service-requests/bid",
        json={"serviceRequestId": bidding["id"], "proposedAmount": 200},
        headers=p1_headers,
    ).json()["bid"]

    response = client.post(
        "/bookings", json={"requestId": other["id"], "bidId": bid["id"]}, headers=client_headers
    )

    assert response.status_code == 400
    assert response.json()["message"] == "Bid does not belong to this service request"
    assert client.get(f"/service-requests/{bidding['id']}", headers=client_headers).json()["status"] == "bidding"
    assert client.get("/bookings", headers=client_headers).json() == []
