import logging

import pytest

from test.config import OWNER_EMAIL, SIGNATURE_IMAGE, SIGNER_A, SIGNER_B
from test.utils import add_user, token_from_link


CONTRACT_PAYLOAD = {
    "title": "Office lease",
    "description": "Lease of the third floor",
    "document_key": "contracts/office-lease.pdf",
    "signers": [{"email": SIGNER_A, "name": "Alice Archer"}, {"email": SIGNER_B}],
}


@pytest.fixture
def contract_id(client, owner_headers):
    response = client.post("/contracts", json=CONTRACT_PAYLOAD, headers=owner_headers)
    assert response.status_code == 201, response.text
    return response.json()["id"]


@pytest.fixture
def sent_id(client, owner_headers, contract_id):
    response = client.post(f"/contracts/{contract_id}/send", headers=owner_headers)
    assert response.status_code == 200, response.text
    return contract_id


def link_token(transport, email):
    return token_from_link(transport.to(email)[-1]["text"])


def signature_body(token, email, name="Signer"):
    return {
        "token": token,
        "signer_name": name,
        "signer_email": email,
        "signature_image": SIGNATURE_IMAGE,
    }


def test_health_check(client):
    response = client.get("/")
    logging.info(response.json())
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_current_user(client, owner_headers):
    response = client.get("/user", headers=owner_headers)

    assert response.status_code == 200
    assert response.json()["email_address"] == OWNER_EMAIL


def test_owner_routes_require_access_token(client, tokens):
    assert client.get("/user").status_code == 401
    assert client.post("/contracts", json=CONTRACT_PAYLOAD).status_code == 401

    signature_token = tokens.issue_signature_token("s", "c", SIGNER_A)
    response = client.get("/user", headers={"Authorization": f"Bearer {signature_token}"})
    assert response.status_code == 401


def test_create_contract(client, owner_headers):
    response = client.post("/contracts", json=CONTRACT_PAYLOAD, headers=owner_headers)

    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "DRAFT"
    assert [s["email"] for s in body["signers"]] == [SIGNER_A, SIGNER_B]
    assert body["signers"][0]["name"] == "Alice Archer"


def test_create_contract_validation(client, owner_headers):
    duplicate = dict(CONTRACT_PAYLOAD, signers=[{"email": SIGNER_A}, {"email": SIGNER_A.upper()}])
    assert client.post("/contracts", json=duplicate, headers=owner_headers).status_code == 400

    no_signers = dict(CONTRACT_PAYLOAD, signers=[])
    assert client.post("/contracts", json=no_signers, headers=owner_headers).status_code == 422

    bad_email = dict(CONTRACT_PAYLOAD, signers=[{"email": "not-an-email"}])
    assert client.post("/contracts", json=bad_email, headers=owner_headers).status_code == 422


def test_other_owner_cannot_read_contract(client, tokens, session_factory, contract_id):
    stranger = add_user(session_factory, "mallory@example.com")
    headers = {"Authorization": f"Bearer {tokens.issue_access_token(stranger.id, stranger.email_address)}"}

    assert client.get(f"/contracts/{contract_id}", headers=headers).status_code == 403
    assert client.post(f"/contracts/{contract_id}/send", headers=headers).status_code == 403
    assert client.get(f"/contracts/{contract_id}/events", headers=headers).status_code == 403


def test_unknown_contract(client, owner_headers):
    assert client.get("/contracts/missing", headers=owner_headers).status_code == 404


def test_full_signing_flow(client, owner_headers, transport, sent_id):
    token_a = link_token(transport, SIGNER_A)
    token_b = link_token(transport, SIGNER_B)

    page = client.get(f"/sign/{sent_id}", params={"token": token_a})
    assert page.status_code == 200
    assert page.json()["signer"]["email"] == SIGNER_A
    assert page.json()["owner"]["email_address"] == OWNER_EMAIL

    first = client.post(f"/sign/{sent_id}", json=signature_body(token_a, SIGNER_A, "Alice Archer"))
    assert first.status_code == 200
    assert first.json()["status"] == "IN_PROGRESS"

    second = client.post(f"/sign/{sent_id}", json=signature_body(token_b, SIGNER_B, "Bob Baker"))
    assert second.status_code == 200
    assert second.json()["status"] == "SIGNED"

    contract = client.get(f"/contracts/{sent_id}", headers=owner_headers).json()
    assert contract["status"] == "SIGNED"
    assert all(s["signed"] for s in contract["signers"])
    assert len([m for m in transport.sent if m["subject"].startswith("Contract signed")]) == 3


def test_sending_twice_conflicts(client, owner_headers, sent_id):
    response = client.post(f"/contracts/{sent_id}/send", headers=owner_headers)

    assert response.status_code == 409


def test_expired_link(client, clock, transport, sent_id):
    token = link_token(transport, SIGNER_A)
    clock.advance(hours=2)

    response = client.post(f"/sign/{sent_id}", json=signature_body(token, SIGNER_A))

    assert response.status_code == 401
    assert response.json()["detail"] == "This signature link has expired, please request a new link"


def test_mismatched_email(client, transport, sent_id):
    token = link_token(transport, SIGNER_A)

    response = client.post(f"/sign/{sent_id}", json=signature_body(token, SIGNER_B))

    assert response.status_code == 401


def test_token_for_other_contract(client, owner_headers, transport, sent_id):
    other = client.post("/contracts", json=dict(CONTRACT_PAYLOAD, title="Other"), headers=owner_headers).json()
    token = link_token(transport, SIGNER_A)

    assert client.get(f"/sign/{other['id']}", params={"token": token}).status_code == 401


def test_decline_then_sign_is_finalized(client, transport, sent_id):
    token_a = link_token(transport, SIGNER_A)
    token_b = link_token(transport, SIGNER_B)

    declined = client.post(f"/sign/{sent_id}/decline", json={"token": token_a, "reason": "Wrong rent"})
    assert declined.status_code == 200
    assert declined.json()["status"] == "DECLINED"

    response = client.post(f"/sign/{sent_id}", json=signature_body(token_b, SIGNER_B))
    assert response.status_code == 409
    assert "already finalized" in response.json()["detail"]


def test_remind_signer(client, owner_headers, transport, sent_id):
    contract = client.get(f"/contracts/{sent_id}", headers=owner_headers).json()
    signer_id = contract["signers"][1]["id"]

    response = client.post(f"/contracts/{sent_id}/signers/{signer_id}/remind", headers=owner_headers)

    assert response.status_code == 202
    reminder = transport.to(SIGNER_B)[-1]
    assert reminder["subject"] == "Reminder: Signature requested: Office lease"
    fresh = token_from_link(reminder["text"])
    assert client.get(f"/sign/{sent_id}", params={"token": fresh}).status_code == 200


def test_cancel_contract(client, owner_headers, contract_id):
    response = client.post(
        f"/contracts/{contract_id}/cancel", json={"reason": "No longer needed"}, headers=owner_headers,
    )
    assert response.status_code == 200
    assert response.json()["status"] == "CANCELLED"

    again = client.post(f"/contracts/{contract_id}/cancel", headers=owner_headers)
    assert again.status_code == 409


def test_contract_events(client, owner_headers, transport, sent_id):
    token = link_token(transport, SIGNER_A)
    client.get(
        f"/sign/{sent_id}",
        params={"token": token},
        headers={"X-Forwarded-For": "203.0.113.9, 10.0.0.1", "User-Agent": "SignerBrowser/1.0"},
    )

    response = client.get(f"/contracts/{sent_id}/events", headers=owner_headers)
    assert response.status_code == 200
    types = [e["type"] for e in response.json()["events"]]
    assert types == ["CONTRACT_CREATED", "CONTRACT_SENT", "EMAIL_SENT", "EMAIL_SENT", "SIGNER_VIEWED"]

    filtered = client.get(
        f"/contracts/{sent_id}/events",
        params=[("types", "SIGNER_VIEWED"), ("types", "CONTRACT_SENT")],
        headers=owner_headers,
    ).json()["events"]
    assert [e["type"] for e in filtered] == ["CONTRACT_SENT", "SIGNER_VIEWED"]
    assert filtered[1]["ip_address"] == "203.0.113.9"
    assert filtered[1]["user_agent"] == "SignerBrowser/1.0"


def test_request_id_header(client):
    response = client.get("/")

    assert "X-Request-ID" in response.headers
