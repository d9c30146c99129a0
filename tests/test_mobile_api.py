from __future__ import annotations

from io import BytesIO

from syndic.core.extensions import db
from syndic.core.models import (
    Complaint,
    Expense,
    ExpenseStatus,
    Incident,
    IncidentStatus,
    Profile,
    ProfileResidence,
    User,
)

SYNDIC = "syndic@syndic.local"
RESIDENT = "resident@syndic.local"
GUARD = "guard@syndic.local"
NEIGHBOUR = "omar.lahlou@syndic.local"


def test_requires_bearer_token(client):
    response = client.get("/api/mobile/dashboard")
    assert response.status_code == 401
    assert response.get_json() == {"success": False, "error": "Unauthorized"}


def test_rejects_tampered_token(client, mobile_headers):
    headers = mobile_headers(RESIDENT)
    headers["Authorization"] += "x"
    response = client.get("/api/mobile/dashboard", headers=headers)
    assert response.status_code == 401
    assert response.get_json()["error"] == "Invalid token"


def test_cors_headers_on_preflight(client):
    response = client.options("/api/mobile/fees")
    assert response.status_code == 200
    assert response.headers["Access-Control-Allow-Origin"] == "*"
    assert "Authorization" in response.headers["Access-Control-Allow-Headers"]


def test_cors_headers_on_error_responses(client, mobile_headers):
    unauthorized = client.get("/api/mobile/fees")
    assert unauthorized.status_code == 401
    assert unauthorized.headers["Access-Control-Allow-Origin"] == "*"

    forbidden = client.get("/api/mobile/payments/residents", headers=mobile_headers(RESIDENT))
    assert forbidden.status_code == 403
    assert forbidden.headers["Access-Control-Allow-Origin"] == "*"

    invalid = client.post("/api/mobile/incidents", json={"title": "x"}, headers=mobile_headers(RESIDENT))
    assert invalid.status_code == 400
    assert invalid.headers["Access-Control-Allow-Origin"] == "*"


def test_check_email(client):
    known = client.post("/api/mobile/auth/check-email", json={"email": "Resident@syndic.local"}).get_json()
    assert known["data"] == {"exists": True, "role": "resident", "has_password": True}

    newcomer = client.post("/api/mobile/auth/check-email", json={"email": "nouveau@syndic.local"}).get_json()
    assert newcomer["data"]["has_password"] is False

    unknown = client.post("/api/mobile/auth/check-email", json={"email": "nobody@example.com"}).get_json()
    assert unknown["data"] == {"exists": False, "role": None}


def test_otp_sign_in_verifies_newcomer(app, client):
    response = client.post("/api/mobile/auth/resend-otp", json={"email": "nouveau@syndic.local"})
    assert response.status_code == 200
    assert response.get_json()["data"] == {"email_sent": False}

    with app.app_context():
        user = User.query.filter_by(email="nouveau@syndic.local").first()
        code = db.session.get(Profile, user.id).resident_onboarding_code
    assert code

    wrong = client.post("/api/mobile/auth/verify-otp", json={"email": "nouveau@syndic.local", "code": "XXXXXX"})
    assert wrong.status_code == 400
    assert wrong.get_json()["error"] == "Invalid or expired code"

    response = client.post(
        "/api/mobile/auth/verify-otp", json={"email": "nouveau@syndic.local", "code": code.lower()}
    )
    assert response.status_code == 200
    data = response.get_json()["data"]
    assert data["profile"]["verified"] is True
    assert data["profile"]["email_verified"] is True

    with app.app_context():
        link = ProfileResidence.query.filter_by(profile_id=data["userId"]).first()
        assert link.verified is True
        assert db.session.get(Profile, data["userId"]).resident_onboarding_code is None

    dashboard = client.get("/api/mobile/dashboard", headers={"Authorization": f"Bearer {data['token']}"})
    assert dashboard.status_code == 200
    assert dashboard.get_json()["data"]["stats"]["totalPayments"] == 0


def test_resend_otp_unknown_email(client):
    response = client.post("/api/mobile/auth/resend-otp", json={"email": "nobody@example.com"})
    assert response.status_code == 404
    assert response.get_json()["error"] == "No account found for this email"


def test_staff_dashboard(client, mobile_headers):
    body = client.get("/api/mobile/dashboard", headers=mobile_headers(SYNDIC)).get_json()
    assert body["success"] is True
    assert body["data"]["fillRate"] == 47
    assert body["data"]["cashOnHand"] == 400.0
    assert body["data"]["residence"]["name"] == "Résidence Al Amal"


def test_resident_sees_only_own_fees(client, mobile_headers):
    body = client.get("/api/mobile/fees", headers=mobile_headers(RESIDENT)).get_json()
    assert {fee["apartment_number"] for fee in body["data"]} == {"A1"}
    assert len(body["data"]) == 3

    overdue = client.get("/api/mobile/fees?status=overdue", headers=mobile_headers(RESIDENT)).get_json()
    assert [fee["title"] for fee in overdue["data"]] == ["Amende parking"]


def test_resident_cannot_create_fee(client, mobile_headers):
    response = client.post(
        "/api/mobile/fees",
        json={"apartment_number": "A1", "title": "x", "amount": "10", "due_date": "2030-01-01"},
        headers=mobile_headers(RESIDENT),
    )
    assert response.status_code == 403
    assert response.get_json()["error"] == "Only syndics can create fees"


def test_syndic_creates_fee(client, mobile_headers):
    response = client.post(
        "/api/mobile/fees",
        json={"apartment_number": "a4", "title": "Clé boîte aux lettres", "amount": "40", "due_date": "2030-01-01"},
        headers=mobile_headers(SYNDIC),
    )
    assert response.status_code == 201
    data = response.get_json()["data"]
    assert data["apartment_number"] == "A4"
    assert data["amount"] == 40.0
    assert data["status"] == "unpaid"


def test_balances_by_role(client, mobile_headers):
    staff = client.get("/api/mobile/payments/balances", headers=mobile_headers(SYNDIC)).get_json()
    assert staff["data"] == {"cashOnHand": 400.0, "bankBalance": 400.0, "total": 800.0}

    unit = client.get("/api/mobile/payments/balances", headers=mobile_headers(RESIDENT)).get_json()
    assert unit["data"]["total_outstanding"] == 650.0
    assert unit["data"]["resident"]["full_name"] == "Yassine Alaoui"


def test_syndic_records_payment_from_mobile(client, mobile_headers):
    response = client.post(
        "/api/mobile/payments",
        json={"apartment_number": "A3", "amount": "400", "method": "cash"},
        headers=mobile_headers(SYNDIC),
    )
    assert response.status_code == 201
    data = response.get_json()["data"]
    assert data["status"] == "verified"
    assert data["receipt_number"].startswith("R-")


def test_payment_residents_is_syndic_only(client, mobile_headers):
    assert client.get("/api/mobile/payments/residents", headers=mobile_headers(RESIDENT)).status_code == 403
    body = client.get("/api/mobile/payments/residents", headers=mobile_headers(SYNDIC)).get_json()
    assert [row["apartment_number"] for row in body["data"]] == ["A1", "A2", "A3", "A4"]


def test_incident_status_change_is_syndic_only(app, client, mobile_headers):
    with app.app_context():
        incident_id = Incident.query.filter_by(title="Fuite d'eau parking").first().id

    denied = client.patch(
        f"/api/mobile/incidents/{incident_id}", json={"status": "resolved"}, headers=mobile_headers(RESIDENT)
    )
    assert denied.status_code == 403
    assert denied.get_json()["error"] == "Only the syndic can change the incident status"

    allowed = client.patch(
        f"/api/mobile/incidents/{incident_id}", json={"status": "resolved"}, headers=mobile_headers(SYNDIC)
    )
    assert allowed.status_code == 200
    assert allowed.get_json()["data"]["status"] == "resolved"
    with app.app_context():
        assert db.session.get(Incident, incident_id).status == IncidentStatus.RESOLVED


def test_resident_reports_incident(client, mobile_headers):
    response = client.post(
        "/api/mobile/incidents",
        json={"title": "Porte garage bloquée", "description": "La porte ne s'ouvre plus"},
        headers=mobile_headers(RESIDENT),
    )
    assert response.status_code == 201
    assert response.get_json()["data"]["status"] == "open"

    missing = client.post("/api/mobile/incidents", json={"title": "Sans description"}, headers=mobile_headers(RESIDENT))
    assert missing.status_code == 400


def test_guard_cannot_list_complaints(client, mobile_headers):
    response = client.get("/api/mobile/complaints", headers=mobile_headers(GUARD))
    assert response.status_code == 403


def test_expense_status_transitions(app, client, mobile_headers):
    with app.app_context():
        expense_id = Expense.query.filter_by(description="Peinture cage d'escalier").first().id

    approved = client.put(
        f"/api/mobile/expenses/{expense_id}", json={"status": "approved"}, headers=mobile_headers(SYNDIC)
    )
    assert approved.get_json()["data"]["status"] == "approved"

    paid = client.put(
        f"/api/mobile/expenses/{expense_id}",
        json={"status": "paid", "paid_from": "bank"},
        headers=mobile_headers(SYNDIC),
    )
    assert paid.get_json()["data"]["status"] == "paid"
    with app.app_context():
        assert db.session.get(Expense, expense_id).status == ExpenseStatus.PAID

    balances = client.get("/api/mobile/payments/balances", headers=mobile_headers(SYNDIC)).get_json()
    assert balances["data"]["bankBalance"] == -800.0


def test_profile_update(client, mobile_headers):
    response = client.put(
        "/api/mobile/profile",
        json={"full_name": "Yassine El Alaoui", "phone_number": "+212611111111"},
        headers=mobile_headers(RESIDENT),
    )
    assert response.status_code == 200
    assert response.get_json()["data"]["full_name"] == "Yassine El Alaoui"

    roles = client.get("/api/mobile/profile/roles", headers=mobile_headers(RESIDENT)).get_json()
    assert roles["data"]["role"] == "resident"
    assert roles["data"]["residences"][0]["apartment_number"] == "A1"


def _complaint_id(app) -> int:
    with app.app_context():
        return Complaint.query.filter_by(title="Bruit nocturne").first().id


def test_complaint_evidence_upload_and_visibility(app, client, mobile_headers):
    complaint_id = _complaint_id(app)
    response = client.post(
        f"/api/mobile/complaints/{complaint_id}/evidence",
        data={"file": (BytesIO(b"\xff\xd8\xff photo"), "voiture.jpg")},
        content_type="multipart/form-data",
        headers=mobile_headers(RESIDENT),
    )
    assert response.status_code == 201
    data = response.get_json()["data"]
    assert data["file_type"] == "image"
    assert data["file_name"] == "voiture.jpg"
    assert data["file_url"].startswith("storage/complaints/")

    syndic_view = client.get(f"/api/mobile/complaints/{complaint_id}/evidence", headers=mobile_headers(SYNDIC))
    assert [item["file_name"] for item in syndic_view.get_json()["data"]] == ["voiture.jpg"]

    target_view = client.get(f"/api/mobile/complaints/{complaint_id}/evidence", headers=mobile_headers(NEIGHBOUR))
    assert target_view.status_code == 403


def test_complaint_evidence_rules(app, client, mobile_headers):
    complaint_id = _complaint_id(app)
    wrong_type = client.post(
        f"/api/mobile/complaints/{complaint_id}/evidence",
        data={"file": (BytesIO(b"MZ"), "virus.exe")},
        content_type="multipart/form-data",
        headers=mobile_headers(RESIDENT),
    )
    assert wrong_type.status_code == 400
    assert wrong_type.get_json()["error"].startswith("Evidence must be one of")

    missing = client.post(
        f"/api/mobile/complaints/{complaint_id}/evidence", data={}, headers=mobile_headers(RESIDENT)
    )
    assert missing.status_code == 400
    assert missing.get_json()["error"] == "Evidence is required"

    not_complainant = client.post(
        f"/api/mobile/complaints/{complaint_id}/evidence",
        data={"file": (BytesIO(b"ID3"), "reponse.mp3")},
        content_type="multipart/form-data",
        headers=mobile_headers(NEIGHBOUR),
    )
    assert not_complainant.status_code == 403


def test_expense_attachment_upload(client, mobile_headers):
    response = client.post(
        "/api/mobile/expenses/upload",
        data={"file": (BytesIO(b"%PDF-1.4 facture"), "facture.pdf")},
        content_type="multipart/form-data",
        headers=mobile_headers(SYNDIC),
    )
    assert response.status_code == 201
    url = response.get_json()["data"]["url"]
    assert url.startswith("storage/expenses/") and url.endswith("facture.pdf")

    created = client.post(
        "/api/mobile/expenses",
        json={"description": "Nettoyage vitres", "category": "cleaning", "amount": "150", "attachment_url": url},
        headers=mobile_headers(SYNDIC),
    )
    assert created.status_code == 201
    assert created.get_json()["data"]["attachment_url"] == url

    denied = client.post(
        "/api/mobile/expenses/upload",
        data={"file": (BytesIO(b"%PDF-1.4"), "facture.pdf")},
        content_type="multipart/form-data",
        headers=mobile_headers(RESIDENT),
    )
    assert denied.status_code == 403
