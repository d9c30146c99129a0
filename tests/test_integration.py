from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal
from io import BytesIO

from syndic.core.extensions import db
from syndic.core.models import (
    Complaint,
    Expense,
    ExpenseStatus,
    Fee,
    FeeStatus,
    Payment,
    PaymentStatus,
    TransactionHistory,
)


def test_dashboard_requires_login(client):
    response = client.get("/dashboard")
    assert response.status_code == 302
    assert "/auth/login" in response.headers["Location"]


def test_login_rejects_bad_password(client):
    response = client.post(
        "/auth/login",
        data={"email": "syndic@syndic.local", "password": "wrong"},
        follow_redirects=True,
    )
    assert response.status_code == 200
    assert b'name="password"' in response.data


def test_syndic_dashboard_shows_collection_rate(client, login_syndic):
    response = login_syndic()
    assert response.status_code == 200
    assert b"47%" in response.data


def test_resident_dashboard_renders(client, login_resident):
    response = login_resident()
    assert response.status_code == 200
    assert "Assemblée générale".encode() in response.data


def test_admin_lands_on_document_review(client, login_admin):
    response = login_admin()
    assert response.status_code == 200
    assert b"Nadia Tazi" in response.data


def test_tenant_isolation_on_fee_detail(app, client, login_syndic, second_residence_fee):
    login_syndic()
    response = client.get(f"/finance/fees/{second_residence_fee}")
    assert response.status_code == 404


def test_resident_cannot_open_other_resident_fee(app, client, login_resident):
    login_resident()
    with app.app_context():
        neighbour_fee = Fee.query.filter_by(apartment_number="A2").first()
    response = client.get(f"/finance/fees/{neighbour_fee.id}")
    assert response.status_code == 404


def test_fee_create_then_mark_paid(app, client, login_syndic):
    login_syndic()
    due = (date.today() + timedelta(days=15)).isoformat()
    response = client.post(
        "/finance/fees",
        data={
            "apartment_number": "A3",
            "title": "Badge parking",
            "fee_type": "one_time",
            "amount": "75.50",
            "due_date": due,
        },
        follow_redirects=True,
    )
    assert response.status_code == 200
    assert b"Badge parking" in response.data

    with app.app_context():
        fee = Fee.query.filter_by(title="Badge parking").first()
        assert fee.amount == Decimal("75.50")
        assert fee.status == FeeStatus.UNPAID
        fee_id = fee.id

    response = client.post(f"/finance/fees/{fee_id}/pay", data={"method": "cash"}, follow_redirects=True)
    assert response.status_code == 200
    assert b"Payment recorded: R-" in response.data

    with app.app_context():
        assert db.session.get(Fee, fee_id).status == FeeStatus.PAID
        payment = Payment.query.filter_by(fee_id=fee_id).first()
        assert payment.status == PaymentStatus.VERIFIED
        assert TransactionHistory.query.filter_by(reference_table="payment", reference_id=payment.id).count() == 1


def test_fee_create_rejects_unknown_apartment(client, login_syndic):
    login_syndic()
    response = client.post(
        "/finance/fees",
        data={"apartment_number": "Z9", "title": "Test", "amount": "10", "due_date": date.today().isoformat()},
        follow_redirects=True,
    )
    assert response.status_code == 200
    assert b"Resident not found in this residence" in response.data


def test_paid_fee_delete_is_refused(app, client, login_syndic):
    login_syndic()
    with app.app_context():
        paid = Fee.query.filter_by(status=FeeStatus.PAID).first()
    response = client.post(f"/finance/fees/{paid.id}/delete", follow_redirects=True)
    assert response.status_code == 200
    assert b"Paid fees cannot be deleted" in response.data


def test_cash_payment_leaves_credit(app, client, login_syndic):
    login_syndic()
    response = client.post(
        "/finance/payments/cash",
        data={"apartment_number": "A4", "amount": "500", "method": "cash"},
        follow_redirects=True,
    )
    assert response.status_code == 200
    with app.app_context():
        payment = Payment.query.filter_by(apartment_number="A4").first()
        assert payment.credit_amount == Decimal("500.00")
        assert payment.notes == "Credit: 500.00 MAD"


def test_resident_submits_transfer(app, client, login_resident):
    login_resident()
    response = client.post(
        "/finance/payments/submit",
        data={"amount": "150", "method": "bank_transfer", "notes": "Virement février"},
        follow_redirects=True,
    )
    assert response.status_code == 200
    with app.app_context():
        payment = Payment.query.filter_by(notes="Virement février").first()
        assert payment.status == PaymentStatus.PENDING
        assert payment.apartment_number == "A1"


def test_json_verify_payment(app, client, login_syndic):
    login_syndic()
    with app.app_context():
        pending = Payment.query.filter_by(status=PaymentStatus.PENDING).first()
    response = client.post(f"/api/payments/{pending.id}/verify")
    assert response.status_code == 200
    body = response.get_json()
    assert body["success"] is True
    assert body["data"]["status"] == "verified"
    assert body["data"]["receipt_number"].startswith("R-")

    again = client.post(f"/api/payments/{pending.id}/verify")
    assert again.status_code == 400
    assert again.get_json()["error"] == "Only pending payments can be verified"

    with app.app_context():
        assert Fee.query.filter_by(title="Nettoyage façade").first().status == FeeStatus.PAID


def test_json_verify_accepts_put(app, client, login_syndic):
    login_syndic()
    with app.app_context():
        pending_id = Payment.query.filter_by(status=PaymentStatus.PENDING).first().id
    response = client.put(f"/api/payments/{pending_id}/verify")
    assert response.status_code == 200
    assert response.get_json()["data"]["status"] == "verified"


def test_json_allocate_rejects_line_without_id(app, client, login_syndic):
    login_syndic()
    client.post("/finance/payments/cash", data={"apartment_number": "A4", "amount": "500", "method": "cash"})
    with app.app_context():
        payment_id = Payment.query.filter_by(apartment_number="A4").first().id

    response = client.post(
        "/api/payments/allocate",
        json={"payment_id": payment_id, "allocations": [{"type": "fee", "amount": 10}]},
    )
    assert response.status_code == 400
    assert response.get_json() == {"success": False, "error": "Invalid allocation id"}


def test_json_reject_requires_reason(app, client, login_syndic):
    login_syndic()
    with app.app_context():
        pending = Payment.query.filter_by(status=PaymentStatus.PENDING).first()
    response = client.post(f"/api/payments/{pending.id}/reject", json={})
    assert response.status_code == 400
    assert response.get_json()["success"] is False

    response = client.put(f"/api/payments/{pending.id}/reject", json={"reason": "Montant erroné"})
    assert response.status_code == 200
    assert response.get_json()["data"]["status"] == "rejected"


def test_json_verify_forbidden_for_resident(app, client, login_resident):
    login_resident()
    with app.app_context():
        pending = Payment.query.filter_by(status=PaymentStatus.PENDING).first()
    response = client.post(f"/api/payments/{pending.id}/verify")
    assert response.status_code == 403
    assert response.get_json() == {"success": False, "error": "Only syndics can verify payments"}


def test_json_api_requires_session(client):
    response = client.get("/api/financial/unit-balance")
    assert response.status_code == 401
    assert response.get_json()["success"] is False


def test_resident_forbidden_from_expenses(client, login_resident):
    login_resident()
    assert client.get("/finance/expenses").status_code == 403


def test_expense_approve_and_pay(app, client, login_syndic):
    login_syndic()
    with app.app_context():
        draft = Expense.query.filter_by(description="Peinture cage d'escalier").first()
        draft_id = draft.id

    client.post(f"/finance/expenses/{draft_id}/approve", follow_redirects=True)
    response = client.post(f"/finance/expenses/{draft_id}/pay", data={"paid_from": "bank"}, follow_redirects=True)
    assert response.status_code == 200

    with app.app_context():
        expense = db.session.get(Expense, draft_id)
        assert expense.status == ExpenseStatus.PAID
        assert TransactionHistory.query.filter_by(reference_table="expense", reference_id=draft_id).count() == 1

    body = client.get("/api/financial/reports").get_json()
    assert body["success"] is True


def test_complainant_attaches_evidence(app, client, login_resident):
    login_resident()
    with app.app_context():
        complaint_id = Complaint.query.filter_by(title="Bruit nocturne").first().id

    response = client.post(
        f"/community/complaints/{complaint_id}/evidence",
        data={"file": (BytesIO(b"ID3 audio"), "bruit-minuit.mp3")},
        content_type="multipart/form-data",
        follow_redirects=True,
    )
    assert response.status_code == 200
    assert b"bruit-minuit.mp3" in response.data

    with app.app_context():
        evidence = db.session.get(Complaint, complaint_id).evidence
        assert [(item.file_type, item.file_name) for item in evidence] == [("audio", "bruit-minuit.mp3")]


def test_expense_created_with_attachment(app, client, login_syndic):
    login_syndic()
    response = client.post(
        "/finance/expenses",
        data={
            "description": "Remplacement pompe",
            "category": "repairs",
            "amount": "640",
            "attachment": (BytesIO(b"%PDF-1.4 facture"), "facture-pompe.pdf"),
        },
        content_type="multipart/form-data",
        follow_redirects=True,
    )
    assert response.status_code == 200
    with app.app_context():
        expense = Expense.query.filter_by(description="Remplacement pompe").first()
        assert expense.attachment_url.startswith("storage/expenses/")
        assert expense.attachment_url.endswith("facture-pompe.pdf")


def test_guard_cannot_open_complaints(client, login_guard):
    login_guard()
    response = client.get("/community/complaints", follow_redirects=True)
    assert response.status_code == 403


def test_language_switch(client, login_syndic):
    login_syndic()
    response = client.post("/auth/lang", data={"lang": "en", "next": "/dashboard"}, follow_redirects=True)
    assert response.status_code == 200
    assert b"Collection rate" in response.data
