from __future__ import annotations

from io import BytesIO
from pathlib import Path

from syndic.core.extensions import db
from syndic.core.models import (
    DocumentSubmission,
    Profile,
    Residence,
    SubmissionStatus,
    User,
)

PENDING_SYNDIC = "nouveau.syndic@syndic.local"


def _login_pending_syndic(client):
    return client.post(
        "/auth/login",
        data={"email": PENDING_SYNDIC, "password": "syndic123"},
        follow_redirects=True,
    )


def _pending_submission_id(app) -> int:
    with app.app_context():
        return DocumentSubmission.query.filter_by(status=SubmissionStatus.PENDING).first().id


def _vacant_residence_id(app) -> int:
    with app.app_context():
        return Residence.query.filter_by(name="Résidence Yasmine").first().id


def test_documents_page_lists_pending(client, login_admin):
    login_admin()
    response = client.get("/admin/documents")
    assert response.status_code == 200
    assert b"Nadia Tazi" in response.data
    assert "Résidence Yasmine".encode() in response.data


def test_documents_page_is_admin_only(client, login_syndic):
    login_syndic()
    assert client.get("/admin/documents").status_code == 403


def test_approve_assigns_vacant_residence(app, client, login_admin):
    login_admin()
    submission_id = _pending_submission_id(app)
    residence_id = _vacant_residence_id(app)

    response = client.post(
        f"/admin/documents/{submission_id}/review",
        data={"action": "approve", "residence_id": str(residence_id)},
        follow_redirects=True,
    )
    assert response.status_code == 200
    assert b"Submission approved" in response.data

    with app.app_context():
        submission = db.session.get(DocumentSubmission, submission_id)
        assert submission.status == SubmissionStatus.APPROVED
        assert submission.assigned_residence_id == residence_id
        assert db.session.get(Residence, residence_id).syndic_user_id == submission.user_id
        profile = db.session.get(Profile, submission.user_id)
        assert profile.verified is True
        assert profile.onboarding_completed is True


def test_approve_requires_residence(app, client, login_admin):
    login_admin()
    submission_id = _pending_submission_id(app)
    response = client.post(
        f"/admin/documents/{submission_id}/review",
        data={"action": "approve"},
        follow_redirects=True,
    )
    assert b"Select the residence to assign" in response.data
    with app.app_context():
        assert db.session.get(DocumentSubmission, submission_id).status == SubmissionStatus.PENDING


def test_reject_requires_reason(app, client, login_admin):
    login_admin()
    submission_id = _pending_submission_id(app)

    response = client.post(
        f"/admin/documents/{submission_id}/review",
        data={"action": "reject"},
        follow_redirects=True,
    )
    assert b"A rejection reason is required" in response.data

    client.post(
        f"/admin/documents/{submission_id}/review",
        data={"action": "reject", "reason": "Pièce d'identité expirée"},
        follow_redirects=True,
    )
    with app.app_context():
        submission = db.session.get(DocumentSubmission, submission_id)
        assert submission.status == SubmissionStatus.REJECTED
        assert submission.rejection_reason == "Pièce d'identité expirée"


def test_review_unknown_submission(client, login_admin):
    login_admin()
    response = client.post("/admin/documents/9999/review", data={"action": "reject", "reason": "x"})
    assert response.status_code == 404


def test_admin_creates_residence(app, client, login_admin):
    login_admin()
    response = client.post(
        "/admin/residences",
        data={"name": "Résidence Palmiers", "address": "8 Rue Ibn Sina", "city": "Fès", "total_apartments": "20"},
        follow_redirects=True,
    )
    assert response.status_code == 200
    assert "Résidence Palmiers".encode() in response.data

    with app.app_context():
        residence = Residence.query.filter_by(name="Résidence Palmiers").first()
        assert residence.total_apartments == 20
        residence_id = residence.id
    assert client.get(f"/admin/residences/{residence_id}").status_code == 200
    assert client.get("/admin/residences/9999").status_code == 404


def test_pending_syndic_is_sent_to_onboarding(client):
    response = _login_pending_syndic(client)
    assert response.status_code == 200
    assert response.request.path.startswith("/onboarding")


def test_resubmission_replaces_only_uploaded_file(app, client):
    _login_pending_syndic(client)
    submission_id = _pending_submission_id(app)

    response = client.post(
        "/onboarding/documents",
        data={"id_card": (BytesIO(b"%PDF-1.4 cin"), "cin-recto.pdf")},
        content_type="multipart/form-data",
        follow_redirects=True,
    )
    assert response.status_code == 200

    with app.app_context():
        submission = db.session.get(DocumentSubmission, submission_id)
        assert submission.document_url == "storage/documents/pv-demo.pdf"
        assert submission.id_card_url.startswith("storage/documents/")
        assert submission.id_card_url.endswith("cin-recto.pdf")
        assert (Path(app.instance_path) / submission.id_card_url).exists()
        assert submission.status == SubmissionStatus.PENDING


def test_submission_rejects_unknown_file_type(app, client):
    _login_pending_syndic(client)
    response = client.post(
        "/onboarding/documents",
        data={"document": (BytesIO(b"MZ"), "pv.exe")},
        content_type="multipart/form-data",
        follow_redirects=True,
    )
    assert b"Minutes must be one of" in response.data


def test_first_submission_needs_both_documents(app, client):
    with app.app_context():
        user = User.query.filter_by(email=PENDING_SYNDIC).first()
        DocumentSubmission.query.filter_by(user_id=user.id).delete()
        db.session.commit()

    _login_pending_syndic(client)
    response = client.post(
        "/onboarding/documents",
        data={"document": (BytesIO(b"%PDF-1.4 pv"), "pv.pdf")},
        content_type="multipart/form-data",
        follow_redirects=True,
    )
    assert "Both the minutes (procès-verbal) and the ID card are required".encode() in response.data


def test_syndic_registers_own_residence(app, client):
    _login_pending_syndic(client)
    response = client.post(
        "/onboarding/residence",
        data={"name": "Résidence Les Jardins", "address": "3 Rue Tarik", "city": "Tanger"},
        follow_redirects=True,
    )
    assert response.status_code == 200
    assert response.request.path == "/dashboard"

    with app.app_context():
        residence = Residence.query.filter_by(name="Résidence Les Jardins").first()
        user = User.query.filter_by(email=PENDING_SYNDIC).first()
        assert residence.syndic_user_id == user.id
