from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import func
from werkzeug.datastructures import FileStorage

from syndic.core.errors import NotFoundError, PermissionDeniedError
from syndic.core.extensions import db
from syndic.core.logging import get_logger
from syndic.core.models import (
    DocumentSubmission,
    Profile,
    ProfileResidence,
    Residence,
    SubmissionStatus,
    User,
    UserRole,
)
from syndic.core.storage import DOCUMENT_EXTENSIONS, delete_upload, save_upload
from syndic.core.tenancy import current_profile, ensure_role
from syndic.core.utils import as_utc

log = get_logger(__name__)

REVIEW_ACTIONS = {"approve", "reject"}


def _require_admin() -> Profile:
    return ensure_role(UserRole.ADMIN, message="Only administrators can perform this action")


def _residence_fields(payload: dict[str, str]) -> dict[str, object]:
    name = (payload.get("name") or "").strip()
    address = (payload.get("address") or "").strip()
    city = (payload.get("city") or "").strip()
    if not name or not address or not city:
        raise ValueError("Name, address and city are required")
    total = (payload.get("total_apartments") or "").strip()
    if total and (not total.isdigit() or int(total) <= 0):
        raise ValueError("Total apartments must be a positive number")
    return {
        "name": name,
        "address": address,
        "city": city,
        "bank_account_rib": (payload.get("bank_account_rib") or "").strip() or None,
        "total_apartments": int(total) if total else None,
    }


# ---------------------------------------------------------------------------
# Syndic onboarding
# ---------------------------------------------------------------------------


def latest_submission(user_id: int) -> DocumentSubmission | None:
    return (
        DocumentSubmission.query.filter_by(user_id=user_id)
        .order_by(DocumentSubmission.submitted_at.desc(), DocumentSubmission.id.desc())
        .first()
    )


def create_residence_for_syndic(payload: dict[str, str]) -> Residence:
    """A syndic registers the residence they manage; one syndic holds one residence."""
    profile = ensure_role(UserRole.SYNDIC, message="Only syndics can register a residence")
    if Residence.query.filter_by(syndic_user_id=profile.id).first():
        raise ValueError("You already manage a residence")
    residence = Residence(syndic_user_id=profile.id, **_residence_fields(payload))
    db.session.add(residence)
    db.session.flush()
    db.session.add(ProfileResidence(profile_id=profile.id, residence_id=residence.id, verified=True))
    profile.onboarding_completed = True
    db.session.commit()
    log.info("residence_registered", residence_id=residence.id, syndic_id=profile.id)
    return residence


def submit_documents(document: FileStorage | None, id_card: FileStorage | None) -> DocumentSubmission:
    profile = ensure_role(UserRole.SYNDIC, message="Only syndics can submit verification documents")
    if not profile.email_verified:
        raise PermissionDeniedError("Verify your email address before submitting documents")
    has_document = document is not None and bool(document.filename)
    has_id_card = id_card is not None and bool(id_card.filename)

    submission = latest_submission(profile.id)
    if submission is not None and submission.status == SubmissionStatus.APPROVED:
        raise ValueError("Your documents have already been approved")
    if submission is None and not (has_document and has_id_card):
        raise ValueError("Both the minutes (procès-verbal) and the ID card are required")
    if submission is not None and not (has_document or has_id_card):
        raise ValueError("Upload at least one document")

    stale: list[str | None] = []
    document_url = (
        save_upload(document, "documents", profile.id, allowed=DOCUMENT_EXTENSIONS, label="Minutes")
        if has_document
        else None
    )
    id_card_url = (
        save_upload(id_card, "documents", profile.id, allowed=DOCUMENT_EXTENSIONS, label="ID card")
        if has_id_card
        else None
    )

    if submission is None:
        submission = DocumentSubmission(user_id=profile.id, document_url=document_url, id_card_url=id_card_url)
        db.session.add(submission)
    else:
        if document_url:
            stale.append(submission.document_url)
            submission.document_url = document_url
        if id_card_url:
            stale.append(submission.id_card_url)
            submission.id_card_url = id_card_url
        submission.rejection_reason = None
        submission.reviewed_at = None
        submission.reviewed_by = None
    submission.status = SubmissionStatus.PENDING
    submission.submitted_at = datetime.now(timezone.utc)
    db.session.commit()
    for path in stale:
        delete_upload(path)
    log.info("documents_submitted", submission_id=submission.id, user_id=profile.id)
    return submission


def document_status(profile: Profile | None = None) -> dict[str, object]:
    profile = profile or current_profile()
    submission = latest_submission(profile.id)
    residence = Residence.query.filter_by(syndic_user_id=profile.id).first()
    return {
        "verified": profile.verified,
        "email_verified": profile.email_verified,
        "onboarding_completed": profile.onboarding_completed,
        "residence": {"id": residence.id, "name": residence.name} if residence else None,
        "submission": serialize_submission(submission) if submission else None,
    }


def cancel_submission() -> None:
    profile = ensure_role(UserRole.SYNDIC, message="Only syndics can cancel a submission")
    submission = latest_submission(profile.id)
    if submission is None:
        raise NotFoundError("No submission found")
    if submission.status != SubmissionStatus.PENDING:
        raise ValueError("Only pending submissions can be cancelled")
    paths = [submission.document_url, submission.id_card_url]
    db.session.delete(submission)
    db.session.commit()
    for path in paths:
        delete_upload(path)
    log.info("submission_cancelled", user_id=profile.id)


def serialize_submission(submission: DocumentSubmission) -> dict[str, object]:
    return {
        "id": submission.id,
        "user_id": submission.user_id,
        "full_name": submission.user.full_name if submission.user else None,
        "email": submission.user.email if submission.user else None,
        "document_url": submission.document_url,
        "id_card_url": submission.id_card_url,
        "status": submission.status.value,
        "submitted_at": as_utc(submission.submitted_at),
        "reviewed_at": as_utc(submission.reviewed_at),
        "rejection_reason": submission.rejection_reason,
        "assigned_residence": (
            {"id": submission.assigned_residence.id, "name": submission.assigned_residence.name}
            if submission.assigned_residence
            else None
        ),
    }


# ---------------------------------------------------------------------------
# Admin review
# ---------------------------------------------------------------------------


def list_submissions(status: str | None = SubmissionStatus.PENDING.value) -> list[DocumentSubmission]:
    _require_admin()
    query = DocumentSubmission.query
    if status:
        try:
            query = query.filter(DocumentSubmission.status == SubmissionStatus(status.strip().lower()))
        except ValueError as exc:
            raise ValueError(f"Invalid submission status: {status}") from exc
    return query.order_by(DocumentSubmission.submitted_at.asc(), DocumentSubmission.id.asc()).all()


def review_document(
    submission_id: int,
    action: str,
    residence_id: int | str | None = None,
    reason: str | None = None,
) -> DocumentSubmission:
    """Approve or reject a syndic's documents.

    Approval hands the chosen residence to the syndic and marks the profile
    verified. Every change is committed together.
    """
    admin = _require_admin()
    action = (action or "").strip().lower()
    if action not in REVIEW_ACTIONS:
        raise ValueError("Action must be approve or reject")
    submission = db.session.get(DocumentSubmission, submission_id)
    if submission is None:
        raise NotFoundError("Submission not found")
    if submission.status != SubmissionStatus.PENDING:
        raise ValueError("Only pending submissions can be reviewed")
    profile = db.session.get(Profile, submission.user_id)
    if profile is None:
        raise NotFoundError("Syndic profile not found")
    now = datetime.now(timezone.utc)

    if action == "approve":
        if not residence_id:
            raise ValueError("Select the residence to assign")
        residence = db.session.get(Residence, int(residence_id))
        if residence is None:
            raise NotFoundError("Residence not found")
        if residence.syndic_user_id not in (None, profile.id):
            raise ValueError("This residence is already managed by another syndic")
        held = Residence.query.filter(Residence.syndic_user_id == profile.id, Residence.id != residence.id).first()
        if held is not None:
            raise ValueError(f"This syndic already manages {held.name}")
        residence.syndic_user_id = profile.id
        if not ProfileResidence.query.filter_by(
            profile_id=profile.id, residence_id=residence.id, apartment_number=None
        ).first():
            db.session.add(ProfileResidence(profile_id=profile.id, residence_id=residence.id, verified=True))
        submission.status = SubmissionStatus.APPROVED
        submission.assigned_residence_id = residence.id
        submission.rejection_reason = None
        profile.verified = True
        profile.onboarding_completed = True
    else:
        reason = (reason or "").strip()
        if not reason:
            raise ValueError("A rejection reason is required")
        submission.status = SubmissionStatus.REJECTED
        submission.rejection_reason = reason
        profile.verified = False

    submission.reviewed_at = now
    submission.reviewed_by = admin.id
    db.session.commit()
    log.info(
        "documents_reviewed",
        submission_id=submission.id,
        action=action,
        residence_id=submission.assigned_residence_id,
    )
    return submission


# ---------------------------------------------------------------------------
# Residences and syndics
# ---------------------------------------------------------------------------


def create_residence(payload: dict[str, str]) -> Residence:
    _require_admin()
    residence = Residence(**_residence_fields(payload))
    db.session.add(residence)
    db.session.commit()
    log.info("residence_created", residence_id=residence.id)
    return residence


def list_residences(vacant_only: bool = False) -> list[dict[str, object]]:
    _require_admin()
    counts = dict(
        db.session.query(ProfileResidence.residence_id, func.count(ProfileResidence.id))
        .filter(ProfileResidence.apartment_number.isnot(None))
        .group_by(ProfileResidence.residence_id)
        .all()
    )
    query = Residence.query
    if vacant_only:
        query = query.filter(Residence.syndic_user_id.is_(None))
    return [
        {
            "id": residence.id,
            "name": residence.name,
            "address": residence.address,
            "city": residence.city,
            "total_apartments": residence.total_apartments,
            "resident_count": counts.get(residence.id, 0),
            "syndic": residence.syndic.full_name if residence.syndic else None,
            "guard": residence.guard.full_name if residence.guard else None,
        }
        for residence in query.order_by(Residence.name.asc()).all()
    ]


def residence_detail(residence_id: int) -> dict[str, object]:
    _require_admin()
    residence = db.session.get(Residence, residence_id)
    if residence is None:
        raise NotFoundError("Residence not found")
    links = (
        ProfileResidence.query.filter_by(residence_id=residence.id)
        .order_by(ProfileResidence.apartment_number.asc())
        .all()
    )
    return {
        "residence": residence,
        "residents": [
            {
                "id": link.profile_id,
                "full_name": link.profile.full_name,
                "email": link.profile.email,
                "role": link.profile.role.value,
                "apartment_number": link.apartment_number,
                "verified": link.verified,
            }
            for link in links
        ],
    }


def list_syndics() -> list[dict[str, object]]:
    _require_admin()
    profiles = (
        Profile.query.join(User, User.id == Profile.id)
        .filter(Profile.role == UserRole.SYNDIC)
        .order_by(User.full_name.asc())
        .all()
    )
    rows = []
    for profile in profiles:
        residence = Residence.query.filter_by(syndic_user_id=profile.id).first()
        submission = latest_submission(profile.id)
        rows.append(
            {
                "id": profile.id,
                "full_name": profile.full_name,
                "email": profile.email,
                "verified": profile.verified,
                "residence": residence.name if residence else None,
                "submission_status": submission.status.value if submission else None,
            }
        )
    return rows
