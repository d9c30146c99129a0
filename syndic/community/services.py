from __future__ import annotations

import re
import secrets
import string
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from flask import current_app
from sqlalchemy import or_
from werkzeug.datastructures import FileStorage

from syndic.core.errors import NotFoundError, PermissionDeniedError
from syndic.core.extensions import db
from syndic.core.logging import get_logger
from syndic.core.mailer import send_onboarding_code
from syndic.core.models import (
    Announcement,
    Complaint,
    ComplaintEvidence,
    ComplaintPrivacy,
    ComplaintReason,
    ComplaintStatus,
    Contribution,
    Fee,
    Incident,
    IncidentStatus,
    Payment,
    Profile,
    ProfileResidence,
    Residence,
    User,
    UserRole,
)
from syndic.core.storage import (
    IMAGE_EXTENSIONS,
    MEDIA_EXTENSIONS,
    delete_upload,
    media_kind,
    save_upload,
    upload_size,
)
from syndic.core.tenancy import current_profile, current_residence, ensure_role, residence_id
from syndic.core.utils import as_utc

log = get_logger(__name__)

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
OTP_ALPHABET = string.ascii_uppercase + string.digits
OTP_LENGTH = 6
MEMBER_ROLES = (UserRole.RESIDENT, UserRole.GUARD)


@dataclass
class ResidentCreated:
    profile: Profile
    link: ProfileResidence
    code: str
    email_sent: bool


def _normalize_apartment(value: str | None) -> str | None:
    raw = (value or "").strip().upper()
    return raw or None


def _parse_role(value: str | None, default: UserRole = UserRole.RESIDENT) -> UserRole:
    if not value:
        return default
    try:
        role = UserRole(value.strip().lower())
    except ValueError as exc:
        raise ValueError(f"Invalid role: {value}") from exc
    if role not in MEMBER_ROLES:
        raise ValueError("Residents can only be created with the resident or guard role")
    return role


# ---------------------------------------------------------------------------
# Residents
# ---------------------------------------------------------------------------


def serialize_member(link: ProfileResidence) -> dict[str, object]:
    profile = link.profile
    return {
        "id": profile.id,
        "link_id": link.id,
        "full_name": profile.full_name,
        "email": profile.email,
        "phone_number": profile.phone_number,
        "role": profile.role.value,
        "apartment_number": link.apartment_number,
        "verified": link.verified,
        "profile_verified": profile.verified,
        "onboarding_completed": profile.onboarding_completed,
    }


def list_residents(verified: bool | None = None, search: str | None = None) -> list[dict[str, object]]:
    ensure_role(UserRole.SYNDIC, UserRole.GUARD, message="Only residence staff can list residents")
    query = (
        ProfileResidence.query.join(Profile, Profile.id == ProfileResidence.profile_id)
        .join(User, User.id == Profile.id)
        .filter(ProfileResidence.residence_id == residence_id())
        .filter(Profile.role != UserRole.SYNDIC)
    )
    if verified is not None:
        query = query.filter(ProfileResidence.verified.is_(verified))
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(
            or_(User.full_name.ilike(like), User.email.ilike(like), ProfileResidence.apartment_number.ilike(like))
        )
    links = query.order_by(ProfileResidence.apartment_number.asc(), User.full_name.asc()).all()
    return [serialize_member(link) for link in links]


def member_link(profile_id: int) -> ProfileResidence:
    link = (
        ProfileResidence.query.filter_by(residence_id=residence_id(), profile_id=profile_id)
        .order_by(ProfileResidence.apartment_number.is_(None), ProfileResidence.id.asc())
        .first()
    )
    if link is None:
        raise NotFoundError("Resident not found in this residence")
    return link


def get_resident(profile_id: int) -> dict[str, object]:
    profile = current_profile()
    if profile.role not in (UserRole.SYNDIC, UserRole.GUARD) and profile.id != profile_id:
        raise PermissionDeniedError("You can only view your own profile")
    return serialize_member(member_link(profile_id))


def check_apartment(apartment: str | None, rid: int | None = None, exclude_profile_id: int | None = None) -> dict[str, object]:
    apartment = _normalize_apartment(apartment)
    if not apartment:
        raise ValueError("Apartment number is required")
    query = ProfileResidence.query.filter_by(residence_id=rid or residence_id(), apartment_number=apartment)
    if exclude_profile_id:
        query = query.filter(ProfileResidence.profile_id != exclude_profile_id)
    occupant = query.first()
    return {
        "apartment_number": apartment,
        "available": occupant is None,
        "occupant": occupant.profile.full_name if occupant else None,
    }


def _new_code() -> str:
    return "".join(secrets.choice(OTP_ALPHABET) for _ in range(OTP_LENGTH))


def issue_onboarding_code(profile: Profile) -> str:
    ttl = current_app.config.get("OTP_TTL_MINUTES", 15)
    code = _new_code()
    profile.resident_onboarding_code = code
    profile.resident_onboarding_code_expires_at = datetime.now(timezone.utc) + timedelta(minutes=ttl)
    return code


def _deliver_code(profile: Profile, code: str, residence: Residence | None) -> bool:
    result = send_onboarding_code(profile.email, profile.full_name, code, residence.name if residence else None)
    if not result["success"]:
        log.warning("onboarding_code_not_sent", profile_id=profile.id, error=result["error"])
    return bool(result["success"])


def create_resident(payload: dict[str, str]) -> ResidentCreated:
    ensure_role(UserRole.SYNDIC, message="Only syndics can add residents")
    residence = current_residence()
    full_name = (payload.get("full_name") or "").strip()
    email = (payload.get("email") or "").strip().lower()
    apartment = _normalize_apartment(payload.get("apartment_number"))
    if not full_name or not email or not apartment:
        raise ValueError("Full name, email and apartment number are required")
    if not EMAIL_PATTERN.match(email):
        raise ValueError("Invalid email format")
    if (payload.get("role") or "").strip().lower() == UserRole.SYNDIC.value:
        raise ValueError("Cannot create a syndic from the resident roster")
    role = _parse_role(payload.get("role"))
    if not check_apartment(apartment, residence.id)["available"]:
        raise ValueError(f"Apartment {apartment} is already assigned in this residence")

    user = User.query.filter_by(email=email).first()
    if user is None:
        user = User(email=email, full_name=full_name)
        db.session.add(user)
        db.session.flush()
    profile = db.session.get(Profile, user.id)
    if profile is None:
        profile = Profile(id=user.id, role=role, phone_number=(payload.get("phone_number") or "").strip())
        db.session.add(profile)
    elif profile.role in (UserRole.SYNDIC, UserRole.ADMIN):
        raise ValueError("This email belongs to a syndic or an administrator")
    elif ProfileResidence.query.filter_by(profile_id=user.id, residence_id=residence.id).first():
        raise ValueError("This person already lives in this residence")

    link = ProfileResidence(profile_id=user.id, residence_id=residence.id, apartment_number=apartment, verified=True)
    db.session.add(link)
    code = issue_onboarding_code(profile)
    db.session.commit()
    log.info("resident_created", profile_id=profile.id, apartment=apartment)

    email_sent = _deliver_code(profile, code, residence)
    return ResidentCreated(profile=profile, link=link, code=code, email_sent=email_sent)


def update_resident(profile_id: int, payload: dict[str, str]) -> ProfileResidence:
    ensure_role(UserRole.SYNDIC, message="Only syndics can update residents")
    link = member_link(profile_id)
    profile = link.profile
    if payload.get("full_name") is not None:
        full_name = payload["full_name"].strip()
        if not full_name:
            raise ValueError("Full name is required")
        profile.user.full_name = full_name
    if payload.get("phone_number") is not None:
        profile.phone_number = payload["phone_number"].strip()
    if payload.get("apartment_number"):
        apartment = _normalize_apartment(payload["apartment_number"])
        if apartment != link.apartment_number:
            if not check_apartment(apartment, link.residence_id, exclude_profile_id=profile_id)["available"]:
                raise ValueError(f"Apartment {apartment} is already assigned in this residence")
            link.apartment_number = apartment
    if payload.get("role"):
        profile.role = _parse_role(payload["role"])
    db.session.commit()
    return link


def _has_history(profile_id: int) -> bool:
    return any(
        query.first() is not None
        for query in (
            Fee.query.filter_by(user_id=profile_id),
            Payment.query.filter_by(user_id=profile_id),
            Incident.query.filter_by(user_id=profile_id),
            Complaint.query.filter(
                or_(Complaint.complainant_id == profile_id, Complaint.complained_about_id == profile_id)
            ),
        )
    )


def remove_resident(profile_id: int) -> bool:
    """Unlink a resident; returns True when the account itself was deleted."""
    ensure_role(UserRole.SYNDIC, message="Only syndics can remove residents")
    rid = residence_id()
    if profile_id == current_profile().id:
        raise ValueError("You cannot remove yourself")
    links = ProfileResidence.query.filter_by(residence_id=rid, profile_id=profile_id).all()
    if not links:
        raise NotFoundError("Resident not found in this residence")
    link_ids = [link.id for link in links]
    if Contribution.query.filter(Contribution.profile_residence_id.in_(link_ids)).first():
        raise ValueError("This resident has contributions on record and cannot be removed")

    Fee.query.filter(Fee.profile_residence_id.in_(link_ids)).update(
        {"profile_residence_id": None}, synchronize_session=False
    )
    for link in links:
        db.session.delete(link)
    db.session.flush()

    deleted = False
    other_links = ProfileResidence.query.filter_by(profile_id=profile_id).count()
    if not other_links and not _has_history(profile_id):
        user = db.session.get(User, profile_id)
        if user is not None:
            db.session.delete(user)
            deleted = True
    db.session.commit()
    log.info("resident_removed", profile_id=profile_id, account_deleted=deleted)
    return deleted


def verify_resident_link(link_id: int) -> ProfileResidence:
    ensure_role(UserRole.SYNDIC, message="Only syndics can verify residents")
    link = ProfileResidence.query.filter_by(residence_id=residence_id(), id=link_id).first()
    if link is None:
        raise NotFoundError("Resident not found in this residence")
    link.verified = True
    db.session.commit()
    return link


def resend_onboarding_code(profile_id: int) -> bool:
    ensure_role(UserRole.SYNDIC, message="Only syndics can resend access codes")
    link = member_link(profile_id)
    code = issue_onboarding_code(link.profile)
    db.session.commit()
    return _deliver_code(link.profile, code, link.residence)


def request_onboarding_code(email: str) -> bool:
    """Issue a fresh access code for a resident identified by email (mobile sign-in)."""
    email = (email or "").strip().lower()
    if not email:
        raise ValueError("Email is required")
    user = User.query.filter_by(email=email).first()
    if user is None or user.profile is None:
        raise NotFoundError("No account found for this email")
    link = ProfileResidence.query.filter_by(profile_id=user.id).order_by(ProfileResidence.id.asc()).first()
    code = issue_onboarding_code(user.profile)
    db.session.commit()
    return _deliver_code(user.profile, code, link.residence if link else None)


def verify_onboarding_code(email: str, code: str) -> Profile:
    email = (email or "").strip().lower()
    code = (code or "").strip().upper()
    if not email or not code:
        raise ValueError("Email and code are required")
    user = User.query.filter_by(email=email).first()
    profile = user.profile if user else None
    if profile is None or not profile.resident_onboarding_code:
        raise ValueError("Invalid or expired code")
    expires_at = as_utc(profile.resident_onboarding_code_expires_at)
    if expires_at is None or expires_at < datetime.now(timezone.utc):
        raise ValueError("Invalid or expired code")
    if not secrets.compare_digest(profile.resident_onboarding_code, code):
        raise ValueError("Invalid or expired code")

    profile.resident_onboarding_code = None
    profile.resident_onboarding_code_expires_at = None
    profile.email_verified = True
    profile.verified = True
    profile.onboarding_completed = True
    for link in profile.residence_links:
        link.verified = True
    db.session.commit()
    log.info("onboarding_code_verified", profile_id=profile.id)
    return profile


# ---------------------------------------------------------------------------
# Incidents
# ---------------------------------------------------------------------------


def _parse_incident_status(value: str) -> IncidentStatus:
    try:
        return IncidentStatus((value or "").strip().lower())
    except ValueError as exc:
        raise ValueError(f"Invalid incident status: {value}") from exc


def assignable_users() -> list[dict[str, object]]:
    residence = current_residence()
    users = []
    for user_id, role in ((residence.syndic_user_id, UserRole.SYNDIC), (residence.guard_user_id, UserRole.GUARD)):
        if user_id is None:
            continue
        user = db.session.get(User, user_id)
        if user is not None:
            users.append({"id": user.id, "full_name": user.full_name, "role": role.value})
    return users


def list_incidents(status: str | None = None) -> list[Incident]:
    profile = current_profile()
    query = Incident.query.filter_by(residence_id=residence_id())
    if profile.role not in (UserRole.SYNDIC, UserRole.GUARD):
        query = query.filter(Incident.user_id == profile.id)
    if status:
        query = query.filter(Incident.status == _parse_incident_status(status))
    return query.order_by(Incident.created_at.desc(), Incident.id.desc()).all()


def incident_by_id(incident_id: int) -> Incident:
    profile = current_profile()
    incident = Incident.query.filter_by(residence_id=residence_id(), id=incident_id).first()
    if incident is None:
        raise NotFoundError("Incident not found")
    if profile.role not in (UserRole.SYNDIC, UserRole.GUARD) and incident.user_id != profile.id:
        raise NotFoundError("Incident not found")
    return incident


def create_incident(payload: dict[str, str], photo: FileStorage | None = None) -> Incident:
    profile = current_profile()
    residence = current_residence()
    title = (payload.get("title") or "").strip()
    description = (payload.get("description") or "").strip()
    if not title or not description:
        raise ValueError("Title and description are required")
    incident = Incident(
        residence_id=residence.id,
        user_id=profile.id,
        title=title,
        description=description,
        status=IncidentStatus.OPEN,
        photo_url=(payload.get("photo_url") or "").strip() or None,
    )
    if photo is not None and photo.filename:
        incident.photo_url = save_upload(photo, "incidents", residence.id, allowed=IMAGE_EXTENSIONS, label="Photo")
    db.session.add(incident)
    db.session.commit()
    log.info("incident_reported", incident_id=incident.id)
    return incident


def _incident_editor(incident: Incident) -> Profile:
    profile = current_profile()
    if profile.role == UserRole.SYNDIC:
        return profile
    if incident.user_id == profile.id:
        return profile
    raise PermissionDeniedError("Only the syndic or the author can modify this incident")


def update_incident(incident_id: int, payload: dict[str, str], photo: FileStorage | None = None) -> Incident:
    incident = incident_by_id(incident_id)
    profile = _incident_editor(incident)
    is_syndic = profile.role == UserRole.SYNDIC

    if payload.get("title") is not None:
        title = payload["title"].strip()
        if not title:
            raise ValueError("Title is required")
        incident.title = title
    if payload.get("description") is not None:
        description = payload["description"].strip()
        if not description:
            raise ValueError("Description is required")
        incident.description = description
    if payload.get("status"):
        if not is_syndic:
            raise PermissionDeniedError("Only the syndic can change the incident status")
        incident.status = _parse_incident_status(payload["status"])
    if "assigned_to" in payload:
        if not is_syndic:
            raise PermissionDeniedError("Only the syndic can assign incidents")
        raw = str(payload.get("assigned_to") or "").strip()
        if not raw:
            incident.assigned_to = None
        else:
            assignee = int(raw)
            if assignee not in {user["id"] for user in assignable_users()}:
                raise ValueError("This user cannot be assigned to incidents")
            incident.assigned_to = assignee
    if photo is not None and photo.filename:
        previous = incident.photo_url
        incident.photo_url = save_upload(
            photo, "incidents", incident.residence_id, allowed=IMAGE_EXTENSIONS, label="Photo"
        )
        delete_upload(previous)
    db.session.commit()
    return incident


def delete_incident(incident_id: int) -> None:
    incident = incident_by_id(incident_id)
    _incident_editor(incident)
    photo = incident.photo_url
    db.session.delete(incident)
    db.session.commit()
    delete_upload(photo)
    log.info("incident_deleted", incident_id=incident_id)


def serialize_incident(incident: Incident) -> dict[str, object]:
    return {
        "id": incident.id,
        "title": incident.title,
        "description": incident.description,
        "photo_url": incident.photo_url,
        "status": incident.status.value,
        "reporter": {"id": incident.user_id, "full_name": incident.reporter.full_name if incident.reporter else None},
        "assigned_to": (
            {"id": incident.assigned_to, "full_name": incident.assignee.full_name}
            if incident.assignee
            else None
        ),
        "created_at": as_utc(incident.created_at),
        "updated_at": as_utc(incident.updated_at),
    }


# ---------------------------------------------------------------------------
# Complaints
# ---------------------------------------------------------------------------


def _parse_complaint_status(value: str) -> ComplaintStatus:
    try:
        return ComplaintStatus((value or "").strip().lower())
    except ValueError as exc:
        raise ValueError(f"Invalid complaint status: {value}") from exc


def residents_for_complaint() -> list[dict[str, object]]:
    profile = current_profile()
    links = (
        ProfileResidence.query.join(Profile, Profile.id == ProfileResidence.profile_id)
        .filter(ProfileResidence.residence_id == residence_id())
        .filter(Profile.role == UserRole.RESIDENT)
        .filter(ProfileResidence.profile_id != profile.id)
        .filter(ProfileResidence.apartment_number.isnot(None))
        .order_by(ProfileResidence.apartment_number.asc())
        .all()
    )
    return [
        {"id": link.profile_id, "full_name": link.profile.full_name, "apartment_number": link.apartment_number}
        for link in links
    ]


def create_complaint(payload: dict[str, str]) -> Complaint:
    profile = ensure_role(UserRole.RESIDENT, message="Only residents can file complaints")
    rid = residence_id()
    title = (payload.get("title") or "").strip()
    description = (payload.get("description") or "").strip()
    if not title or not description:
        raise ValueError("Title and description are required")
    try:
        target_id = int(payload.get("complained_about_id") or 0)
    except (TypeError, ValueError) as exc:
        raise ValueError("Select the resident concerned") from exc
    if not target_id:
        raise ValueError("Select the resident concerned")
    if target_id == profile.id:
        raise ValueError("You cannot file a complaint against yourself")
    target = db.session.get(Profile, target_id)
    if (
        target is None
        or target.role != UserRole.RESIDENT
        or not ProfileResidence.query.filter_by(residence_id=rid, profile_id=target_id).first()
    ):
        raise ValueError("The resident concerned must live in your residence")
    try:
        reason = ComplaintReason((payload.get("reason") or "").strip().lower())
    except ValueError as exc:
        raise ValueError(f"Invalid complaint reason: {payload.get('reason')}") from exc
    try:
        privacy = ComplaintPrivacy((payload.get("privacy") or ComplaintPrivacy.PRIVATE.value).strip().lower())
    except ValueError as exc:
        raise ValueError(f"Invalid privacy option: {payload.get('privacy')}") from exc

    complaint = Complaint(
        residence_id=rid,
        complainant_id=profile.id,
        complained_about_id=target_id,
        reason=reason,
        privacy=privacy,
        title=title,
        description=description,
        status=ComplaintStatus.SUBMITTED,
    )
    db.session.add(complaint)
    db.session.commit()
    log.info("complaint_filed", complaint_id=complaint.id, reason=reason.value)
    return complaint


def list_complaints(status: str | None = None) -> list[Complaint]:
    profile = current_profile()
    query = Complaint.query.filter_by(residence_id=residence_id())
    if profile.role == UserRole.RESIDENT:
        query = query.filter(
            or_(Complaint.complainant_id == profile.id, Complaint.complained_about_id == profile.id)
        )
    elif profile.role != UserRole.SYNDIC:
        raise PermissionDeniedError("Complaints are only visible to the syndic and residents")
    if status:
        query = query.filter(Complaint.status == _parse_complaint_status(status))
    return query.order_by(Complaint.created_at.desc(), Complaint.id.desc()).all()


def complaint_by_id(complaint_id: int) -> Complaint:
    profile = current_profile()
    complaint = Complaint.query.filter_by(residence_id=residence_id(), id=complaint_id).first()
    if complaint is None:
        raise NotFoundError("Complaint not found")
    if profile.role == UserRole.SYNDIC:
        return complaint
    if profile.id in (complaint.complainant_id, complaint.complained_about_id):
        return complaint
    raise NotFoundError("Complaint not found")


def update_complaint_status(complaint_id: int, status: str, resolution_notes: str | None = None) -> Complaint:
    syndic = ensure_role(UserRole.SYNDIC, message="Only the syndic can update complaints")
    complaint = complaint_by_id(complaint_id)
    new_status = _parse_complaint_status(status)
    now = datetime.now(timezone.utc)
    if complaint.status == ComplaintStatus.SUBMITTED and new_status != ComplaintStatus.SUBMITTED:
        complaint.reviewed_at = now
        complaint.reviewed_by = syndic.id
    if new_status == ComplaintStatus.RESOLVED:
        complaint.resolved_at = now
    else:
        complaint.resolved_at = None
    complaint.status = new_status
    if resolution_notes is not None:
        complaint.resolution_notes = resolution_notes.strip() or None
    db.session.commit()
    log.info("complaint_status_changed", complaint_id=complaint.id, status=new_status.value)
    return complaint


def add_complaint_evidence(complaint_id: int, file_obj: FileStorage | None) -> ComplaintEvidence:
    """Attach a photo, audio or video file to a complaint.

    Only the complainant can add evidence, and only while the complaint is
    still open. Evidence is shown to the syndic and the complainant, never to
    the resident the complaint is about.
    """
    profile = ensure_role(UserRole.RESIDENT, message="Only residents can add complaint evidence")
    complaint = complaint_by_id(complaint_id)
    if complaint.complainant_id != profile.id:
        raise PermissionDeniedError("Only the complainant can add evidence")
    if complaint.status == ComplaintStatus.RESOLVED:
        raise ValueError("Evidence cannot be added to a resolved complaint")
    file_url = save_upload(
        file_obj, "complaints", complaint.residence_id, complaint.id, allowed=MEDIA_EXTENSIONS, label="Evidence"
    )
    evidence = ComplaintEvidence(
        complaint_id=complaint.id,
        file_url=file_url,
        file_name=file_obj.filename,
        file_type=media_kind(file_obj.filename),
        file_size=upload_size(file_obj),
        mime_type=file_obj.mimetype or "application/octet-stream",
        uploaded_by=profile.id,
    )
    db.session.add(evidence)
    db.session.commit()
    log.info("complaint_evidence_added", complaint_id=complaint.id, file_type=evidence.file_type)
    return evidence


def list_complaint_evidence(complaint_id: int) -> list[ComplaintEvidence]:
    profile = current_profile()
    complaint = complaint_by_id(complaint_id)
    if profile.role != UserRole.SYNDIC and profile.id != complaint.complainant_id:
        raise PermissionDeniedError("Evidence is only visible to the syndic and the complainant")
    return list(complaint.evidence)


def serialize_evidence(evidence: ComplaintEvidence) -> dict[str, object]:
    return {
        "id": evidence.id,
        "complaint_id": evidence.complaint_id,
        "file_url": evidence.file_url,
        "file_name": evidence.file_name,
        "file_type": evidence.file_type,
        "file_size": evidence.file_size,
        "mime_type": evidence.mime_type,
        "uploaded_by": evidence.uploaded_by,
        "created_at": as_utc(evidence.created_at),
    }


def serialize_complaint(complaint: Complaint, viewer: Profile | None = None) -> dict[str, object]:
    viewer = viewer or current_profile()
    hide_complainant = (
        complaint.privacy == ComplaintPrivacy.ANONYMOUS
        and viewer.id == complaint.complained_about_id
        and viewer.id != complaint.complainant_id
    )
    return {
        "id": complaint.id,
        "title": complaint.title,
        "description": complaint.description,
        "reason": complaint.reason.value,
        "privacy": complaint.privacy.value,
        "status": complaint.status.value,
        "complainant": (
            None
            if hide_complainant
            else {"id": complaint.complainant_id, "full_name": complaint.complainant.full_name}
        ),
        "complained_about": {
            "id": complaint.complained_about_id,
            "full_name": complaint.complained_about.full_name,
        },
        "resolution_notes": complaint.resolution_notes,
        "reviewed_at": as_utc(complaint.reviewed_at),
        "resolved_at": as_utc(complaint.resolved_at),
        "created_at": as_utc(complaint.created_at),
    }


# ---------------------------------------------------------------------------
# Announcements
# ---------------------------------------------------------------------------


def list_announcements(limit: int = 20) -> list[Announcement]:
    return (
        Announcement.query.filter_by(residence_id=residence_id())
        .order_by(Announcement.created_at.desc())
        .limit(limit)
        .all()
    )


def create_announcement(payload: dict[str, str]) -> Announcement:
    syndic = ensure_role(UserRole.SYNDIC, message="Only syndics can publish announcements")
    title = (payload.get("title") or "").strip()
    if not title:
        raise ValueError("Title is required")
    announcement = Announcement(
        residence_id=residence_id(),
        title=title,
        body=(payload.get("body") or "").strip(),
        created_by=syndic.id,
    )
    db.session.add(announcement)
    db.session.commit()
    return announcement
