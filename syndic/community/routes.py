from __future__ import annotations

from flask import abort, flash, g, jsonify, redirect, render_template, request, url_for
from flask_login import login_required

from syndic.community import community_bp
from syndic.community.services import (
    add_complaint_evidence,
    assignable_users,
    check_apartment,
    complaint_by_id,
    create_announcement,
    create_complaint,
    create_incident,
    create_resident,
    delete_incident,
    incident_by_id,
    list_announcements,
    list_complaint_evidence,
    list_complaints,
    list_incidents,
    list_residents,
    remove_resident,
    resend_onboarding_code,
    residents_for_complaint,
    serialize_complaint,
    update_complaint_status,
    update_incident,
    update_resident,
    verify_resident_link,
)
from syndic.core.errors import NotFoundError
from syndic.core.i18n import translate
from syndic.core.models import (
    ComplaintPrivacy,
    ComplaintReason,
    ComplaintStatus,
    IncidentStatus,
    UserRole,
)
from syndic.core.permissions import require_residence, require_role


def _form() -> dict[str, str]:
    return {key: value for key, value in request.form.items()}


@community_bp.get("/residents")
@login_required
@require_role(UserRole.SYNDIC, UserRole.GUARD)
def residents_page():
    status = request.args.get("status", "").strip()
    verified = {"verified": True, "pending": False}.get(status)
    try:
        residents = list_residents(verified, request.args.get("q", ""))
    except ValueError as exc:
        flash(str(exc), "error")
        residents = []
    return render_template("community/residents.html", residents=residents, status=status)


@community_bp.post("/residents")
@login_required
@require_role(UserRole.SYNDIC)
def resident_create():
    try:
        created = create_resident(_form())
        flash(f"{translate('flash.saved')}: {created.profile.full_name} ({created.link.apartment_number})", "success")
        if not created.email_sent:
            flash(f"Access code not emailed, share it manually: {created.code}", "warning")
    except ValueError as exc:
        flash(str(exc), "error")
    return redirect(url_for("community.residents_page"))


@community_bp.get("/residents/check-apartment")
@login_required
@require_residence
def resident_check_apartment():
    try:
        return jsonify({"success": True, "data": check_apartment(request.args.get("apartment"))})
    except ValueError as exc:
        return jsonify({"success": False, "error": str(exc)}), 400


@community_bp.post("/residents/<int:profile_id>/<action>")
@login_required
@require_role(UserRole.SYNDIC)
def resident_action(profile_id: int, action: str):
    handlers = {
        "update": lambda: update_resident(profile_id, _form()),
        "remove": lambda: remove_resident(profile_id),
        "resend-code": lambda: resend_onboarding_code(profile_id),
    }
    handler = handlers.get(action)
    if handler is None:
        abort(404)
    try:
        result = handler()
        if action == "resend-code" and not result:
            flash("Access code regenerated but the email could not be sent", "warning")
        else:
            flash(translate("flash.deleted" if action == "remove" else "flash.saved"), "success")
    except NotFoundError:
        abort(404)
    except ValueError as exc:
        flash(str(exc), "error")
    return redirect(url_for("community.residents_page"))


@community_bp.post("/links/<int:link_id>/verify")
@login_required
@require_role(UserRole.SYNDIC)
def link_verify(link_id: int):
    try:
        verify_resident_link(link_id)
        flash(translate("flash.saved"), "success")
    except NotFoundError:
        abort(404)
    return redirect(url_for("community.residents_page", status="pending"))


@community_bp.get("/incidents")
@login_required
@require_residence
def incidents_page():
    status = request.args.get("status", "").strip()
    try:
        incidents = list_incidents(status)
    except ValueError as exc:
        flash(str(exc), "error")
        incidents = list_incidents()
    return render_template(
        "community/incidents.html",
        incidents=incidents,
        status=status,
        IncidentStatus=IncidentStatus,
    )


@community_bp.post("/incidents")
@login_required
@require_residence
def incident_create():
    try:
        incident = create_incident(_form(), request.files.get("photo"))
        flash(translate("flash.saved"), "success")
    except ValueError as exc:
        flash(str(exc), "error")
        return redirect(url_for("community.incidents_page"))
    return redirect(url_for("community.incident_detail", incident_id=incident.id))


@community_bp.get("/incidents/<int:incident_id>")
@login_required
@require_residence
def incident_detail(incident_id: int):
    try:
        incident = incident_by_id(incident_id)
    except NotFoundError:
        abort(404)
    return render_template(
        "community/incident_detail.html",
        incident=incident,
        assignees=assignable_users() if g.profile.role == UserRole.SYNDIC else [],
        IncidentStatus=IncidentStatus,
    )


@community_bp.post("/incidents/<int:incident_id>/update")
@login_required
@require_residence
def incident_update(incident_id: int):
    try:
        update_incident(incident_id, _form(), request.files.get("photo"))
        flash(translate("flash.saved"), "success")
    except NotFoundError:
        abort(404)
    except ValueError as exc:
        flash(str(exc), "error")
    return redirect(url_for("community.incident_detail", incident_id=incident_id))


@community_bp.post("/incidents/<int:incident_id>/delete")
@login_required
@require_residence
def incident_delete(incident_id: int):
    try:
        delete_incident(incident_id)
        flash(translate("flash.deleted"), "success")
    except NotFoundError:
        abort(404)
    except ValueError as exc:
        flash(str(exc), "error")
        return redirect(url_for("community.incident_detail", incident_id=incident_id))
    return redirect(url_for("community.incidents_page"))


@community_bp.get("/complaints")
@login_required
@require_role(UserRole.SYNDIC, UserRole.RESIDENT)
def complaints_page():
    status = request.args.get("status", "").strip()
    try:
        complaints = list_complaints(status)
    except ValueError as exc:
        flash(str(exc), "error")
        complaints = list_complaints()
    return render_template(
        "community/complaints.html",
        complaints=[serialize_complaint(complaint) for complaint in complaints],
        status=status,
        neighbours=residents_for_complaint() if g.profile.role == UserRole.RESIDENT else [],
        ComplaintReason=ComplaintReason,
        ComplaintPrivacy=ComplaintPrivacy,
        ComplaintStatus=ComplaintStatus,
    )


@community_bp.post("/complaints")
@login_required
@require_role(UserRole.RESIDENT)
def complaint_create():
    try:
        create_complaint(_form())
        flash(translate("flash.saved"), "success")
    except ValueError as exc:
        flash(str(exc), "error")
    return redirect(url_for("community.complaints_page"))


@community_bp.get("/complaints/<int:complaint_id>")
@login_required
@require_role(UserRole.SYNDIC, UserRole.RESIDENT)
def complaint_detail(complaint_id: int):
    try:
        complaint = complaint_by_id(complaint_id)
    except NotFoundError:
        abort(404)
    can_see_evidence = g.profile.role == UserRole.SYNDIC or g.profile.id == complaint.complainant_id
    return render_template(
        "community/complaint_detail.html",
        complaint=serialize_complaint(complaint),
        evidence=list_complaint_evidence(complaint_id) if can_see_evidence else [],
        can_add_evidence=g.profile.id == complaint.complainant_id and complaint.status != ComplaintStatus.RESOLVED,
        ComplaintStatus=ComplaintStatus,
    )


@community_bp.post("/complaints/<int:complaint_id>/evidence")
@login_required
@require_role(UserRole.RESIDENT)
def complaint_evidence(complaint_id: int):
    try:
        add_complaint_evidence(complaint_id, request.files.get("file"))
        flash(translate("flash.saved"), "success")
    except NotFoundError:
        abort(404)
    except ValueError as exc:
        flash(str(exc), "error")
    return redirect(url_for("community.complaint_detail", complaint_id=complaint_id))


@community_bp.post("/complaints/<int:complaint_id>/status")
@login_required
@require_role(UserRole.SYNDIC)
def complaint_status(complaint_id: int):
    try:
        update_complaint_status(complaint_id, request.form.get("status", ""), request.form.get("resolution_notes"))
        flash(translate("flash.saved"), "success")
    except NotFoundError:
        abort(404)
    except ValueError as exc:
        flash(str(exc), "error")
    return redirect(url_for("community.complaint_detail", complaint_id=complaint_id))


@community_bp.get("/announcements")
@login_required
@require_residence
def announcements_page():
    return render_template("community/announcements.html", announcements=list_announcements())


@community_bp.post("/announcements")
@login_required
@require_role(UserRole.SYNDIC)
def announcement_create():
    try:
        create_announcement(_form())
        flash(translate("flash.saved"), "success")
    except ValueError as exc:
        flash(str(exc), "error")
    return redirect(url_for("community.announcements_page"))
