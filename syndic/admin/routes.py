from __future__ import annotations

from flask import abort, flash, redirect, render_template, request, url_for
from flask_login import login_required

from syndic.admin import admin_bp, onboarding_bp
from syndic.admin.services import (
    cancel_submission,
    create_residence,
    create_residence_for_syndic,
    document_status,
    list_residences,
    list_submissions,
    list_syndics,
    residence_detail,
    review_document,
    serialize_submission,
    submit_documents,
)
from syndic.core.errors import NotFoundError
from syndic.core.i18n import translate
from syndic.core.models import SubmissionStatus, UserRole
from syndic.core.permissions import require_role


def _form() -> dict[str, str]:
    return {key: value for key, value in request.form.items()}


@admin_bp.get("/documents")
@login_required
@require_role(UserRole.ADMIN)
def documents_page():
    status = request.args.get("status", SubmissionStatus.PENDING.value).strip()
    try:
        submissions = list_submissions(status or None)
    except ValueError as exc:
        flash(str(exc), "error")
        submissions = list_submissions()
    return render_template(
        "admin/documents.html",
        submissions=[serialize_submission(submission) for submission in submissions],
        residences=list_residences(vacant_only=True),
        status=status,
        SubmissionStatus=SubmissionStatus,
    )


@admin_bp.post("/documents/<int:submission_id>/review")
@login_required
@require_role(UserRole.ADMIN)
def document_review(submission_id: int):
    try:
        submission = review_document(
            submission_id,
            request.form.get("action", ""),
            request.form.get("residence_id"),
            request.form.get("reason"),
        )
        flash(f"Submission {submission.status.value}", "success")
    except NotFoundError:
        abort(404)
    except ValueError as exc:
        flash(str(exc), "error")
    return redirect(url_for("admin.documents_page"))


@admin_bp.get("/residences")
@login_required
@require_role(UserRole.ADMIN)
def residences_page():
    return render_template("admin/residences.html", residences=list_residences())


@admin_bp.post("/residences")
@login_required
@require_role(UserRole.ADMIN)
def residence_create():
    try:
        residence = create_residence(_form())
        flash(f"{translate('flash.saved')}: {residence.name}", "success")
    except ValueError as exc:
        flash(str(exc), "error")
    return redirect(url_for("admin.residences_page"))


@admin_bp.get("/residences/<int:residence_id>")
@login_required
@require_role(UserRole.ADMIN)
def residence_detail_page(residence_id: int):
    try:
        data = residence_detail(residence_id)
    except NotFoundError:
        abort(404)
    return render_template("admin/residence_detail.html", data=data)


@admin_bp.get("/syndics")
@login_required
@require_role(UserRole.ADMIN)
def syndics_page():
    return render_template("admin/syndics.html", syndics=list_syndics())


@onboarding_bp.get("/")
@login_required
@require_role(UserRole.SYNDIC)
def onboarding_page():
    return render_template("onboarding/index.html", status=document_status())


@onboarding_bp.post("/residence")
@login_required
@require_role(UserRole.SYNDIC)
def onboarding_residence():
    try:
        residence = create_residence_for_syndic(_form())
        flash(f"{translate('flash.saved')}: {residence.name}", "success")
    except ValueError as exc:
        flash(str(exc), "error")
        return redirect(url_for("onboarding.onboarding_page"))
    return redirect(url_for("dashboard_page"))


@onboarding_bp.post("/documents")
@login_required
@require_role(UserRole.SYNDIC)
def onboarding_documents():
    try:
        submit_documents(request.files.get("document"), request.files.get("id_card"))
        flash(translate("flash.saved"), "success")
    except ValueError as exc:
        flash(str(exc), "error")
    return redirect(url_for("onboarding.onboarding_page"))


@onboarding_bp.post("/documents/cancel")
@login_required
@require_role(UserRole.SYNDIC)
def onboarding_cancel():
    try:
        cancel_submission()
        flash(translate("flash.deleted"), "success")
    except ValueError as exc:
        flash(str(exc), "error")
    return redirect(url_for("onboarding.onboarding_page"))
