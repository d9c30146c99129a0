from __future__ import annotations

from flask import g, request

from syndic.community.services import (
    add_complaint_evidence,
    assignable_users,
    complaint_by_id,
    create_complaint,
    create_incident,
    create_resident,
    delete_incident,
    get_resident,
    incident_by_id,
    list_complaint_evidence,
    list_complaints,
    list_incidents,
    list_residents,
    remove_resident,
    residents_for_complaint,
    serialize_complaint,
    serialize_evidence,
    serialize_incident,
    serialize_member,
    update_complaint_status,
    update_incident,
    update_resident,
)
from syndic.core.api import json_payload, ok
from syndic.core.extensions import db
from syndic.core.models import ExpenseStatus, FundSource, ProfileResidence, UserRole
from syndic.core.tenancy import current_profile, ensure_role
from syndic.finance.services import (
    approve_expense,
    create_expense,
    create_fee,
    dashboard_stats,
    delete_expense,
    delete_fee,
    expense_by_id,
    fee_by_id,
    list_expenses,
    list_fees,
    list_payments,
    pay_expense,
    payment_residents,
    record_cash_payment,
    residence_balances,
    resident_dashboard,
    serialize_expense,
    serialize_fee,
    serialize_payment,
    submit_payment,
    unit_balance,
    update_expense,
    update_fee,
    upload_expense_attachment,
)
from syndic.mobile import mobile_bp
from syndic.mobile.auth import mobile_auth_required, profile_block

STAFF_ROLES = (UserRole.SYNDIC, UserRole.GUARD)


def _is_staff() -> bool:
    return current_profile().role in STAFF_ROLES


def _args() -> dict[str, str]:
    return {key: value for key, value in request.args.items()}


@mobile_bp.get("/dashboard")
@mobile_auth_required
def dashboard():
    if _is_staff():
        return ok(dashboard_stats())
    return ok(resident_dashboard())


@mobile_bp.get("/profile")
@mobile_auth_required
def profile_get():
    return ok(profile_block(current_profile()))


@mobile_bp.put("/profile")
@mobile_auth_required
def profile_update():
    profile = current_profile()
    payload = json_payload()
    if payload.get("full_name") is not None:
        full_name = str(payload["full_name"]).strip()
        if not full_name:
            raise ValueError("Full name is required")
        profile.user.full_name = full_name
    if payload.get("phone_number") is not None:
        profile.phone_number = str(payload["phone_number"]).strip()
    db.session.commit()
    return ok(profile_block(profile))


@mobile_bp.get("/profile/roles")
@mobile_auth_required
def profile_roles():
    profile = current_profile()
    links = ProfileResidence.query.filter_by(profile_id=profile.id).order_by(ProfileResidence.id.asc()).all()
    return ok(
        {
            "role": profile.role.value,
            "residenceId": g.residence.id if g.residence else None,
            "residences": [
                {
                    "residence_id": link.residence_id,
                    "name": link.residence.name,
                    "apartment_number": link.apartment_number,
                    "verified": link.verified,
                }
                for link in links
            ],
        }
    )


@mobile_bp.get("/residents")
@mobile_auth_required
def residents_list():
    verified = {"true": True, "false": False}.get((request.args.get("verified") or "").lower())
    return ok(list_residents(verified, request.args.get("search")))


@mobile_bp.post("/residents")
@mobile_auth_required
def residents_create():
    created = create_resident(json_payload())
    return ok(serialize_member(created.link), status=201, emailSent=created.email_sent)


@mobile_bp.get("/residents/<int:profile_id>")
@mobile_auth_required
def resident_get(profile_id: int):
    return ok(get_resident(profile_id))


@mobile_bp.put("/residents/<int:profile_id>")
@mobile_auth_required
def resident_update(profile_id: int):
    return ok(serialize_member(update_resident(profile_id, json_payload())))


@mobile_bp.delete("/residents/<int:profile_id>")
@mobile_auth_required
def resident_delete(profile_id: int):
    return ok({"accountDeleted": remove_resident(profile_id)})


@mobile_bp.get("/fees")
@mobile_auth_required
def fees_list():
    return ok([serialize_fee(fee) for fee in list_fees(_args())])


@mobile_bp.post("/fees")
@mobile_auth_required
def fees_create():
    return ok(serialize_fee(create_fee(json_payload())), status=201)


@mobile_bp.get("/fees/<int:fee_id>")
@mobile_auth_required
def fee_get(fee_id: int):
    return ok(serialize_fee(fee_by_id(fee_id)))


@mobile_bp.put("/fees/<int:fee_id>")
@mobile_auth_required
def fee_update(fee_id: int):
    return ok(serialize_fee(update_fee(fee_id, json_payload())))


@mobile_bp.delete("/fees/<int:fee_id>")
@mobile_auth_required
def fee_delete(fee_id: int):
    delete_fee(fee_id)
    return ok()


@mobile_bp.get("/payments")
@mobile_auth_required
def payments_list():
    limit = request.args.get("limit", type=int) or 50
    return ok([serialize_payment(payment) for payment in list_payments(_args(), limit=limit)])


@mobile_bp.post("/payments")
@mobile_auth_required
def payments_create():
    payload = json_payload()
    if current_profile().role == UserRole.SYNDIC:
        payment = record_cash_payment(payload)
    else:
        payment = submit_payment(payload, request.files.get("proof"))
    return ok(serialize_payment(payment), status=201)


@mobile_bp.get("/payments/balances")
@mobile_auth_required
def payments_balances():
    if _is_staff():
        balances = residence_balances()
        return ok(
            {
                "cashOnHand": balances["cash_on_hand"],
                "bankBalance": balances["bank_balance"],
                "total": balances["total"],
            }
        )
    return ok(unit_balance(apartment=request.args.get("apartment")))


@mobile_bp.get("/payments/residents")
@mobile_auth_required
def payments_residents():
    ensure_role(UserRole.SYNDIC, message="Only syndics can record payments")
    return ok(payment_residents())


@mobile_bp.get("/incidents")
@mobile_auth_required
def incidents_list():
    return ok([serialize_incident(incident) for incident in list_incidents(request.args.get("status"))])


@mobile_bp.post("/incidents")
@mobile_auth_required
def incidents_create():
    incident = create_incident(json_payload(), request.files.get("photo"))
    return ok(serialize_incident(incident), status=201)


@mobile_bp.get("/incidents/assignable-users")
@mobile_auth_required
def incidents_assignable():
    return ok(assignable_users())


@mobile_bp.get("/incidents/<int:incident_id>")
@mobile_auth_required
def incident_get(incident_id: int):
    return ok(serialize_incident(incident_by_id(incident_id)))


@mobile_bp.patch("/incidents/<int:incident_id>")
@mobile_auth_required
def incident_update(incident_id: int):
    incident = update_incident(incident_id, json_payload(), request.files.get("photo"))
    return ok(serialize_incident(incident))


@mobile_bp.delete("/incidents/<int:incident_id>")
@mobile_auth_required
def incident_delete(incident_id: int):
    delete_incident(incident_id)
    return ok()


@mobile_bp.get("/complaints")
@mobile_auth_required
def complaints_list():
    complaints = list_complaints(request.args.get("status"))
    return ok([serialize_complaint(complaint) for complaint in complaints])


@mobile_bp.post("/complaints")
@mobile_auth_required
def complaints_create():
    return ok(serialize_complaint(create_complaint(json_payload())), status=201)


@mobile_bp.get("/complaints/residents")
@mobile_auth_required
def complaints_residents():
    return ok(residents_for_complaint())


@mobile_bp.get("/complaints/<int:complaint_id>")
@mobile_auth_required
def complaint_get(complaint_id: int):
    return ok(serialize_complaint(complaint_by_id(complaint_id)))


@mobile_bp.patch("/complaints/<int:complaint_id>")
@mobile_auth_required
def complaint_update(complaint_id: int):
    payload = json_payload()
    complaint = update_complaint_status(
        complaint_id,
        str(payload.get("status") or ""),
        payload.get("resolution_notes"),
    )
    return ok(serialize_complaint(complaint))


@mobile_bp.get("/complaints/<int:complaint_id>/evidence")
@mobile_auth_required
def complaint_evidence_list(complaint_id: int):
    return ok([serialize_evidence(item) for item in list_complaint_evidence(complaint_id)])


@mobile_bp.post("/complaints/<int:complaint_id>/evidence")
@mobile_auth_required
def complaint_evidence_upload(complaint_id: int):
    evidence = add_complaint_evidence(complaint_id, request.files.get("file"))
    return ok(serialize_evidence(evidence), status=201)


@mobile_bp.get("/expenses")
@mobile_auth_required
def expenses_list():
    return ok([serialize_expense(expense) for expense in list_expenses(_args())])


@mobile_bp.post("/expenses")
@mobile_auth_required
def expenses_create():
    expense = create_expense(json_payload(), request.files.get("attachment"))
    return ok(serialize_expense(expense), status=201)


@mobile_bp.post("/expenses/upload")
@mobile_auth_required
def expenses_upload():
    return ok({"url": upload_expense_attachment(request.files.get("file"))}, status=201)


@mobile_bp.get("/expenses/<int:expense_id>")
@mobile_auth_required
def expense_get(expense_id: int):
    return ok(serialize_expense(expense_by_id(expense_id)))


@mobile_bp.put("/expenses/<int:expense_id>")
@mobile_auth_required
def expense_update(expense_id: int):
    payload = json_payload()
    status = str(payload.get("status") or "").strip().lower()
    if status == ExpenseStatus.APPROVED.value:
        expense = approve_expense(expense_id)
    elif status == ExpenseStatus.PAID.value:
        expense = pay_expense(expense_id, str(payload.get("paid_from") or FundSource.CASH.value))
    else:
        expense = update_expense(expense_id, payload, request.files.get("attachment"))
    return ok(serialize_expense(expense))


@mobile_bp.delete("/expenses/<int:expense_id>")
@mobile_auth_required
def expense_delete(expense_id: int):
    delete_expense(expense_id)
    return ok()
