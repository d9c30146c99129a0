"""Session-authenticated JSON endpoints used by the web screens' scripts."""

from __future__ import annotations

from datetime import date

from flask import request

from syndic.core.api import json_payload, ok, register_json_errors
from syndic.core.permissions import require_profile
from syndic.finance import finance_api_bp
from syndic.finance.reports import annual_report, close_month, monthly_report, serialize_snapshot
from syndic.finance.services import (
    allocate_payment,
    contribution_status_matrix,
    create_plan,
    deactivate_plan,
    generate_contributions,
    list_plans,
    outstanding_items,
    reject_payment,
    serialize_payment,
    serialize_plan,
    unit_balance,
    update_plan,
    verify_payment,
)

register_json_errors(finance_api_bp)


def _int_arg(name: str) -> int | None:
    raw = (request.args.get(name) or "").strip()
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"Invalid {name}") from exc


@finance_api_bp.route("/payments/<int:payment_id>/verify", methods=["POST", "PUT"])
@require_profile
def api_verify_payment(payment_id: int):
    return ok(serialize_payment(verify_payment(payment_id)))


@finance_api_bp.route("/payments/<int:payment_id>/reject", methods=["POST", "PUT"])
@require_profile
def api_reject_payment(payment_id: int):
    payload = json_payload()
    return ok(serialize_payment(reject_payment(payment_id, str(payload.get("reason") or ""))))


@finance_api_bp.post("/payments/allocate")
@require_profile
def api_allocate_payment():
    payload = json_payload()
    if not payload.get("payment_id"):
        raise ValueError("payment_id is required")
    allocations = payload.get("allocations") or None
    if allocations is not None and not isinstance(allocations, list):
        raise ValueError("allocations must be a list")
    result = allocate_payment(int(payload["payment_id"]), allocations)
    return ok(
        {
            "payment_id": result.payment_id,
            "allocations": result.allocations,
            "remaining_credit": result.remaining_credit,
        }
    )


@finance_api_bp.get("/payments/outstanding")
@require_profile
def api_outstanding():
    return ok(outstanding_items(_int_arg("user_id"), request.args.get("apartment")))


@finance_api_bp.get("/financial/unit-balance")
@require_profile
def api_unit_balance():
    return ok(unit_balance(_int_arg("user_id"), request.args.get("apartment")))


@finance_api_bp.get("/financial/reports")
@require_profile
def api_reports():
    year = _int_arg("year") or date.today().year
    month = _int_arg("month")
    if month:
        return ok(monthly_report(year, month))
    return ok(annual_report(year))


@finance_api_bp.post("/financial/close-month")
@require_profile
def api_close_month():
    payload = json_payload()
    try:
        year = int(payload.get("year"))
        month = int(payload.get("month"))
    except (TypeError, ValueError) as exc:
        raise ValueError("year and month are required") from exc
    snapshot = close_month(
        year,
        month,
        payload.get("cash_balance"),
        payload.get("bank_balance"),
        payload.get("notes"),
    )
    return ok(serialize_snapshot(snapshot), status=201)


@finance_api_bp.get("/contributions/plans")
@require_profile
def api_list_plans():
    active_only = (request.args.get("active") or "").lower() in {"1", "true"}
    return ok([serialize_plan(plan) for plan in list_plans(active_only)])


@finance_api_bp.post("/contributions/plans")
@require_profile
def api_create_plan():
    return ok(serialize_plan(create_plan(json_payload())), status=201)


@finance_api_bp.put("/contributions/plans/<int:plan_id>")
@require_profile
def api_update_plan(plan_id: int):
    return ok(serialize_plan(update_plan(plan_id, json_payload())))


@finance_api_bp.delete("/contributions/plans/<int:plan_id>")
@require_profile
def api_deactivate_plan(plan_id: int):
    return ok(serialize_plan(deactivate_plan(plan_id)))


@finance_api_bp.post("/contributions/generate")
@require_profile
def api_generate_contributions():
    payload = json_payload()
    result = generate_contributions(payload.get("period_start"), payload.get("period_end"))
    return ok(
        {
            "created": result.created,
            "existing": result.existing,
            "plan_id": result.plan_id,
            "period_start": result.period_start,
            "period_end": result.period_end,
        },
        status=201 if result.created else 200,
    )


@finance_api_bp.get("/contributions/status")
@require_profile
def api_contribution_status():
    year = _int_arg("year") or date.today().year
    return ok({"year": year, "residents": contribution_status_matrix(year)})
