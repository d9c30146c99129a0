from __future__ import annotations

from datetime import date

from flask import abort, flash, g, redirect, render_template, request, url_for
from flask_login import login_required

from syndic.core.errors import NotFoundError
from syndic.core.i18n import translate
from syndic.core.models import (
    ContributionStatus,
    ExpenseStatus,
    FeeStatus,
    FeeType,
    FundSource,
    PaymentMethod,
    PaymentStatus,
    PaymentType,
    PeriodType,
    UserRole,
)
from syndic.core.permissions import require_residence, require_role
from syndic.core.utils import month_bounds
from syndic.finance import finance_bp
from syndic.finance.reports import annual_report, close_month, monthly_report
from syndic.finance.services import (
    add_manual_contribution,
    allocate_payment,
    approve_expense,
    bulk_create_fees,
    contribution_status_matrix,
    create_expense,
    create_fee,
    create_plan,
    deactivate_plan,
    delete_expense,
    delete_fee,
    expense_by_id,
    expense_categories,
    fee_by_id,
    generate_contributions,
    list_expenses,
    list_fees,
    list_payments,
    list_plans,
    mark_fee_paid,
    outstanding_items,
    pay_expense,
    payment_by_id,
    payment_residents,
    record_cash_payment,
    reject_payment,
    submit_payment,
    unit_balance,
    update_contribution,
    update_expense,
    update_fee,
    verify_payment,
)


def _form() -> dict[str, str]:
    return {key: value for key, value in request.form.items()}


def _is_syndic() -> bool:
    return g.profile.role == UserRole.SYNDIC


@finance_bp.get("/fees")
@login_required
@require_residence
def fees_page():
    filters = {
        "status": request.args.get("status", "").strip(),
        "apartment": request.args.get("apartment", "").strip(),
    }
    try:
        fees = list_fees(filters)
    except ValueError as exc:
        flash(str(exc), "error")
        fees = list_fees()
    return render_template(
        "finance/fees.html",
        fees=fees,
        filters=filters,
        residents=payment_residents() if _is_syndic() else [],
        FeeStatus=FeeStatus,
        FeeType=FeeType,
        today=date.today(),
    )


@finance_bp.get("/fees/<int:fee_id>")
@login_required
@require_residence
def fee_detail(fee_id: int):
    try:
        fee = fee_by_id(fee_id)
    except NotFoundError:
        abort(404)
    return render_template("finance/fee_detail.html", fee=fee, FeeStatus=FeeStatus, PaymentMethod=PaymentMethod)


@finance_bp.post("/fees")
@login_required
@require_role(UserRole.SYNDIC)
def fee_create():
    try:
        fee = create_fee(_form())
        flash(f"{translate('flash.saved')}: {fee.title} ({fee.apartment_number})", "success")
    except ValueError as exc:
        flash(str(exc), "error")
    return redirect(url_for("finance.fees_page"))


@finance_bp.post("/fees/bulk")
@login_required
@require_role(UserRole.SYNDIC)
def fee_bulk_create():
    payload: dict[str, object] = dict(_form())
    payload["apartment_numbers"] = request.form.getlist("apartment_numbers") or request.form.get(
        "apartment_numbers", ""
    )
    try:
        result = bulk_create_fees(payload)
        flash(f"Fees created: {len(result.created)}", "success")
        if result.missing_apartments:
            flash(f"Unknown apartments: {', '.join(result.missing_apartments)}", "error")
    except ValueError as exc:
        flash(str(exc), "error")
    return redirect(url_for("finance.fees_page"))


@finance_bp.post("/fees/<int:fee_id>/update")
@login_required
@require_role(UserRole.SYNDIC)
def fee_update(fee_id: int):
    try:
        update_fee(fee_id, _form())
        flash(translate("flash.saved"), "success")
    except NotFoundError:
        abort(404)
    except ValueError as exc:
        flash(str(exc), "error")
    return redirect(url_for("finance.fee_detail", fee_id=fee_id))


@finance_bp.post("/fees/<int:fee_id>/delete")
@login_required
@require_role(UserRole.SYNDIC)
def fee_delete(fee_id: int):
    try:
        delete_fee(fee_id)
        flash(translate("flash.deleted"), "success")
    except NotFoundError:
        abort(404)
    except ValueError as exc:
        flash(str(exc), "error")
        return redirect(url_for("finance.fee_detail", fee_id=fee_id))
    return redirect(url_for("finance.fees_page"))


@finance_bp.post("/fees/<int:fee_id>/pay")
@login_required
@require_role(UserRole.SYNDIC)
def fee_mark_paid(fee_id: int):
    try:
        payment = mark_fee_paid(fee_id, request.form.get("method", PaymentMethod.CASH.value))
        flash(f"Payment recorded: {payment.receipt_number}", "success")
    except NotFoundError:
        abort(404)
    except ValueError as exc:
        flash(str(exc), "error")
    return redirect(url_for("finance.fee_detail", fee_id=fee_id))


@finance_bp.get("/contributions")
@login_required
@require_residence
def contributions_page():
    year = request.args.get("year", type=int) or date.today().year
    syndic = _is_syndic()
    return render_template(
        "finance/contributions.html",
        year=year,
        plans=list_plans() if syndic else [],
        matrix=contribution_status_matrix(year) if syndic else [],
        residents=payment_residents() if syndic else [],
        outstanding=None if syndic else outstanding_items(),
        PeriodType=PeriodType,
        ContributionStatus=ContributionStatus,
    )


@finance_bp.post("/contributions/plans")
@login_required
@require_role(UserRole.SYNDIC)
def plan_create():
    try:
        plan = create_plan(_form())
        flash(f"{translate('flash.saved')}: {plan.plan_name}", "success")
    except ValueError as exc:
        flash(str(exc), "error")
    return redirect(url_for("finance.contributions_page"))


@finance_bp.post("/contributions/plans/<int:plan_id>/deactivate")
@login_required
@require_role(UserRole.SYNDIC)
def plan_deactivate(plan_id: int):
    try:
        deactivate_plan(plan_id)
        flash(translate("flash.saved"), "success")
    except NotFoundError:
        abort(404)
    return redirect(url_for("finance.contributions_page"))


@finance_bp.post("/contributions/generate")
@login_required
@require_role(UserRole.SYNDIC)
def contributions_generate():
    year = request.form.get("year", type=int)
    month = request.form.get("month", type=int)
    if not year or not month:
        flash("Choose a year and a month", "error")
        return redirect(url_for("finance.contributions_page"))
    try:
        start, end = month_bounds(year, month)
        result = generate_contributions(start, end)
        flash(
            f"Contributions {result.period_start} - {result.period_end}: "
            f"created={result.created}, existing={result.existing}",
            "success",
        )
    except ValueError as exc:
        flash(str(exc), "error")
    return redirect(url_for("finance.contributions_page", year=year))


@finance_bp.post("/contributions/manual")
@login_required
@require_role(UserRole.SYNDIC)
def contribution_manual():
    try:
        add_manual_contribution(_form())
        flash(translate("flash.saved"), "success")
    except ValueError as exc:
        flash(str(exc), "error")
    return redirect(url_for("finance.contributions_page"))


@finance_bp.post("/contributions/<int:contribution_id>/update")
@login_required
@require_role(UserRole.SYNDIC)
def contribution_update(contribution_id: int):
    try:
        update_contribution(contribution_id, _form())
        flash(translate("flash.saved"), "success")
    except NotFoundError:
        abort(404)
    except ValueError as exc:
        flash(str(exc), "error")
    return redirect(url_for("finance.contributions_page"))


@finance_bp.get("/payments")
@login_required
@require_residence
def payments_page():
    filters = {
        "status": request.args.get("status", "").strip(),
        "method": request.args.get("method", "").strip(),
        "user_id": request.args.get("user_id", "").strip(),
    }
    try:
        payments = list_payments(filters)
    except ValueError as exc:
        flash(str(exc), "error")
        payments = list_payments()
    return render_template(
        "finance/payments.html",
        payments=payments,
        filters=filters,
        residents=payment_residents() if _is_syndic() else [],
        PaymentMethod=PaymentMethod,
        PaymentStatus=PaymentStatus,
        PaymentType=PaymentType,
    )


@finance_bp.get("/payments/<int:payment_id>")
@login_required
@require_residence
def payment_detail(payment_id: int):
    try:
        payment = payment_by_id(payment_id)
    except NotFoundError:
        abort(404)
    outstanding = outstanding_items(payment.user_id) if _is_syndic() else None
    return render_template(
        "finance/payment_detail.html",
        payment=payment,
        outstanding=outstanding,
        PaymentStatus=PaymentStatus,
    )


@finance_bp.post("/payments/cash")
@login_required
@require_role(UserRole.SYNDIC)
def payment_record_cash():
    try:
        payment = record_cash_payment(_form())
        flash(f"Payment recorded: {payment.receipt_number}", "success")
    except ValueError as exc:
        flash(str(exc), "error")
        return redirect(url_for("finance.payments_page"))
    return redirect(url_for("finance.payment_detail", payment_id=payment.id))


@finance_bp.post("/payments/submit")
@login_required
@require_residence
def payment_submit():
    try:
        submit_payment(_form(), request.files.get("proof"))
        flash(translate("flash.saved"), "success")
    except ValueError as exc:
        flash(str(exc), "error")
    return redirect(url_for("finance.payments_page"))


@finance_bp.post("/payments/<int:payment_id>/verify")
@login_required
@require_role(UserRole.SYNDIC)
def payment_verify(payment_id: int):
    try:
        payment = verify_payment(payment_id)
        flash(f"Payment verified: {payment.receipt_number}", "success")
    except NotFoundError:
        abort(404)
    except ValueError as exc:
        flash(str(exc), "error")
    return redirect(url_for("finance.payment_detail", payment_id=payment_id))


@finance_bp.post("/payments/<int:payment_id>/reject")
@login_required
@require_role(UserRole.SYNDIC)
def payment_reject(payment_id: int):
    try:
        reject_payment(payment_id, request.form.get("reason", ""))
        flash(translate("flash.saved"), "success")
    except NotFoundError:
        abort(404)
    except ValueError as exc:
        flash(str(exc), "error")
    return redirect(url_for("finance.payment_detail", payment_id=payment_id))


@finance_bp.post("/payments/<int:payment_id>/allocate")
@login_required
@require_role(UserRole.SYNDIC)
def payment_allocate(payment_id: int):
    try:
        result = allocate_payment(payment_id)
        flash(f"Allocated lines: {len(result.allocations)}, credit: {result.remaining_credit}", "success")
    except NotFoundError:
        abort(404)
    except ValueError as exc:
        flash(str(exc), "error")
    return redirect(url_for("finance.payment_detail", payment_id=payment_id))


@finance_bp.get("/balance")
@login_required
@require_residence
def balance_page():
    user_id = request.args.get("user_id", type=int)
    try:
        balance = unit_balance(user_id, request.args.get("apartment"))
    except NotFoundError:
        abort(404)
    return render_template(
        "finance/balance.html",
        balance=balance,
        residents=payment_residents() if _is_syndic() else [],
    )


@finance_bp.get("/expenses")
@login_required
@require_role(UserRole.SYNDIC, UserRole.GUARD)
def expenses_page():
    filters = {
        "status": request.args.get("status", "").strip(),
        "category": request.args.get("category", "").strip(),
        "search": request.args.get("search", "").strip(),
    }
    try:
        expenses = list_expenses(filters)
    except ValueError as exc:
        flash(str(exc), "error")
        expenses = list_expenses()
    return render_template(
        "finance/expenses.html",
        expenses=expenses,
        filters=filters,
        categories=expense_categories(),
        ExpenseStatus=ExpenseStatus,
        FundSource=FundSource,
        today=date.today(),
    )


@finance_bp.post("/expenses")
@login_required
@require_role(UserRole.SYNDIC)
def expense_create():
    try:
        create_expense(_form(), request.files.get("attachment"))
        flash(translate("flash.saved"), "success")
    except ValueError as exc:
        flash(str(exc), "error")
    return redirect(url_for("finance.expenses_page"))


@finance_bp.post("/expenses/<int:expense_id>/<action>")
@login_required
@require_role(UserRole.SYNDIC)
def expense_action(expense_id: int, action: str):
    handlers = {
        "update": lambda: update_expense(expense_id, _form(), request.files.get("attachment")),
        "approve": lambda: approve_expense(expense_id),
        "pay": lambda: pay_expense(expense_id, request.form.get("paid_from", FundSource.CASH.value)),
        "delete": lambda: delete_expense(expense_id),
    }
    handler = handlers.get(action)
    if handler is None:
        abort(404)
    try:
        expense_by_id(expense_id)
        handler()
        flash(translate("flash.deleted" if action == "delete" else "flash.saved"), "success")
    except NotFoundError:
        abort(404)
    except ValueError as exc:
        flash(str(exc), "error")
    return redirect(url_for("finance.expenses_page"))


@finance_bp.get("/reports")
@login_required
@require_role(UserRole.SYNDIC)
def reports_page():
    today = date.today()
    year = request.args.get("year", type=int) or today.year
    month = request.args.get("month", type=int)
    try:
        report = monthly_report(year, month) if month else annual_report(year)
    except ValueError as exc:
        flash(str(exc), "error")
        return redirect(url_for("finance.reports_page"))
    return render_template("finance/reports.html", report=report, year=year, month=month)


@finance_bp.post("/reports/close")
@login_required
@require_role(UserRole.SYNDIC)
def reports_close_month():
    year = request.form.get("year", type=int)
    month = request.form.get("month", type=int)
    if not year or not month:
        flash("Choose a year and a month", "error")
        return redirect(url_for("finance.reports_page"))
    try:
        snapshot = close_month(
            year,
            month,
            request.form.get("cash_balance"),
            request.form.get("bank_balance"),
            request.form.get("notes"),
        )
        flash(f"Period closed: {snapshot.period_start:%Y-%m}", "success")
    except ValueError as exc:
        flash(str(exc), "error")
    return redirect(url_for("finance.reports_page", year=year, month=month))
