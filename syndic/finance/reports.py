from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal

from sqlalchemy import func

from syndic.core.extensions import db
from syndic.core.logging import get_logger
from syndic.core.models import (
    BalanceSnapshot,
    Contribution,
    Expense,
    ExpenseStatus,
    Fee,
    OUTSTANDING_CONTRIBUTION_STATUSES,
    OUTSTANDING_FEE_STATUSES,
    Payment,
    PaymentStatus,
    PaymentType,
    Residence,
    UserRole,
)
from syndic.core.tenancy import current_residence, ensure_role
from syndic.core.utils import month_bounds, parse_decimal
from syndic.finance.services import ZERO, _dec, residence_balances

log = get_logger(__name__)

FEE_PAYMENT_TYPES = (PaymentType.FEE, PaymentType.FINE, PaymentType.DEPOSIT)


def _period_window(start: date, end: date) -> tuple[datetime, datetime]:
    return (
        datetime.combine(start, time.min, tzinfo=timezone.utc),
        datetime.combine(end + timedelta(days=1), time.min, tzinfo=timezone.utc),
    )


def _collected(rid: int, start: date, end: date, types: tuple[PaymentType, ...]) -> Decimal:
    window_start, window_end = _period_window(start, end)
    total = (
        db.session.query(func.coalesce(func.sum(Payment.amount), 0))
        .filter(
            Payment.residence_id == rid,
            Payment.status == PaymentStatus.VERIFIED,
            Payment.payment_type.in_(types),
            Payment.paid_at >= window_start,
            Payment.paid_at < window_end,
        )
        .scalar()
    )
    return _dec(total)


def _expense_breakdown(rid: int, start: date, end: date) -> dict[str, Decimal]:
    rows = (
        db.session.query(Expense.category, func.coalesce(func.sum(Expense.amount), 0))
        .filter(
            Expense.residence_id == rid,
            Expense.status == ExpenseStatus.PAID,
            Expense.expense_date >= start,
            Expense.expense_date <= end,
        )
        .group_by(Expense.category)
        .order_by(Expense.category.asc())
        .all()
    )
    return {category: _dec(total) for category, total in rows}


def _outstanding(rid: int, as_of: date) -> dict[str, Decimal]:
    contributions = (
        Contribution.query.filter(
            Contribution.residence_id == rid,
            Contribution.status.in_(OUTSTANDING_CONTRIBUTION_STATUSES),
            Contribution.due_date <= as_of,
        )
        .all()
    )
    fees_total = (
        db.session.query(func.coalesce(func.sum(Fee.amount), 0))
        .filter(Fee.residence_id == rid, Fee.status.in_(OUTSTANDING_FEE_STATUSES), Fee.due_date <= as_of)
        .scalar()
    )
    return {
        "contributions": sum((contribution.outstanding for contribution in contributions), ZERO),
        "fees": _dec(fees_total),
    }


def _opening_snapshot(rid: int, start: date) -> BalanceSnapshot | None:
    return (
        BalanceSnapshot.query.filter(BalanceSnapshot.residence_id == rid, BalanceSnapshot.period_end < start)
        .order_by(BalanceSnapshot.period_end.desc())
        .first()
    )


def monthly_report(year: int, month: int, residence: Residence | None = None) -> dict[str, object]:
    residence = residence or current_residence()
    start, end = month_bounds(year, month)
    snapshot = _opening_snapshot(residence.id, start)
    opening = snapshot.total_balance if snapshot else ZERO

    contributions = _collected(residence.id, start, end, (PaymentType.CONTRIBUTION,))
    fees = _collected(residence.id, start, end, FEE_PAYMENT_TYPES)
    refunds = _collected(residence.id, start, end, (PaymentType.REFUND,))
    breakdown = _expense_breakdown(residence.id, start, end)
    expenses = sum(breakdown.values(), ZERO)
    income = contributions + fees - refunds
    net_change = income - expenses
    outstanding = _outstanding(residence.id, end)

    closed = BalanceSnapshot.query.filter_by(residence_id=residence.id, period_start=start).first()
    return {
        "period": {"year": year, "month": month, "start": start, "end": end},
        "opening_balance": opening,
        "income": {
            "contributions": contributions,
            "fees": fees,
            "refunds": refunds,
            "total": income,
        },
        "expenses": {"total": expenses, "by_category": breakdown},
        "net_change": net_change,
        "closing_balance": opening + net_change,
        "outstanding": {
            "contributions": outstanding["contributions"],
            "fees": outstanding["fees"],
            "total": outstanding["contributions"] + outstanding["fees"],
        },
        "closed": closed is not None,
    }


def annual_report(year: int, residence: Residence | None = None) -> dict[str, object]:
    residence = residence or current_residence()
    months = [monthly_report(year, month, residence) for month in range(1, 13)]
    totals = {
        "contributions": sum((row["income"]["contributions"] for row in months), ZERO),
        "fees": sum((row["income"]["fees"] for row in months), ZERO),
        "refunds": sum((row["income"]["refunds"] for row in months), ZERO),
        "income": sum((row["income"]["total"] for row in months), ZERO),
        "expenses": sum((row["expenses"]["total"] for row in months), ZERO),
        "net_change": sum((row["net_change"] for row in months), ZERO),
    }
    categories: dict[str, Decimal] = {}
    for row in months:
        for category, amount in row["expenses"]["by_category"].items():
            categories[category] = categories.get(category, ZERO) + amount
    return {
        "year": year,
        "months": months,
        "totals": totals,
        "expenses_by_category": categories,
        "opening_balance": months[0]["opening_balance"],
        "closing_balance": months[0]["opening_balance"] + totals["net_change"],
        "outstanding": months[-1]["outstanding"],
    }


def close_month(
    year: int,
    month: int,
    cash_balance=None,
    bank_balance=None,
    notes: str | None = None,
) -> BalanceSnapshot:
    """Freeze the month's figures in a BalanceSnapshot; a period closes only once."""
    syndic = ensure_role(UserRole.SYNDIC, message="Only syndics can close a period")
    residence = current_residence()
    start, end = month_bounds(year, month)
    if BalanceSnapshot.query.filter_by(residence_id=residence.id, period_start=start).first():
        raise ValueError("This period has already been closed")

    report = monthly_report(year, month, residence)
    balances = residence_balances(residence.id)
    cash = parse_decimal(cash_balance, "cash_balance") if cash_balance not in (None, "") else balances["cash_on_hand"]
    bank = parse_decimal(bank_balance, "bank_balance") if bank_balance not in (None, "") else balances["bank_balance"]

    snapshot = BalanceSnapshot(
        residence_id=residence.id,
        period_start=start,
        period_end=end,
        snapshot_date=date.today(),
        cash_balance=cash,
        bank_balance=bank,
        contributions_collected=report["income"]["contributions"],
        fees_collected=report["income"]["fees"],
        total_expenses=report["expenses"]["total"],
        net_change=report["net_change"],
        outstanding_contributions=report["outstanding"]["contributions"],
        outstanding_fees=report["outstanding"]["fees"],
        notes=(notes or "").strip() or None,
        created_by=syndic.id,
    )
    db.session.add(snapshot)
    db.session.commit()
    log.info("period_closed", residence_id=residence.id, period_start=start.isoformat(), total=str(snapshot.total_balance))
    return snapshot


def serialize_snapshot(snapshot: BalanceSnapshot) -> dict[str, object]:
    return {
        "id": snapshot.id,
        "period_start": snapshot.period_start,
        "period_end": snapshot.period_end,
        "snapshot_date": snapshot.snapshot_date,
        "cash_balance": _dec(snapshot.cash_balance),
        "bank_balance": _dec(snapshot.bank_balance),
        "total_balance": _dec(snapshot.total_balance),
        "contributions_collected": _dec(snapshot.contributions_collected),
        "fees_collected": _dec(snapshot.fees_collected),
        "total_expenses": _dec(snapshot.total_expenses),
        "net_change": _dec(snapshot.net_change),
        "outstanding_contributions": _dec(snapshot.outstanding_contributions),
        "outstanding_fees": _dec(snapshot.outstanding_fees),
        "notes": snapshot.notes,
    }
