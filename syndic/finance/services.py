from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

from flask import current_app, g
from sqlalchemy import func, or_
from werkzeug.datastructures import FileStorage

from syndic.core.errors import NotFoundError, PermissionDeniedError
from syndic.core.extensions import db
from syndic.core.logging import get_logger
from syndic.core.mailer import send_fee_reminder
from syndic.core.models import (
    OPEN_INCIDENT_STATUSES,
    OUTSTANDING_CONTRIBUTION_STATUSES,
    OUTSTANDING_FEE_STATUSES,
    Announcement,
    Complaint,
    Contribution,
    ContributionPlan,
    ContributionStatus,
    Expense,
    ExpenseStatus,
    Fee,
    FeeReminder,
    FeeStatus,
    FeeType,
    FundSource,
    Incident,
    Payment,
    PaymentMethod,
    PaymentStatus,
    PaymentType,
    PeriodType,
    Profile,
    ProfileResidence,
    Residence,
    UserRole,
)
from syndic.core.storage import delete_upload, save_upload
from syndic.core.tenancy import current_profile, current_residence, ensure_role, residence_id
from syndic.core.utils import (
    CENT,
    as_utc,
    clamp_day,
    month_bounds,
    parse_bool,
    parse_decimal,
    parse_iso_date,
    parse_optional_date,
)

log = get_logger(__name__)

ZERO = Decimal("0.00")
CREDIT_NOTE_PREFIX = "Credit: "
STAFF_ROLES = (UserRole.SYNDIC, UserRole.GUARD)
DEFAULT_EXPENSE_CATEGORIES = (
    "maintenance",
    "repairs",
    "utilities",
    "cleaning",
    "security",
    "insurance",
    "administration",
    "other",
)


@dataclass
class BulkFeeResult:
    created: list[Fee] = field(default_factory=list)
    missing_apartments: list[str] = field(default_factory=list)


@dataclass
class ContributionGenerationResult:
    created: int = 0
    existing: int = 0
    plan_id: int | None = None
    period_start: date | None = None
    period_end: date | None = None


@dataclass
class AllocationResult:
    payment_id: int
    allocations: list[dict[str, object]] = field(default_factory=list)
    remaining_credit: Decimal = ZERO


def _dec(value) -> Decimal:
    return Decimal(str(value or 0)).quantize(CENT)


def _currency() -> str:
    return current_app.config.get("CURRENCY", "MAD")


def _require_syndic(message: str = "Only syndics can perform this action") -> Profile:
    return ensure_role(UserRole.SYNDIC, message=message)


def _is_staff(profile: Profile) -> bool:
    return profile.role in STAFF_ROLES


def _scoped_user_id(requested: int | None = None) -> int | None:
    """Residents only ever see their own rows; staff may narrow to one user."""
    profile = current_profile()
    if _is_staff(profile):
        return requested
    return profile.id


# ---------------------------------------------------------------------------
# Residents as seen by the finance screens
# ---------------------------------------------------------------------------


def verified_links(rid: int | None = None) -> list[ProfileResidence]:
    rid = rid or residence_id()
    return (
        ProfileResidence.query.join(Profile, Profile.id == ProfileResidence.profile_id)
        .filter(ProfileResidence.residence_id == rid)
        .filter(ProfileResidence.verified.is_(True))
        .filter(ProfileResidence.apartment_number.isnot(None))
        .order_by(ProfileResidence.apartment_number.asc())
        .all()
    )


def payment_residents() -> list[dict[str, object]]:
    return [
        {
            "id": link.profile_id,
            "link_id": link.id,
            "full_name": link.profile.full_name,
            "email": link.profile.email,
            "apartment_number": link.apartment_number,
        }
        for link in verified_links()
    ]


def _link_for(user_id: int | None = None, apartment: str | None = None) -> ProfileResidence:
    rid = residence_id()
    query = ProfileResidence.query.filter_by(residence_id=rid)
    apartment = (apartment or "").strip().upper()
    if apartment:
        query = query.filter_by(apartment_number=apartment)
    if user_id:
        query = query.filter_by(profile_id=int(user_id))
    if not apartment and not user_id:
        raise ValueError("A resident or an apartment is required")
    link = query.order_by(ProfileResidence.apartment_number.is_(None), ProfileResidence.id.asc()).first()
    if link is None:
        raise NotFoundError("Resident not found in this residence")
    return link


# ---------------------------------------------------------------------------
# Balances and dashboards
# ---------------------------------------------------------------------------


def residence_balances(rid: int | None = None) -> dict[str, Decimal]:
    rid = rid or residence_id()
    incoming = (
        db.session.query(Payment.method, func.coalesce(func.sum(Payment.amount), 0))
        .filter(Payment.residence_id == rid, Payment.status == PaymentStatus.VERIFIED)
        .group_by(Payment.method)
        .all()
    )
    outgoing = (
        db.session.query(Expense.paid_from, func.coalesce(func.sum(Expense.amount), 0))
        .filter(Expense.residence_id == rid, Expense.status == ExpenseStatus.PAID)
        .group_by(Expense.paid_from)
        .all()
    )
    cash = ZERO
    bank = ZERO
    for method, total in incoming:
        if method == PaymentMethod.CASH:
            cash += _dec(total)
        else:
            bank += _dec(total)
    for source, total in outgoing:
        if source == FundSource.BANK:
            bank -= _dec(total)
        else:
            cash -= _dec(total)
    return {"cash_on_hand": cash, "bank_balance": bank, "total": cash + bank}


def _compliance_rate(paid: int, total: int) -> int:
    if total == 0:
        return 100
    return round(paid * 100 / total)


def _user_block(profile: Profile) -> dict[str, object]:
    return {
        "id": profile.id,
        "full_name": profile.full_name,
        "email": profile.email,
        "role": profile.role.value,
        "verified": profile.verified,
    }


def _residence_block(residence: Residence | None) -> dict[str, object] | None:
    if residence is None:
        return None
    return {
        "id": residence.id,
        "name": residence.name,
        "address": residence.address,
        "city": residence.city,
        "bank_account_rib": residence.bank_account_rib,
    }


def _empty_dashboard(profile: Profile) -> dict[str, object]:
    return {
        "totalResidents": 0,
        "cashOnHand": ZERO,
        "bankBalance": ZERO,
        "outstandingFees": ZERO,
        "openIncidents": 0,
        "recentAnnouncementsCount": 0,
        "todayPayments": 0,
        "monthlyPayments": ZERO,
        "fillRate": 100,
        "residentsChange": 0,
        "topResidents": [],
        "user": _user_block(profile),
        "residence": None,
        "onboardingCompleted": profile.onboarding_completed,
    }


def _top_residents(rid: int, links: list[ProfileResidence], limit: int = 3) -> list[dict[str, object]]:
    counts: dict[int, tuple[int, int]] = {}
    rows = (
        db.session.query(Fee.user_id, Fee.status, func.count(Fee.id))
        .filter(Fee.residence_id == rid, Fee.status != FeeStatus.CANCELLED)
        .group_by(Fee.user_id, Fee.status)
        .all()
    )
    for user_id, status, total in rows:
        paid, overall = counts.get(user_id, (0, 0))
        if status == FeeStatus.PAID:
            paid += total
        counts[user_id] = (paid, overall + total)

    ranked = []
    for link in links:
        if link.profile.role != UserRole.RESIDENT:
            continue
        paid, total = counts.get(link.profile_id, (0, 0))
        ranked.append(
            {
                "id": link.profile_id,
                "full_name": link.profile.full_name,
                "apartment_number": link.apartment_number,
                "paidFees": paid,
                "totalFees": total,
                "complianceRate": _compliance_rate(paid, total),
            }
        )
    ranked.sort(key=lambda row: (-row["complianceRate"], row["apartment_number"] or ""))
    return ranked[:limit]


def dashboard_stats(profile: Profile | None = None) -> dict[str, object]:
    profile = profile or current_profile()
    residence = getattr(g, "residence", None)
    if residence is None:
        return _empty_dashboard(profile)
    rid = residence.id
    today = date.today()
    now = datetime.now(timezone.utc)

    links = verified_links(rid)
    fee_totals = (
        db.session.query(Fee.status, func.coalesce(func.sum(Fee.amount), 0))
        .filter(Fee.residence_id == rid, Fee.status != FeeStatus.CANCELLED)
        .group_by(Fee.status)
        .all()
    )
    total_fees = sum((_dec(total) for _status, total in fee_totals), ZERO)
    paid_fees = sum((_dec(total) for status, total in fee_totals if status == FeeStatus.PAID), ZERO)
    outstanding_fees = sum(
        (_dec(total) for status, total in fee_totals if status in OUTSTANDING_FEE_STATUSES), ZERO
    )
    fill_rate = round(paid_fees * 100 / total_fees) if total_fees > 0 else 100

    open_incidents = Incident.query.filter(
        Incident.residence_id == rid, Incident.status.in_(OPEN_INCIDENT_STATUSES)
    ).count()
    recent_announcements = Announcement.query.filter(
        Announcement.residence_id == rid, Announcement.created_at >= now - timedelta(days=30)
    ).count()

    recent_payments = (
        Payment.query.filter(
            Payment.residence_id == rid,
            Payment.status == PaymentStatus.VERIFIED,
            Payment.paid_at >= now - timedelta(days=7),
        )
        .order_by(Payment.paid_at.desc())
        .limit(10)
        .all()
    )
    balances = residence_balances(rid)

    return {
        "totalResidents": len(links),
        "cashOnHand": balances["cash_on_hand"],
        "bankBalance": balances["bank_balance"],
        "outstandingFees": outstanding_fees,
        "openIncidents": open_incidents,
        "recentAnnouncementsCount": recent_announcements,
        "todayPayments": sum(1 for payment in recent_payments if as_utc(payment.paid_at).date() == today),
        "monthlyPayments": sum((_dec(payment.amount) for payment in recent_payments), ZERO),
        "fillRate": fill_rate,
        "residentsChange": 0,
        "topResidents": _top_residents(rid, links),
        "user": _user_block(profile),
        "residence": _residence_block(residence),
        "onboardingCompleted": profile.onboarding_completed,
    }


def resident_dashboard(profile: Profile | None = None) -> dict[str, object]:
    profile = profile or current_profile()
    residence = getattr(g, "residence", None)
    payments_query = Payment.query.filter_by(user_id=profile.id)
    incidents_query = Incident.query.filter_by(user_id=profile.id)
    if residence is not None:
        payments_query = payments_query.filter_by(residence_id=residence.id)
        incidents_query = incidents_query.filter_by(residence_id=residence.id)

    stats = {
        "totalPayments": payments_query.count(),
        "pendingPayments": payments_query.filter(Payment.status == PaymentStatus.PENDING).count(),
        "overduePayments": Fee.query.filter_by(user_id=profile.id, status=FeeStatus.OVERDUE).count(),
        "totalIncidents": incidents_query.count(),
        "openIncidents": incidents_query.filter(Incident.status.in_(OPEN_INCIDENT_STATUSES)).count(),
        "totalComplaints": Complaint.query.filter_by(complainant_id=profile.id).count(),
    }

    activities: list[dict[str, object]] = []
    for payment in payments_query.order_by(Payment.paid_at.desc()).limit(5).all():
        activities.append(
            {
                "type": "payment",
                "id": payment.id,
                "title": f"{_dec(payment.amount)} {_currency()}",
                "status": payment.status.value,
                "date": as_utc(payment.paid_at),
            }
        )
    for incident in incidents_query.order_by(Incident.created_at.desc()).limit(3).all():
        activities.append(
            {
                "type": "incident",
                "id": incident.id,
                "title": incident.title,
                "status": incident.status.value,
                "date": as_utc(incident.created_at),
            }
        )
    activities.sort(key=lambda item: item["date"], reverse=True)

    return {
        "stats": stats,
        "user": _user_block(profile),
        "residence": _residence_block(residence),
        "activities": activities[:5],
    }


# ---------------------------------------------------------------------------
# Fees
# ---------------------------------------------------------------------------


def _parse_fee_type(value: str | None) -> FeeType:
    try:
        return FeeType((value or FeeType.ONE_TIME.value).strip().lower())
    except ValueError as exc:
        raise ValueError(f"Invalid fee type: {value}") from exc


def _parse_fee_status(value: str) -> FeeStatus:
    try:
        return FeeStatus((value or "").strip().lower())
    except ValueError as exc:
        raise ValueError(f"Invalid fee status: {value}") from exc


def list_fees(filters: dict[str, str] | None = None) -> list[Fee]:
    filters = filters or {}
    query = Fee.query.filter_by(residence_id=residence_id())
    user_id = _scoped_user_id(int(filters["user_id"]) if filters.get("user_id") else None)
    if user_id:
        query = query.filter(Fee.user_id == user_id)
    if filters.get("status"):
        query = query.filter(Fee.status == _parse_fee_status(filters["status"]))
    if filters.get("apartment"):
        query = query.filter(Fee.apartment_number == filters["apartment"].strip().upper())
    return query.order_by(Fee.due_date.desc(), Fee.id.desc()).all()


def fee_by_id(fee_id: int) -> Fee:
    fee = Fee.query.filter_by(residence_id=residence_id(), id=fee_id).first()
    if fee is None:
        raise NotFoundError("Fee not found")
    profile = current_profile()
    if not _is_staff(profile) and fee.user_id != profile.id:
        raise NotFoundError("Fee not found")
    return fee


def _fee_fields(payload: dict[str, str]) -> dict[str, object]:
    title = (payload.get("title") or "").strip()
    if not title:
        raise ValueError("Title is required")
    amount = parse_decimal(payload.get("amount"), "amount")
    if amount < 0:
        raise ValueError("Amount must be positive")
    return {
        "title": title,
        "description": (payload.get("description") or "").strip(),
        "fee_type": _parse_fee_type(payload.get("fee_type")),
        "amount": amount,
        "due_date": parse_iso_date(payload.get("due_date"), "due_date"),
        "reason": (payload.get("reason") or "").strip() or None,
    }


def create_fee(payload: dict[str, str], created_by: int | None = None) -> Fee:
    syndic = _require_syndic("Only syndics can create fees")
    fields = _fee_fields(payload)
    link = _link_for(payload.get("user_id"), payload.get("apartment_number"))
    fee = Fee(
        residence_id=link.residence_id,
        user_id=link.profile_id,
        profile_residence_id=link.id,
        apartment_number=link.apartment_number,
        created_by=created_by or syndic.id,
        **fields,
    )
    db.session.add(fee)
    db.session.commit()
    log.info("fee_created", fee_id=fee.id, amount=str(fee.amount), apartment=fee.apartment_number)
    return fee


def bulk_create_fees(payload: dict[str, object], created_by: int | None = None) -> BulkFeeResult:
    syndic = _require_syndic("Only syndics can create fees")
    apartments = payload.get("apartment_numbers") or []
    if isinstance(apartments, str):
        apartments = [part for part in apartments.replace(";", ",").split(",")]
    apartments = [str(value).strip().upper() for value in apartments if str(value).strip()]
    if not apartments:
        raise ValueError("Select at least one apartment")
    fields = _fee_fields({key: value for key, value in payload.items() if key != "apartment_numbers"})

    rid = residence_id()
    result = BulkFeeResult()
    for apartment in dict.fromkeys(apartments):
        link = ProfileResidence.query.filter_by(residence_id=rid, apartment_number=apartment).first()
        if link is None:
            result.missing_apartments.append(apartment)
            continue
        fee = Fee(
            residence_id=rid,
            user_id=link.profile_id,
            profile_residence_id=link.id,
            apartment_number=apartment,
            created_by=created_by or syndic.id,
            **fields,
        )
        db.session.add(fee)
        result.created.append(fee)
    db.session.commit()
    log.info("fees_bulk_created", created=len(result.created), missing=result.missing_apartments)
    return result


def update_fee(fee_id: int, payload: dict[str, str]) -> Fee:
    _require_syndic("Only syndics can update fees")
    fee = fee_by_id(fee_id)
    if payload.get("title") is not None:
        title = payload["title"].strip()
        if not title:
            raise ValueError("Title is required")
        fee.title = title
    if payload.get("description") is not None:
        fee.description = payload["description"].strip()
    if payload.get("amount") not in (None, ""):
        amount = parse_decimal(payload["amount"], "amount")
        if amount < 0:
            raise ValueError("Amount must be positive")
        fee.amount = amount
    if payload.get("due_date"):
        fee.due_date = parse_iso_date(payload["due_date"], "due_date")
    if payload.get("fee_type"):
        fee.fee_type = _parse_fee_type(payload["fee_type"])
    if payload.get("status"):
        status = _parse_fee_status(payload["status"])
        if status == FeeStatus.PAID and fee.status != FeeStatus.PAID:
            fee.paid_date = date.today()
        elif status != FeeStatus.PAID:
            fee.paid_date = None
        fee.status = status
    db.session.commit()
    return fee


def delete_fee(fee_id: int) -> None:
    _require_syndic("Only syndics can delete fees")
    fee = fee_by_id(fee_id)
    if fee.status == FeeStatus.PAID:
        raise ValueError("Paid fees cannot be deleted")
    Payment.query.filter_by(fee_id=fee.id).update({"fee_id": None})
    db.session.delete(fee)
    db.session.commit()
    log.info("fee_deleted", fee_id=fee_id)


def mark_overdue_fees(today: date | None = None, rid: int | None = None) -> int:
    today = today or date.today()
    query = Fee.query.filter(Fee.status == FeeStatus.UNPAID, Fee.due_date < today)
    if rid:
        query = query.filter(Fee.residence_id == rid)
    fees = query.all()
    for fee in fees:
        fee.status = FeeStatus.OVERDUE
    db.session.commit()
    log.info("fees_marked_overdue", count=len(fees), as_of=today.isoformat())
    return len(fees)


def mark_fee_paid(fee_id: int, method: str = PaymentMethod.CASH.value) -> Payment:
    syndic = _require_syndic("Only syndics can record payments")
    fee = fee_by_id(fee_id)
    if fee.status not in OUTSTANDING_FEE_STATUSES:
        raise ValueError("This fee is not outstanding")
    payment = Payment(
        residence_id=fee.residence_id,
        user_id=fee.user_id,
        fee_id=fee.id,
        apartment_number=fee.apartment_number,
        amount=fee.amount,
        payment_type=PaymentType.FINE if fee.fee_type == FeeType.FINE else PaymentType.FEE,
        method=_parse_method(method),
        status=PaymentStatus.VERIFIED,
        receipt_number=_next_receipt_number(fee.residence_id),
        verified_by=syndic.id,
        verified_at=datetime.now(timezone.utc),
        allocated_amount=fee.amount,
    )
    fee.status = FeeStatus.PAID
    fee.paid_date = date.today()
    db.session.add(payment)
    db.session.commit()
    return payment


def _reminder_type(days_until_due: int) -> str | None:
    if days_until_due == current_app.config.get("FEE_REMINDER_DAYS_BEFORE", 3):
        return "before_due"
    if days_until_due == 0:
        return "on_due"
    if days_until_due < 0 and days_until_due % 3 == 0:
        return "overdue"
    return None


def send_fee_reminders(today: date | None = None, rid: int | None = None) -> int:
    """Email residents about outstanding fees.

    A fee gets a reminder a few days before it is due, on the due date, then
    every third day while it stays unpaid. At most one reminder per fee per
    day; failed sends are not recorded so the next run retries them.
    """
    today = today or date.today()
    query = Fee.query.filter(Fee.status.in_(OUTSTANDING_FEE_STATUSES))
    if rid:
        query = query.filter(Fee.residence_id == rid)
    sent = 0
    for fee in query.order_by(Fee.due_date.asc(), Fee.id.asc()).all():
        days_until_due = (fee.due_date - today).days
        reminder_type = _reminder_type(days_until_due)
        if reminder_type is None or fee.user is None:
            continue
        if FeeReminder.query.filter_by(fee_id=fee.id, sent_on=today).first():
            continue
        residence = db.session.get(Residence, fee.residence_id)
        result = send_fee_reminder(
            fee.user.email,
            fee.user.full_name,
            residence.name,
            fee.title,
            f"{_dec(fee.amount):.2f}",
            fee.due_date,
            fee.apartment_number,
            days_until_due,
            residence.bank_account_rib,
        )
        if not result["success"]:
            log.warning("fee_reminder_failed", fee_id=fee.id, error=result["error"])
            continue
        db.session.add(
            FeeReminder(
                fee_id=fee.id,
                user_id=fee.user_id,
                reminder_type=reminder_type,
                days_before=days_until_due,
                sent_on=today,
            )
        )
        db.session.commit()
        sent += 1
    log.info("fee_reminders_sent", count=sent, as_of=today.isoformat())
    return sent


# ---------------------------------------------------------------------------
# Contribution plans and contributions
# ---------------------------------------------------------------------------


def _parse_period_type(value: str | None) -> PeriodType:
    try:
        return PeriodType((value or PeriodType.MONTHLY.value).strip().lower())
    except ValueError as exc:
        raise ValueError(f"Invalid period type: {value}") from exc


def list_plans(active_only: bool = False) -> list[ContributionPlan]:
    query = ContributionPlan.query.filter_by(residence_id=residence_id())
    if active_only:
        query = query.filter_by(is_active=True)
    return query.order_by(ContributionPlan.start_date.desc(), ContributionPlan.id.desc()).all()


def plan_by_id(plan_id: int) -> ContributionPlan:
    plan = ContributionPlan.query.filter_by(residence_id=residence_id(), id=plan_id).first()
    if plan is None:
        raise NotFoundError("Contribution plan not found")
    return plan


def _apply_plan_fields(plan: ContributionPlan, payload: dict[str, object]) -> None:
    if "plan_name" in payload:
        name = str(payload.get("plan_name") or "").strip()
        if not name:
            raise ValueError("Plan name is required")
        plan.plan_name = name
    if "description" in payload:
        plan.description = str(payload.get("description") or "").strip()
    if "amount_per_period" in payload:
        amount = parse_decimal(payload.get("amount_per_period"), "amount_per_period")
        if amount < 0:
            raise ValueError("Amount must be positive")
        plan.amount_per_period = amount
    if "period_type" in payload:
        plan.period_type = _parse_period_type(payload.get("period_type"))
    if "start_date" in payload:
        plan.start_date = parse_iso_date(payload.get("start_date"), "start_date")
    if "end_date" in payload:
        plan.end_date = parse_optional_date(payload.get("end_date"), "end_date")
    if "due_day" in payload and payload.get("due_day") not in (None, ""):
        plan.due_day = int(payload["due_day"])
    if "late_fee_enabled" in payload:
        plan.late_fee_enabled = parse_bool(payload.get("late_fee_enabled"))
    if "late_fee_amount" in payload and payload.get("late_fee_amount") not in (None, ""):
        plan.late_fee_amount = parse_decimal(payload.get("late_fee_amount"), "late_fee_amount")
    if "late_fee_days_after" in payload and payload.get("late_fee_days_after") not in (None, ""):
        plan.late_fee_days_after = int(payload["late_fee_days_after"])
    if plan.end_date and plan.start_date and plan.end_date < plan.start_date:
        raise ValueError("End date must be after start date")


def create_plan(payload: dict[str, object]) -> ContributionPlan:
    syndic = _require_syndic("Only syndics can manage contribution plans")
    plan = ContributionPlan(residence_id=residence_id(), created_by=syndic.id, is_active=True)
    for required in ("plan_name", "amount_per_period", "start_date"):
        if not str(payload.get(required) or "").strip():
            raise ValueError(f"{required} is required")
    _apply_plan_fields(plan, payload)
    db.session.add(plan)
    db.session.commit()
    log.info("contribution_plan_created", plan_id=plan.id, period_type=plan.period_type.value)
    return plan


def update_plan(plan_id: int, payload: dict[str, object]) -> ContributionPlan:
    _require_syndic("Only syndics can manage contribution plans")
    plan = plan_by_id(plan_id)
    _apply_plan_fields(plan, payload)
    if "is_active" in payload:
        plan.is_active = parse_bool(payload.get("is_active"))
    db.session.commit()
    return plan


def deactivate_plan(plan_id: int) -> ContributionPlan:
    _require_syndic("Only syndics can manage contribution plans")
    plan = plan_by_id(plan_id)
    plan.is_active = False
    db.session.commit()
    return plan


def align_period(period_type: PeriodType, period_start: date, period_end: date) -> tuple[date, date]:
    year = period_start.year
    if period_type == PeriodType.QUARTERLY:
        first_month = (period_start.month - 1) // 3 * 3 + 1
        return date(year, first_month, 1), month_bounds(year, first_month + 2)[1]
    if period_type == PeriodType.SEMI_ANNUAL:
        if period_start.month <= 6:
            return date(year, 1, 1), date(year, 6, 30)
        return date(year, 7, 1), date(year, 12, 31)
    if period_type == PeriodType.ANNUAL:
        return date(year, 1, 1), date(year, 12, 31)
    return period_start, period_end


def _plan_for_period(rid: int, period_start: date, period_end: date) -> ContributionPlan:
    plans = ContributionPlan.query.filter_by(residence_id=rid).order_by(ContributionPlan.start_date.asc()).all()
    if not plans:
        raise ValueError("No contribution plan exists for this residence")
    active = [plan for plan in plans if plan.is_active]
    if not active:
        raise ValueError("No active contribution plan for this residence")
    for plan in active:
        if plan.covers(period_start, period_end):
            return plan
    ranges = ", ".join(f"{plan.start_date} - {plan.end_date or '...'}" for plan in active)
    raise ValueError(f"No active plan covers {period_start} - {period_end} (active plans: {ranges})")


def generate_contributions(
    period_start: date | str,
    period_end: date | str,
    residence: Residence | None = None,
) -> ContributionGenerationResult:
    if residence is None:
        _require_syndic("Only syndics can generate contributions")
        residence = current_residence()
    start = parse_iso_date(period_start, "period_start")
    end = parse_iso_date(period_end, "period_end")
    if end < start:
        raise ValueError("Period end must be after period start")

    plan = _plan_for_period(residence.id, start, end)
    start, end = align_period(plan.period_type, start, end)
    result = ContributionGenerationResult(plan_id=plan.id, period_start=start, period_end=end)
    due_date = clamp_day(start.year, start.month, plan.due_day)

    for link in verified_links(residence.id):
        exists = Contribution.query.filter_by(
            profile_residence_id=link.id, period_start=start, period_end=end
        ).first()
        if exists:
            result.existing += 1
            continue
        db.session.add(
            Contribution(
                residence_id=residence.id,
                profile_residence_id=link.id,
                contribution_plan_id=plan.id,
                apartment_number=link.apartment_number,
                period_start=start,
                period_end=end,
                amount_due=plan.amount_per_period,
                amount_paid=ZERO,
                status=ContributionStatus.PENDING,
                due_date=due_date,
            )
        )
        result.created += 1
    db.session.commit()
    log.info(
        "contributions_generated",
        residence_id=residence.id,
        period_start=start.isoformat(),
        period_end=end.isoformat(),
        created=result.created,
        existing=result.existing,
    )
    return result


def _contribution_status(amount_due: Decimal, amount_paid: Decimal, due_date: date | None = None) -> ContributionStatus:
    if amount_paid >= amount_due:
        return ContributionStatus.PAID
    if amount_paid > 0:
        return ContributionStatus.PARTIAL
    if due_date and due_date < date.today():
        return ContributionStatus.OVERDUE
    return ContributionStatus.PENDING


def add_manual_contribution(payload: dict[str, str]) -> Contribution:
    """Record a contribution by hand, typically history imported from paper ledgers."""
    _require_syndic("Only syndics can record contributions")
    link = _link_for(payload.get("user_id"), payload.get("apartment_number"))
    if not link.apartment_number:
        raise ValueError("The resident has no apartment in this residence")
    start = parse_iso_date(payload.get("period_start"), "period_start")
    end = parse_iso_date(payload.get("period_end"), "period_end")
    if end < start:
        raise ValueError("Period end must be after period start")
    amount_due = parse_decimal(payload.get("amount_due"), "amount_due")
    amount_paid = parse_decimal(payload.get("amount_paid") or "0", "amount_paid")
    if amount_due < 0 or amount_paid < 0:
        raise ValueError("Amounts must be positive")
    due_date = parse_optional_date(payload.get("due_date"), "due_date") or start
    if Contribution.query.filter_by(profile_residence_id=link.id, period_start=start, period_end=end).first():
        raise ValueError("A contribution already exists for this apartment and period")
    status = _contribution_status(amount_due, amount_paid, due_date)
    contribution = Contribution(
        residence_id=link.residence_id,
        profile_residence_id=link.id,
        contribution_plan_id=int(payload["plan_id"]) if payload.get("plan_id") else None,
        apartment_number=link.apartment_number,
        period_start=start,
        period_end=end,
        amount_due=amount_due,
        amount_paid=amount_paid,
        status=status,
        due_date=due_date,
        paid_date=parse_optional_date(payload.get("paid_date")) or (date.today() if status == ContributionStatus.PAID else None),
        is_historical=parse_bool(payload.get("is_historical", "true")),
        notes=(payload.get("notes") or "").strip() or None,
    )
    db.session.add(contribution)
    db.session.commit()
    return contribution


def contribution_by_id(contribution_id: int) -> Contribution:
    contribution = Contribution.query.filter_by(residence_id=residence_id(), id=contribution_id).first()
    if contribution is None:
        raise NotFoundError("Contribution not found")
    profile = current_profile()
    if not _is_staff(profile) and contribution.link.profile_id != profile.id:
        raise NotFoundError("Contribution not found")
    return contribution


def update_contribution(contribution_id: int, payload: dict[str, str]) -> Contribution:
    _require_syndic("Only syndics can update contributions")
    contribution = contribution_by_id(contribution_id)
    if payload.get("amount_due") not in (None, ""):
        contribution.amount_due = parse_decimal(payload["amount_due"], "amount_due")
    if payload.get("amount_paid") not in (None, ""):
        contribution.amount_paid = parse_decimal(payload["amount_paid"], "amount_paid")
    if payload.get("due_date"):
        contribution.due_date = parse_iso_date(payload["due_date"], "due_date")
    if payload.get("notes") is not None:
        contribution.notes = payload["notes"].strip() or None
    if payload.get("status"):
        try:
            contribution.status = ContributionStatus(payload["status"].strip().lower())
        except ValueError as exc:
            raise ValueError(f"Invalid contribution status: {payload['status']}") from exc
    else:
        contribution.status = _contribution_status(
            _dec(contribution.amount_due), _dec(contribution.amount_paid), contribution.due_date
        )
    if contribution.status == ContributionStatus.PAID and contribution.paid_date is None:
        contribution.paid_date = date.today()
    db.session.commit()
    return contribution


def contribution_status_matrix(year: int) -> list[dict[str, object]]:
    rid = residence_id()
    first, last = date(year, 1, 1), date(year, 12, 31)
    contributions = (
        Contribution.query.filter_by(residence_id=rid)
        .filter(Contribution.status != ContributionStatus.CANCELLED)
        .filter(Contribution.period_start <= last, Contribution.period_end >= first)
        .all()
    )
    by_link: dict[int, list[Contribution]] = {}
    for contribution in contributions:
        by_link.setdefault(contribution.profile_residence_id, []).append(contribution)

    rows = []
    for link in verified_links(rid):
        months: dict[str, str | None] = {f"{year}-{month:02d}": None for month in range(1, 13)}
        total_due = ZERO
        total_paid = ZERO
        for contribution in by_link.get(link.id, []):
            total_due += _dec(contribution.amount_due)
            total_paid += _dec(contribution.amount_paid)
            cursor = max(contribution.period_start, first).replace(day=1)
            while cursor <= min(contribution.period_end, last):
                months[f"{cursor.year}-{cursor.month:02d}"] = contribution.status.value
                cursor = date(cursor.year + (cursor.month == 12), cursor.month % 12 + 1, 1)
        outstanding = sum(
            1 for status in months.values() if status in {s.value for s in OUTSTANDING_CONTRIBUTION_STATUSES}
        )
        rows.append(
            {
                "profile_id": link.profile_id,
                "full_name": link.profile.full_name,
                "apartment_number": link.apartment_number,
                "months": months,
                "outstanding_months": outstanding,
                "total_due": total_due,
                "total_paid": total_paid,
            }
        )
    return rows


def apply_late_fees(today: date | None = None, rid: int | None = None) -> int:
    today = today or date.today()
    query = (
        Contribution.query.join(ContributionPlan, ContributionPlan.id == Contribution.contribution_plan_id)
        .filter(ContributionPlan.late_fee_enabled.is_(True))
        .filter(Contribution.late_fee_applied.is_(False))
        .filter(Contribution.status.in_(OUTSTANDING_CONTRIBUTION_STATUSES))
    )
    if rid:
        query = query.filter(Contribution.residence_id == rid)
    applied = 0
    for contribution in query.all():
        plan = contribution.plan
        if today <= contribution.due_date + timedelta(days=plan.late_fee_days_after):
            continue
        contribution.amount_due = _dec(contribution.amount_due) + _dec(plan.late_fee_amount)
        contribution.late_fee_applied = True
        contribution.status = ContributionStatus.OVERDUE
        applied += 1
    db.session.commit()
    log.info("late_fees_applied", count=applied, as_of=today.isoformat())
    return applied


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------


def _parse_method(value: str | None) -> PaymentMethod:
    try:
        return PaymentMethod((value or PaymentMethod.CASH.value).strip().lower())
    except ValueError as exc:
        raise ValueError(f"Invalid payment method: {value}") from exc


def _parse_payment_type(value: str | None, default: PaymentType = PaymentType.FEE) -> PaymentType:
    if not value:
        return default
    try:
        return PaymentType(value.strip().lower())
    except ValueError as exc:
        raise ValueError(f"Invalid payment type: {value}") from exc


def _next_receipt_number(rid: int) -> str:
    prefix = f"R-{date.today().year}-"
    count = (
        db.session.query(func.count(Payment.id))
        .filter(Payment.residence_id == rid)
        .filter(Payment.receipt_number.like(f"{prefix}%"))
        .scalar()
    )
    return f"{prefix}{count + 1:04d}"


def list_payments(filters: dict[str, str] | None = None, limit: int | None = 50) -> list[Payment]:
    filters = filters or {}
    query = Payment.query.filter_by(residence_id=residence_id())
    user_id = _scoped_user_id(int(filters["user_id"]) if filters.get("user_id") else None)
    if user_id:
        query = query.filter(Payment.user_id == user_id)
    if filters.get("status"):
        try:
            query = query.filter(Payment.status == PaymentStatus(filters["status"].strip().lower()))
        except ValueError as exc:
            raise ValueError(f"Invalid payment status: {filters['status']}") from exc
    if filters.get("method"):
        query = query.filter(Payment.method == _parse_method(filters["method"]))
    query = query.order_by(Payment.paid_at.desc(), Payment.id.desc())
    if limit:
        query = query.limit(limit)
    return query.all()


def payment_by_id(payment_id: int) -> Payment:
    payment = Payment.query.filter_by(residence_id=residence_id(), id=payment_id).first()
    if payment is None:
        raise NotFoundError("Payment not found")
    profile = current_profile()
    if not _is_staff(profile) and payment.user_id != profile.id:
        raise NotFoundError("Payment not found")
    return payment


def _linked_fee(fee_id, user_id: int) -> Fee | None:
    if not fee_id:
        return None
    fee = Fee.query.filter_by(residence_id=residence_id(), id=int(fee_id)).first()
    if fee is None or fee.user_id != user_id:
        raise NotFoundError("Fee not found for this resident")
    return fee


def _linked_contribution(contribution_id, user_id: int) -> Contribution | None:
    if not contribution_id:
        return None
    contribution = Contribution.query.filter_by(residence_id=residence_id(), id=int(contribution_id)).first()
    if contribution is None or contribution.link.profile_id != user_id:
        raise NotFoundError("Contribution not found for this resident")
    return contribution


def record_cash_payment(payload: dict[str, str]) -> Payment:
    """Record money handed to the syndic; it is verified on the spot."""
    syndic = _require_syndic("Only syndics can record payments")
    link = _link_for(payload.get("user_id"), payload.get("apartment_number"))
    amount = parse_decimal(payload.get("amount"), "amount")
    if amount <= 0:
        raise ValueError("Amount must be greater than zero")
    fee = _linked_fee(payload.get("fee_id"), link.profile_id)
    contribution = _linked_contribution(payload.get("contribution_id"), link.profile_id)
    default_type = PaymentType.CONTRIBUTION if contribution else PaymentType.FEE

    payment = Payment(
        residence_id=link.residence_id,
        user_id=link.profile_id,
        fee_id=fee.id if fee else None,
        contribution_id=contribution.id if contribution else None,
        apartment_number=link.apartment_number,
        amount=amount,
        payment_type=_parse_payment_type(payload.get("payment_type"), default_type),
        method=_parse_method(payload.get("method")),
        status=PaymentStatus.VERIFIED,
        receipt_number=_next_receipt_number(link.residence_id),
        verified_by=syndic.id,
        verified_at=datetime.now(timezone.utc),
        notes=(payload.get("notes") or "").strip() or None,
    )
    db.session.add(payment)
    db.session.flush()

    _settle_payment(payment, _apply_to_linked_items(payment, fee, contribution))
    db.session.commit()
    log.info("cash_payment_recorded", payment_id=payment.id, amount=str(amount), user_id=payment.user_id)
    return payment


def submit_payment(payload: dict[str, str], proof: FileStorage | None = None) -> Payment:
    """A resident declares a transfer; it stays pending until the syndic verifies it."""
    profile = current_profile()
    residence = current_residence()
    link = ProfileResidence.query.filter_by(residence_id=residence.id, profile_id=profile.id).first()
    if link is None:
        raise PermissionDeniedError("You are not linked to this residence")
    amount = parse_decimal(payload.get("amount"), "amount")
    if amount <= 0:
        raise ValueError("Amount must be greater than zero")
    fee = _linked_fee(payload.get("fee_id"), profile.id)
    contribution = _linked_contribution(payload.get("contribution_id"), profile.id)
    payment = Payment(
        residence_id=residence.id,
        user_id=profile.id,
        fee_id=fee.id if fee else None,
        contribution_id=contribution.id if contribution else None,
        apartment_number=link.apartment_number,
        amount=amount,
        payment_type=_parse_payment_type(
            payload.get("payment_type"), PaymentType.CONTRIBUTION if contribution else PaymentType.FEE
        ),
        method=_parse_method(payload.get("method") or PaymentMethod.BANK_TRANSFER.value),
        status=PaymentStatus.PENDING,
        proof_url=(payload.get("proof_url") or "").strip() or None,
        notes=(payload.get("notes") or "").strip() or None,
    )
    if proof is not None and proof.filename:
        payment.proof_url = save_upload(proof, "proofs", residence.id, label="Proof")
    db.session.add(payment)
    db.session.commit()
    log.info("payment_submitted", payment_id=payment.id, amount=str(amount))
    return payment


def verify_payment(payment_id: int) -> Payment:
    syndic = _require_syndic("Only syndics can verify payments")
    payment = payment_by_id(payment_id)
    if payment.status != PaymentStatus.PENDING:
        raise ValueError("Only pending payments can be verified")
    payment.status = PaymentStatus.VERIFIED
    payment.verified_by = syndic.id
    payment.verified_at = datetime.now(timezone.utc)
    payment.rejection_reason = None
    if not payment.receipt_number:
        payment.receipt_number = _next_receipt_number(payment.residence_id)
    _settle_payment(payment, _apply_to_linked_items(payment, payment.fee, payment.contribution))
    db.session.commit()
    log.info("payment_verified", payment_id=payment.id, verified_by=syndic.id)
    return payment


def reject_payment(payment_id: int, reason: str) -> Payment:
    syndic = _require_syndic("Only syndics can reject payments")
    reason = (reason or "").strip()
    if not reason:
        raise ValueError("Rejection reason is required")
    payment = payment_by_id(payment_id)
    if payment.status != PaymentStatus.PENDING:
        raise ValueError("Only pending payments can be rejected")
    payment.status = PaymentStatus.REJECTED
    payment.verified_by = syndic.id
    payment.verified_at = datetime.now(timezone.utc)
    payment.rejection_reason = reason
    db.session.commit()
    log.info("payment_rejected", payment_id=payment.id, reason=reason)
    return payment


def _outstanding_contributions(user_id: int, apartment: str | None = None) -> list[Contribution]:
    query = (
        Contribution.query.join(ProfileResidence, ProfileResidence.id == Contribution.profile_residence_id)
        .filter(Contribution.residence_id == residence_id())
        .filter(ProfileResidence.profile_id == user_id)
        .filter(Contribution.status.in_(OUTSTANDING_CONTRIBUTION_STATUSES))
    )
    if apartment:
        query = query.filter(Contribution.apartment_number == apartment.strip().upper())
    return query.order_by(Contribution.due_date.asc(), Contribution.id.asc()).all()


def _outstanding_fees(user_id: int, apartment: str | None = None) -> list[Fee]:
    query = Fee.query.filter(
        Fee.residence_id == residence_id(),
        Fee.user_id == user_id,
        Fee.status.in_(OUTSTANDING_FEE_STATUSES),
    )
    if apartment:
        query = query.filter(Fee.apartment_number == apartment.strip().upper())
    return query.order_by(Fee.due_date.asc(), Fee.id.asc()).all()


def outstanding_items(user_id: int | None = None, apartment: str | None = None) -> dict[str, object]:
    user_id = _scoped_user_id(user_id) or current_profile().id
    contributions = [
        {
            "type": "contribution",
            "id": contribution.id,
            "apartment_number": contribution.apartment_number,
            "period_start": contribution.period_start,
            "period_end": contribution.period_end,
            "due_date": contribution.due_date,
            "amount_due": _dec(contribution.amount_due),
            "amount_paid": _dec(contribution.amount_paid),
            "outstanding": contribution.outstanding,
            "status": contribution.status.value,
        }
        for contribution in _outstanding_contributions(user_id, apartment)
    ]
    fees = [
        {
            "type": "fee",
            "id": fee.id,
            "title": fee.title,
            "apartment_number": fee.apartment_number,
            "due_date": fee.due_date,
            "amount": _dec(fee.amount),
            "outstanding": _dec(fee.amount),
            "status": fee.status.value,
        }
        for fee in _outstanding_fees(user_id, apartment)
    ]
    contributions_due = sum((row["outstanding"] for row in contributions), ZERO)
    fees_due = sum((row["outstanding"] for row in fees), ZERO)
    return {
        "contributions": contributions,
        "fees": fees,
        "totals": {
            "contributions_due": contributions_due,
            "fees_due": fees_due,
            "total_due": contributions_due + fees_due,
        },
    }


def _apply_to_contribution(contribution: Contribution, amount: Decimal) -> Decimal:
    applied = min(_dec(amount), contribution.outstanding)
    if applied <= 0:
        return ZERO
    contribution.amount_paid = _dec(contribution.amount_paid) + applied
    if contribution.amount_paid >= _dec(contribution.amount_due):
        contribution.status = ContributionStatus.PAID
        contribution.paid_date = date.today()
    else:
        contribution.status = ContributionStatus.PARTIAL
    return applied


def _apply_to_linked_items(payment: Payment, fee: Fee | None, contribution: Contribution | None) -> Decimal:
    """Settle the fee or contribution a verified payment was made for.

    A linked fee is only marked paid when the payment covers it in full; the
    rest goes to the linked contribution. Returns the amount applied.
    """
    amount = _dec(payment.amount)
    applied = ZERO
    if fee is not None and fee.status in OUTSTANDING_FEE_STATUSES and amount >= _dec(fee.amount):
        fee.status = FeeStatus.PAID
        fee.paid_date = date.today()
        applied += _dec(fee.amount)
    if contribution is not None and contribution.status in OUTSTANDING_CONTRIBUTION_STATUSES:
        applied += _apply_to_contribution(contribution, amount - applied)
    if fee is not None and fee.status != FeeStatus.PAID:
        log.warning("payment_fee_not_settled", payment_id=payment.id, fee_id=fee.id)
    return applied


def _settle_payment(payment: Payment, applied: Decimal) -> Decimal:
    payment.allocated_amount = _dec(payment.allocated_amount) + applied
    credit = _dec(payment.amount) - _dec(payment.allocated_amount)
    payment.credit_amount = credit
    # Only the latest credit line is kept.
    lines = [line for line in (payment.notes or "").splitlines() if not line.startswith(CREDIT_NOTE_PREFIX)]
    if credit > 0:
        lines.append(f"{CREDIT_NOTE_PREFIX}{credit:.2f} {_currency()}")
    payment.notes = "\n".join(lines) or None
    return credit


def _allocation_id(line: dict[str, object]) -> int:
    try:
        return int(line.get("id"))
    except (TypeError, ValueError) as exc:
        raise ValueError("Invalid allocation id") from exc


def allocate_payment(payment_id: int, allocations: list[dict[str, object]] | None = None) -> AllocationResult:
    """Spread a verified payment over outstanding contributions and fees.

    With explicit allocations each line is applied as given; a line whose
    amount is not positive, exceeds what is left or points at an unknown
    item is skipped. Without
    allocations the payer's outstanding items are settled oldest due date
    first. Whatever is left becomes credit on the payment.
    """
    _require_syndic("Only syndics can allocate payments")
    payment = payment_by_id(payment_id)
    if payment.status != PaymentStatus.VERIFIED:
        raise ValueError("Only verified payments can be allocated")
    remaining = _dec(payment.amount) - _dec(payment.allocated_amount)
    if remaining <= 0:
        raise ValueError("This payment has already been fully allocated")

    result = AllocationResult(payment_id=payment.id)
    if allocations:
        lines = []
        for line in allocations:
            kind = str(line.get("type") or "").strip().lower()
            if kind not in {"contribution", "fee"}:
                raise ValueError(f"Invalid allocation type: {line.get('type')}")
            lines.append((kind, _allocation_id(line), parse_decimal(line.get("amount"), "amount")))
        if sum((amount for _kind, _id, amount in lines), ZERO) > remaining:
            raise ValueError("Total allocation exceeds the payment amount")
    else:
        pending: list[tuple[date, int, str, int, Decimal]] = []
        for contribution in _outstanding_contributions(payment.user_id):
            pending.append((contribution.due_date, 0, "contribution", contribution.id, contribution.outstanding))
        for fee in _outstanding_fees(payment.user_id):
            pending.append((fee.due_date, 1, "fee", fee.id, _dec(fee.amount)))
        pending.sort()
        lines = [(kind, item_id, amount) for _due, _order, kind, item_id, amount in pending]

    for kind, item_id, amount in lines:
        if remaining <= 0:
            break
        if kind == "contribution":
            if amount <= 0 or (allocations and amount > remaining):
                continue
            contribution = Contribution.query.filter_by(residence_id=payment.residence_id, id=item_id).first()
            if contribution is None:
                log.warning("allocation_item_missing", payment_id=payment.id, kind=kind, item_id=item_id)
                continue
            applied = _apply_to_contribution(contribution, min(amount, remaining))
            if applied <= 0:
                continue
            if payment.contribution_id is None:
                payment.contribution_id = contribution.id
        else:
            if amount <= 0 or amount > remaining:
                continue
            fee = Fee.query.filter_by(residence_id=payment.residence_id, id=item_id).first()
            if fee is None:
                log.warning("allocation_item_missing", payment_id=payment.id, kind=kind, item_id=item_id)
                continue
            if fee.status not in OUTSTANDING_FEE_STATUSES or amount < _dec(fee.amount):
                continue
            applied = _dec(fee.amount)
            fee.status = FeeStatus.PAID
            fee.paid_date = date.today()
            if payment.fee_id is None:
                payment.fee_id = fee.id
        remaining -= applied
        result.allocations.append({"type": kind, "id": item_id, "amount": applied})

    applied_total = sum((_dec(line["amount"]) for line in result.allocations), ZERO)
    result.remaining_credit = _settle_payment(payment, applied_total)
    db.session.commit()
    log.info(
        "payment_allocated",
        payment_id=payment.id,
        allocations=len(result.allocations),
        remaining_credit=str(result.remaining_credit),
    )
    return result


def unit_balance(user_id: int | None = None, apartment: str | None = None) -> dict[str, object]:
    user_id = _scoped_user_id(user_id) or current_profile().id
    rid = residence_id()
    profile = db.session.get(Profile, user_id)
    if profile is None or not ProfileResidence.query.filter_by(residence_id=rid, profile_id=user_id).first():
        raise NotFoundError("Resident not found in this residence")
    apartment = (apartment or "").strip().upper() or None

    contribution_query = (
        Contribution.query.join(ProfileResidence, ProfileResidence.id == Contribution.profile_residence_id)
        .filter(Contribution.residence_id == rid, ProfileResidence.profile_id == user_id)
        .filter(Contribution.status != ContributionStatus.CANCELLED)
    )
    fee_query = Fee.query.filter(Fee.residence_id == rid, Fee.user_id == user_id, Fee.status != FeeStatus.CANCELLED)
    payment_query = Payment.query.filter(
        Payment.residence_id == rid, Payment.user_id == user_id, Payment.status == PaymentStatus.VERIFIED
    )
    if apartment:
        contribution_query = contribution_query.filter(Contribution.apartment_number == apartment)
        fee_query = fee_query.filter(Fee.apartment_number == apartment)
        payment_query = payment_query.filter(Payment.apartment_number == apartment)

    contributions = contribution_query.all()
    fees = fee_query.all()
    contributions_due = sum((_dec(c.amount_due) for c in contributions), ZERO)
    contributions_paid = sum((_dec(c.amount_paid) for c in contributions), ZERO)
    fees_due = sum((_dec(fee.amount) for fee in fees), ZERO)
    fees_paid = sum((_dec(fee.amount) for fee in fees if fee.status == FeeStatus.PAID), ZERO)
    payments_total = _dec(
        payment_query.with_entities(func.coalesce(func.sum(Payment.amount), 0)).scalar()
    )
    total_due = contributions_due + fees_due

    items = outstanding_items(user_id, apartment)
    outstanding = sorted(items["contributions"] + items["fees"], key=lambda row: (row["due_date"], row["type"]))
    recent = payment_query.order_by(Payment.paid_at.desc()).limit(10).all()

    return {
        "resident": {
            "id": profile.id,
            "full_name": profile.full_name,
            "email": profile.email,
            "apartment_number": apartment,
        },
        "contributions": {
            "due": contributions_due,
            "paid": contributions_paid,
            "outstanding": contributions_due - contributions_paid,
        },
        "fees": {"due": fees_due, "paid": fees_paid, "outstanding": fees_due - fees_paid},
        "payments_total": payments_total,
        "total_due": total_due,
        "total_outstanding": items["totals"]["total_due"],
        "credit": max(payments_total - total_due, ZERO),
        "outstanding_items": outstanding,
        "recent_payments": [serialize_payment(payment) for payment in recent],
    }


def serialize_payment(payment: Payment) -> dict[str, object]:
    return {
        "id": payment.id,
        "user_id": payment.user_id,
        "full_name": payment.user.full_name if payment.user else None,
        "apartment_number": payment.apartment_number,
        "amount": _dec(payment.amount),
        "payment_type": payment.payment_type.value,
        "method": payment.method.value,
        "status": payment.status.value,
        "fee_id": payment.fee_id,
        "contribution_id": payment.contribution_id,
        "receipt_number": payment.receipt_number,
        "proof_url": payment.proof_url,
        "paid_at": as_utc(payment.paid_at),
        "verified_at": as_utc(payment.verified_at),
        "rejection_reason": payment.rejection_reason,
        "credit_amount": _dec(payment.credit_amount),
        "notes": payment.notes,
    }


def serialize_fee(fee: Fee) -> dict[str, object]:
    return {
        "id": fee.id,
        "user_id": fee.user_id,
        "full_name": fee.user.full_name if fee.user else None,
        "apartment_number": fee.apartment_number,
        "title": fee.title,
        "description": fee.description,
        "fee_type": fee.fee_type.value,
        "amount": _dec(fee.amount),
        "due_date": fee.due_date,
        "status": fee.status.value,
        "paid_date": fee.paid_date,
        "reason": fee.reason,
    }


def serialize_plan(plan: ContributionPlan) -> dict[str, object]:
    return {
        "id": plan.id,
        "plan_name": plan.plan_name,
        "description": plan.description,
        "amount_per_period": _dec(plan.amount_per_period),
        "period_type": plan.period_type.value,
        "start_date": plan.start_date,
        "end_date": plan.end_date,
        "is_active": plan.is_active,
        "due_day": plan.due_day,
        "late_fee_enabled": plan.late_fee_enabled,
        "late_fee_amount": _dec(plan.late_fee_amount),
        "late_fee_days_after": plan.late_fee_days_after,
    }


# ---------------------------------------------------------------------------
# Expenses
# ---------------------------------------------------------------------------


def expense_categories() -> list[str]:
    used = [
        row[0]
        for row in db.session.query(Expense.category)
        .filter(Expense.residence_id == residence_id())
        .distinct()
        .all()
    ]
    return sorted(set(DEFAULT_EXPENSE_CATEGORIES) | set(used))


def list_expenses(filters: dict[str, str] | None = None) -> list[Expense]:
    filters = filters or {}
    ensure_role(*STAFF_ROLES, message="Only residence staff can view expenses")
    query = Expense.query.filter_by(residence_id=residence_id())
    if filters.get("status"):
        try:
            query = query.filter(Expense.status == ExpenseStatus(filters["status"].strip().lower()))
        except ValueError as exc:
            raise ValueError(f"Invalid expense status: {filters['status']}") from exc
    if filters.get("category"):
        query = query.filter(Expense.category == filters["category"].strip().lower())
    if filters.get("search"):
        query = query.filter(
            or_(Expense.description.ilike(f"%{filters['search']}%"), Expense.category.ilike(f"%{filters['search']}%"))
        )
    return query.order_by(Expense.expense_date.desc(), Expense.id.desc()).all()


def expense_by_id(expense_id: int) -> Expense:
    ensure_role(*STAFF_ROLES, message="Only residence staff can view expenses")
    expense = Expense.query.filter_by(residence_id=residence_id(), id=expense_id).first()
    if expense is None:
        raise NotFoundError("Expense not found")
    return expense


def _apply_expense_fields(expense: Expense, payload: dict[str, str], creating: bool) -> None:
    if creating or payload.get("description") is not None:
        description = (payload.get("description") or "").strip()
        if not description:
            raise ValueError("Description is required")
        expense.description = description
    if creating or payload.get("category") is not None:
        category = (payload.get("category") or "").strip().lower()
        if not category:
            raise ValueError("Category is required")
        expense.category = category
    if creating or payload.get("amount") not in (None, ""):
        amount = parse_decimal(payload.get("amount"), "amount")
        if amount < 0:
            raise ValueError("Amount must be positive")
        expense.amount = amount
    if payload.get("expense_date"):
        expense.expense_date = parse_iso_date(payload["expense_date"], "expense_date")
    if payload.get("attachment_url") is not None:
        expense.attachment_url = payload["attachment_url"].strip() or None


def upload_expense_attachment(file_obj: FileStorage | None) -> str:
    """Store an invoice or receipt (PDF or image) and return its path."""
    _require_syndic("Only syndics can upload expense attachments")
    return save_upload(file_obj, "expenses", residence_id(), label="Attachment")


def create_expense(payload: dict[str, str], attachment: FileStorage | None = None) -> Expense:
    syndic = _require_syndic("Only syndics can record expenses")
    expense = Expense(residence_id=residence_id(), created_by=syndic.id, status=ExpenseStatus.DRAFT)
    _apply_expense_fields(expense, payload, creating=True)
    if attachment is not None and attachment.filename:
        expense.attachment_url = upload_expense_attachment(attachment)
    if expense.expense_date is None:
        expense.expense_date = date.today()
    db.session.add(expense)
    db.session.commit()
    log.info("expense_created", expense_id=expense.id, amount=str(expense.amount), category=expense.category)
    return expense


def update_expense(expense_id: int, payload: dict[str, str], attachment: FileStorage | None = None) -> Expense:
    _require_syndic("Only syndics can update expenses")
    expense = expense_by_id(expense_id)
    if expense.status == ExpenseStatus.PAID:
        raise ValueError("Paid expenses cannot be modified")
    _apply_expense_fields(expense, payload, creating=False)
    if attachment is not None and attachment.filename:
        previous = expense.attachment_url
        expense.attachment_url = upload_expense_attachment(attachment)
        if previous and previous.startswith("storage/"):
            delete_upload(previous)
    if payload.get("status") == ExpenseStatus.CANCELLED.value:
        expense.status = ExpenseStatus.CANCELLED
    db.session.commit()
    return expense


def delete_expense(expense_id: int) -> None:
    _require_syndic("Only syndics can delete expenses")
    expense = expense_by_id(expense_id)
    if expense.status == ExpenseStatus.PAID:
        raise ValueError("Paid expenses cannot be deleted")
    attachment = expense.attachment_url
    db.session.delete(expense)
    db.session.commit()
    if attachment and attachment.startswith("storage/"):
        delete_upload(attachment)


def approve_expense(expense_id: int) -> Expense:
    syndic = _require_syndic("Only syndics can approve expenses")
    expense = expense_by_id(expense_id)
    if expense.status != ExpenseStatus.DRAFT:
        raise ValueError("Only draft expenses can be approved")
    expense.status = ExpenseStatus.APPROVED
    expense.approved_by = syndic.id
    expense.approved_at = datetime.now(timezone.utc)
    db.session.commit()
    log.info("expense_approved", expense_id=expense.id)
    return expense


def pay_expense(expense_id: int, paid_from: str = FundSource.CASH.value) -> Expense:
    syndic = _require_syndic("Only syndics can pay expenses")
    expense = expense_by_id(expense_id)
    if expense.status != ExpenseStatus.APPROVED:
        raise ValueError("Expense must be approved before payment")
    try:
        source = FundSource((paid_from or FundSource.CASH.value).strip().lower())
    except ValueError as exc:
        raise ValueError(f"Invalid fund source: {paid_from}") from exc
    expense.status = ExpenseStatus.PAID
    expense.paid_from = source
    expense.paid_at = datetime.now(timezone.utc)
    if expense.approved_by is None:
        expense.approved_by = syndic.id
    db.session.commit()
    log.info("expense_paid", expense_id=expense.id, paid_from=source.value)
    return expense


def serialize_expense(expense: Expense) -> dict[str, object]:
    return {
        "id": expense.id,
        "description": expense.description,
        "category": expense.category,
        "amount": _dec(expense.amount),
        "attachment_url": expense.attachment_url,
        "expense_date": expense.expense_date,
        "status": expense.status.value,
        "paid_from": expense.paid_from.value if expense.paid_from else None,
        "approved_at": as_utc(expense.approved_at),
        "paid_at": as_utc(expense.paid_at),
    }
