from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from syndic.admin.services import review_document
from syndic.community.services import (
    check_apartment,
    create_complaint,
    create_resident,
    list_complaints,
    remove_resident,
    serialize_complaint,
    update_complaint_status,
    update_incident,
)
from syndic.core.errors import NotFoundError, PermissionDeniedError
from syndic.core.extensions import db
from syndic.core.models import (
    Complaint,
    ComplaintStatus,
    Contribution,
    ContributionStatus,
    DocumentSubmission,
    Fee,
    FeeStatus,
    Incident,
    Payment,
    PaymentStatus,
    PeriodType,
    Profile,
    Residence,
    SubmissionStatus,
    TransactionHistory,
    User,
)
from syndic.core.tenancy import resolve_residence_id
from syndic.finance.reports import annual_report, close_month, monthly_report
from syndic.finance.services import (
    add_manual_contribution,
    align_period,
    allocate_payment,
    apply_late_fees,
    approve_expense,
    bulk_create_fees,
    contribution_status_matrix,
    create_expense,
    create_fee,
    dashboard_stats,
    deactivate_plan,
    delete_fee,
    generate_contributions,
    list_plans,
    mark_fee_paid,
    mark_overdue_fees,
    pay_expense,
    record_cash_payment,
    reject_payment,
    resident_dashboard,
    submit_payment,
    unit_balance,
    verify_payment,
)

SYNDIC = "syndic@syndic.local"
RESIDENT = "resident@syndic.local"
NEIGHBOUR = "omar.lahlou@syndic.local"
GUARD = "guard@syndic.local"
ADMIN = "admin@syndic.local"


def test_resolve_residence_by_role(app):
    residence = Residence.query.filter_by(name="Résidence Al Amal").first()
    syndic = User.query.filter_by(email=SYNDIC).first()
    guard = User.query.filter_by(email=GUARD).first()
    resident = User.query.filter_by(email=RESIDENT).first()
    admin = User.query.filter_by(email=ADMIN).first()

    assert resolve_residence_id(syndic.id) == residence.id
    assert resolve_residence_id(guard.id, "guard") == residence.id
    assert resolve_residence_id(resident.id) == residence.id
    assert resolve_residence_id(admin.id) is None


def test_dashboard_stats_for_seeded_residence(app, acting_as):
    with acting_as(SYNDIC):
        stats = dashboard_stats()

    assert stats["totalResidents"] == 4
    assert stats["cashOnHand"] == Decimal("400.00")
    assert stats["bankBalance"] == Decimal("400.00")
    assert stats["outstandingFees"] == Decimal("900.00")
    assert stats["openIncidents"] == 2
    assert stats["fillRate"] == 47
    assert [row["apartment_number"] for row in stats["topResidents"]] == ["A2", "A4", "A1"]
    assert stats["topResidents"][2]["complianceRate"] == 33
    assert stats["residence"]["name"] == "Résidence Al Amal"


def test_dashboard_without_residence_is_empty(app, acting_as):
    with acting_as("nouveau.syndic@syndic.local"):
        stats = dashboard_stats()

    assert stats["totalResidents"] == 0
    assert stats["fillRate"] == 100
    assert stats["topResidents"] == []
    assert stats["residence"] is None


def test_resident_dashboard_counts_own_activity(app, acting_as):
    with acting_as(RESIDENT):
        data = resident_dashboard()

    assert data["stats"]["pendingPayments"] == 1
    assert data["stats"]["overduePayments"] == 1
    assert data["stats"]["totalIncidents"] == 1
    assert data["stats"]["totalComplaints"] == 1
    assert len(data["activities"]) == 5
    dates = [item["date"] for item in data["activities"]]
    assert dates == sorted(dates, reverse=True)


@pytest.mark.parametrize(
    ("period_type", "start", "end", "expected"),
    [
        (PeriodType.MONTHLY, date(2025, 5, 1), date(2025, 5, 31), (date(2025, 5, 1), date(2025, 5, 31))),
        (PeriodType.QUARTERLY, date(2025, 5, 1), date(2025, 5, 31), (date(2025, 4, 1), date(2025, 6, 30))),
        (PeriodType.SEMI_ANNUAL, date(2025, 8, 1), date(2025, 8, 31), (date(2025, 7, 1), date(2025, 12, 31))),
        (PeriodType.ANNUAL, date(2025, 3, 1), date(2025, 3, 31), (date(2025, 1, 1), date(2025, 12, 31))),
    ],
)
def test_align_period_to_plan_boundaries(period_type, start, end, expected):
    assert align_period(period_type, start, end) == expected


def test_generate_contributions_is_idempotent(app, acting_as):
    year = date.today().year
    with acting_as(SYNDIC):
        first = generate_contributions(date(year, 3, 1), date(year, 3, 31))
        second = generate_contributions(date(year, 3, 1), date(year, 3, 31))

    assert first.created == 4
    assert second.created == 0
    assert second.existing == 4
    rows = Contribution.query.filter_by(period_start=date(year, 3, 1)).all()
    assert {row.apartment_number for row in rows} == {"A1", "A2", "A3", "A4"}
    assert all(row.due_date == date(year, 3, 5) for row in rows)
    assert all(row.status == ContributionStatus.PENDING for row in rows)


def test_generate_contributions_explains_missing_plan(app, acting_as):
    year = date.today().year
    with acting_as(SYNDIC):
        with pytest.raises(ValueError, match="No active plan covers"):
            generate_contributions(date(year - 1, 6, 1), date(year - 1, 6, 30))

        for plan in list_plans():
            deactivate_plan(plan.id)
        with pytest.raises(ValueError, match="No active contribution plan"):
            generate_contributions(date(year, 3, 1), date(year, 3, 31))


def test_generate_contributions_requires_syndic(app, acting_as):
    year = date.today().year
    with acting_as(RESIDENT):
        with pytest.raises(PermissionDeniedError):
            generate_contributions(date(year, 3, 1), date(year, 3, 31))


def test_mark_overdue_fees_only_touches_past_due(app):
    as_of = date.today() + timedelta(days=6)
    assert mark_overdue_fees(as_of) == 1
    assert Fee.query.filter_by(title="Nettoyage façade").first().status == FeeStatus.UNPAID
    assert mark_overdue_fees(as_of) == 0


def test_late_fee_applied_once(app):
    year = date.today().year
    assert apply_late_fees(date(year, 3, 1)) == 1
    february = Contribution.query.filter_by(period_start=date(year, 2, 1)).first()
    assert february.amount_due == Decimal("300.00")
    assert february.late_fee_applied is True
    assert february.status == ContributionStatus.OVERDUE
    assert apply_late_fees(date(year, 3, 2)) == 0


def test_late_fee_waits_for_grace_period(app):
    year = date.today().year
    assert apply_late_fees(date(year, 2, 14)) == 0


def test_allocation_leaves_credit(app, acting_as):
    today = date.today()
    with acting_as(SYNDIC):
        fee = create_fee(
            {
                "apartment_number": "A2",
                "title": "Remplacement interphone",
                "amount": "600",
                "due_date": (today + timedelta(days=20)).isoformat(),
            }
        )
        contribution = add_manual_contribution(
            {
                "apartment_number": "A2",
                "period_start": (today - timedelta(days=40)).isoformat(),
                "period_end": (today - timedelta(days=10)).isoformat(),
                "amount_due": "300",
                "amount_paid": "0",
                "due_date": (today - timedelta(days=35)).isoformat(),
            }
        )
        payment = record_cash_payment({"apartment_number": "A2", "amount": "1000"})
        result = allocate_payment(payment.id)

    assert [line["type"] for line in result.allocations] == ["contribution", "fee"]
    assert result.remaining_credit == Decimal("100.00")
    db.session.refresh(payment)
    assert payment.credit_amount == Decimal("100.00")
    assert payment.notes == "Credit: 100.00 MAD"
    assert db.session.get(Fee, fee.id).status == FeeStatus.PAID
    assert db.session.get(Contribution, contribution.id).status == ContributionStatus.PAID


def test_explicit_allocation_cannot_exceed_payment(app, acting_as):
    with acting_as(SYNDIC):
        payment = record_cash_payment({"apartment_number": "A1", "amount": "100"})
        february = Contribution.query.filter_by(apartment_number="A1", status=ContributionStatus.PARTIAL).first()
        with pytest.raises(ValueError, match="exceeds"):
            allocate_payment(payment.id, [{"type": "contribution", "id": february.id, "amount": "150"}])

        result = allocate_payment(payment.id, [{"type": "contribution", "id": february.id, "amount": "100"}])

    assert result.remaining_credit == Decimal("0.00")
    assert db.session.get(Contribution, february.id).amount_paid == Decimal("200.00")
    assert db.session.get(Contribution, february.id).status == ContributionStatus.PARTIAL


def test_allocation_skips_fee_not_fully_covered(app, acting_as):
    with acting_as(SYNDIC):
        payment = record_cash_payment({"apartment_number": "A1", "amount": "250"})
        facade = Fee.query.filter_by(title="Nettoyage façade").first()
        result = allocate_payment(payment.id, [{"type": "fee", "id": facade.id, "amount": "250"}])

    assert result.allocations == []
    assert result.remaining_credit == Decimal("250.00")
    assert db.session.get(Fee, facade.id).status == FeeStatus.UNPAID


def test_only_verified_payments_can_be_allocated(app, acting_as):
    pending = Payment.query.filter_by(status=PaymentStatus.PENDING).first()
    with acting_as(SYNDIC):
        with pytest.raises(ValueError, match="verified"):
            allocate_payment(pending.id)


def test_verify_payment_writes_history_and_receipt(app, acting_as):
    pending = Payment.query.filter_by(status=PaymentStatus.PENDING).first()
    before = TransactionHistory.query.filter_by(reference_table="payment").count()
    with acting_as(SYNDIC):
        payment = verify_payment(pending.id)
        with pytest.raises(ValueError, match="pending"):
            verify_payment(pending.id)

    assert payment.status == PaymentStatus.VERIFIED
    assert payment.receipt_number.startswith(f"R-{date.today().year}-")
    assert TransactionHistory.query.filter_by(reference_table="payment").count() == before + 1


def test_verified_transfer_settles_linked_fee(app, acting_as):
    facade = Fee.query.filter_by(title="Nettoyage façade").first()
    facade_id = facade.id
    with acting_as(RESIDENT):
        submitted = submit_payment({"amount": "300", "fee_id": str(facade_id), "notes": "Virement façade"})
    assert db.session.get(Fee, facade_id).status == FeeStatus.UNPAID

    with acting_as(SYNDIC):
        payment = verify_payment(submitted.id)

    fee = db.session.get(Fee, facade_id)
    assert fee.status == FeeStatus.PAID
    assert fee.paid_date == date.today()
    assert payment.allocated_amount == Decimal("300.00")
    assert payment.credit_amount == Decimal("0.00")
    assert payment.notes == "Virement façade"


def test_verified_transfer_settles_linked_contribution(app, acting_as):
    february = Contribution.query.filter_by(apartment_number="A1", status=ContributionStatus.PARTIAL).first()
    february_id = february.id
    with acting_as(RESIDENT):
        submitted = submit_payment({"amount": "200", "contribution_id": str(february_id)})
    with acting_as(SYNDIC):
        payment = verify_payment(submitted.id)

    contribution = db.session.get(Contribution, february_id)
    assert contribution.amount_paid == Decimal("250.00")
    assert contribution.status == ContributionStatus.PAID
    assert payment.credit_amount == Decimal("50.00")
    assert payment.notes == "Credit: 50.00 MAD"


def test_allocation_keeps_one_credit_line(app, acting_as):
    today = date.today()
    with acting_as(SYNDIC):
        create_fee(
            {
                "apartment_number": "A2",
                "title": "Remplacement interphone",
                "amount": "600",
                "due_date": (today + timedelta(days=20)).isoformat(),
            }
        )
        payment = record_cash_payment(
            {"apartment_number": "A2", "amount": "1000", "notes": "Espèces remises au gardien"}
        )
        assert payment.notes == "Espèces remises au gardien\nCredit: 1000.00 MAD"
        allocate_payment(payment.id)

    db.session.refresh(payment)
    assert payment.credit_amount == Decimal("400.00")
    assert payment.notes == "Espèces remises au gardien\nCredit: 400.00 MAD"


def test_allocation_line_needs_numeric_id(app, acting_as):
    with acting_as(SYNDIC):
        payment = record_cash_payment({"apartment_number": "A4", "amount": "100"})
        with pytest.raises(ValueError, match="Invalid allocation id"):
            allocate_payment(payment.id, [{"type": "fee", "amount": "10"}])
        with pytest.raises(ValueError, match="Invalid allocation id"):
            allocate_payment(payment.id, [{"type": "fee", "id": "abc", "amount": "10"}])


def test_allocation_skips_unknown_items(app, acting_as):
    with acting_as(SYNDIC):
        payment = record_cash_payment({"apartment_number": "A1", "amount": "100"})
        february = Contribution.query.filter_by(apartment_number="A1", status=ContributionStatus.PARTIAL).first()
        result = allocate_payment(
            payment.id,
            [
                {"type": "fee", "id": 99999, "amount": "50"},
                {"type": "contribution", "id": february.id, "amount": "50"},
            ],
        )

    assert result.allocations == [{"type": "contribution", "id": february.id, "amount": Decimal("50.00")}]
    assert result.remaining_credit == Decimal("50.00")


def test_bulk_fees_report_unknown_apartments(app, acting_as):
    with acting_as(SYNDIC):
        result = bulk_create_fees(
            {
                "apartment_numbers": "a2, A3; Z9",
                "title": "Badge parking",
                "amount": "80",
                "due_date": (date.today() + timedelta(days=15)).isoformat(),
            }
        )

    assert sorted(fee.apartment_number for fee in result.created) == ["A2", "A3"]
    assert result.missing_apartments == ["Z9"]
    assert Fee.query.filter_by(title="Badge parking").count() == 2


def test_check_apartment_availability(app, acting_as):
    with acting_as(SYNDIC):
        taken = check_apartment("a1")
        free = check_apartment("C7")
        with pytest.raises(ValueError, match="required"):
            check_apartment("  ")

    assert taken == {"apartment_number": "A1", "available": False, "occupant": "Yassine Alaoui"}
    assert free == {"apartment_number": "C7", "available": True, "occupant": None}


def test_contribution_status_matrix(app, acting_as):
    year = date.today().year
    with acting_as(SYNDIC):
        rows = contribution_status_matrix(year)

    assert [row["apartment_number"] for row in rows] == ["A1", "A2", "A3", "A4"]
    a1 = rows[0]
    assert a1["months"][f"{year}-01"] == "paid"
    assert a1["months"][f"{year}-02"] == "partial"
    assert a1["months"][f"{year}-03"] is None
    assert len(a1["months"]) == 12
    assert a1["outstanding_months"] == 1
    assert a1["total_due"] == Decimal("500.00")
    assert a1["total_paid"] == Decimal("350.00")
    assert rows[1]["outstanding_months"] == 0
    assert set(rows[1]["months"].values()) == {None}


def test_compliance_rate_counts_paid_fees(app, acting_as):
    with acting_as(SYNDIC):
        fee = create_fee(
            {
                "apartment_number": "A1",
                "title": "Carte d'accès",
                "amount": "50",
                "due_date": (date.today() + timedelta(days=3)).isoformat(),
            }
        )
        mark_fee_paid(fee.id)
        stats = dashboard_stats()

    a1 = next(row for row in stats["topResidents"] if row["apartment_number"] == "A1")
    assert (a1["paidFees"], a1["totalFees"]) == (2, 4)
    assert a1["complianceRate"] == 50


def test_monthly_and_annual_report_figures(app, acting_as):
    year = date.today().year - 2
    with acting_as(SYNDIC):
        dues = record_cash_payment({"apartment_number": "A2", "amount": "250", "payment_type": "contribution"})
        fine = record_cash_payment({"apartment_number": "A3", "amount": "120", "payment_type": "fine"})
        expense = create_expense(
            {
                "description": "Vidange citerne",
                "category": "maintenance",
                "amount": "90",
                "expense_date": f"{year}-03-10",
            }
        )
        approve_expense(expense.id)
        pay_expense(expense.id, "cash")
        for payment in (dues, fine):
            payment.paid_at = datetime(year, 3, 15, 9, 0, tzinfo=timezone.utc)
        db.session.commit()

        march = monthly_report(year, 3)
        april = monthly_report(year, 4)
        annual = annual_report(year)

    assert march["opening_balance"] == Decimal("0.00")
    assert march["income"] == {
        "contributions": Decimal("250.00"),
        "fees": Decimal("120.00"),
        "refunds": Decimal("0.00"),
        "total": Decimal("370.00"),
    }
    assert march["expenses"] == {"total": Decimal("90.00"), "by_category": {"maintenance": Decimal("90.00")}}
    assert march["net_change"] == Decimal("280.00")
    assert march["closing_balance"] == Decimal("280.00")
    assert march["closed"] is False
    assert april["income"]["total"] == Decimal("0.00")

    assert len(annual["months"]) == 12
    assert annual["totals"]["income"] == Decimal("370.00")
    assert annual["totals"]["expenses"] == Decimal("90.00")
    assert annual["totals"]["net_change"] == Decimal("280.00")
    assert annual["expenses_by_category"] == {"maintenance": Decimal("90.00")}
    assert annual["closing_balance"] == Decimal("280.00")


def test_reject_payment_requires_reason_and_syndic(app, acting_as):
    pending = Payment.query.filter_by(status=PaymentStatus.PENDING).first()
    with acting_as(RESIDENT):
        with pytest.raises(PermissionDeniedError):
            reject_payment(pending.id, "Virement introuvable")
    with acting_as(SYNDIC):
        with pytest.raises(ValueError, match="reason"):
            reject_payment(pending.id, "  ")
        payment = reject_payment(pending.id, "Virement introuvable")

    assert payment.status == PaymentStatus.REJECTED
    assert payment.rejection_reason == "Virement introuvable"


def test_paid_fee_cannot_be_deleted(app, acting_as):
    paid = Fee.query.filter_by(status=FeeStatus.PAID).first()
    with acting_as(SYNDIC):
        with pytest.raises(ValueError, match="Paid fees"):
            delete_fee(paid.id)


def test_unit_balance_for_resident(app, acting_as):
    with acting_as(RESIDENT):
        balance = unit_balance()

    assert balance["fees"]["due"] == Decimal("900.00")
    assert balance["fees"]["paid"] == Decimal("400.00")
    assert balance["contributions"]["outstanding"] == Decimal("150.00")
    assert balance["total_outstanding"] == Decimal("650.00")
    due_dates = [item["due_date"] for item in balance["outstanding_items"]]
    assert due_dates == sorted(due_dates)


def test_close_month_only_once(app, acting_as):
    today = date.today()
    with acting_as(SYNDIC):
        snapshot = close_month(today.year, today.month)
        with pytest.raises(ValueError, match="already been closed"):
            close_month(today.year, today.month)
        report = monthly_report(today.year, today.month)

    assert snapshot.cash_balance == Decimal("400.00")
    assert report["closed"] is True


def test_complaint_rules(app, acting_as):
    neighbour = User.query.filter_by(email=NEIGHBOUR).first()
    resident = User.query.filter_by(email=RESIDENT).first()
    with acting_as(RESIDENT):
        with pytest.raises(ValueError, match="yourself"):
            create_complaint(
                {"complained_about_id": resident.id, "reason": "noise", "title": "x", "description": "y"}
            )
        with pytest.raises(ValueError, match="reason"):
            create_complaint(
                {"complained_about_id": neighbour.id, "reason": "weather", "title": "x", "description": "y"}
            )
        complaint = create_complaint(
            {
                "complained_about_id": neighbour.id,
                "reason": "trash",
                "privacy": "anonymous",
                "title": "Sacs poubelle",
                "description": "Sacs laissés dans l'escalier",
            }
        )
    with acting_as(NEIGHBOUR):
        visible = serialize_complaint(complaint)
    with acting_as(GUARD):
        with pytest.raises(PermissionDeniedError):
            list_complaints()

    assert visible["complainant"] is None
    assert visible["complained_about"]["id"] == neighbour.id


def test_complaint_status_timestamps(app, acting_as):
    complaint = Complaint.query.first()
    with acting_as(SYNDIC):
        reviewed = update_complaint_status(complaint.id, "reviewed")
        assert reviewed.reviewed_at is not None
        assert reviewed.resolved_at is None
        resolved = update_complaint_status(complaint.id, "resolved", "Médiation faite")
        assert resolved.resolved_at is not None
        reopened = update_complaint_status(complaint.id, "reviewed")

    assert reopened.status == ComplaintStatus.REVIEWED
    assert reopened.resolved_at is None
    assert reopened.resolution_notes == "Médiation faite"


def test_only_syndic_changes_incident_status(app, acting_as):
    incident = Incident.query.filter_by(title="Fuite d'eau parking").first()
    with acting_as(RESIDENT):
        with pytest.raises(PermissionDeniedError):
            update_incident(incident.id, {"status": "resolved"})
        updated = update_incident(incident.id, {"description": "Infiltration niveau -1, place 12 et 13"})
    with acting_as(NEIGHBOUR):
        with pytest.raises(NotFoundError):
            update_incident(incident.id, {"title": "Autre"})

    assert "place 12 et 13" in updated.description


def test_review_document_approve_assigns_residence(app, acting_as):
    submission = DocumentSubmission.query.filter_by(status=SubmissionStatus.PENDING).first()
    vacant = Residence.query.filter_by(name="Résidence Yasmine").first()
    with acting_as(ADMIN):
        reviewed = review_document(submission.id, "approve", vacant.id)

    assert reviewed.status == SubmissionStatus.APPROVED
    assert db.session.get(Residence, vacant.id).syndic_user_id == submission.user_id
    assert db.session.get(Profile, submission.user_id).verified is True
    assert resolve_residence_id(submission.user_id) == vacant.id


def test_review_document_refuses_held_residence(app, acting_as):
    submission = DocumentSubmission.query.filter_by(status=SubmissionStatus.PENDING).first()
    held = Residence.query.filter_by(name="Résidence Al Amal").first()
    with acting_as(ADMIN):
        with pytest.raises(ValueError, match="another syndic"):
            review_document(submission.id, "approve", held.id)
        with pytest.raises(ValueError, match="reason"):
            review_document(submission.id, "reject")
        rejected = review_document(submission.id, "reject", reason="Procès-verbal illisible")

    assert rejected.status == SubmissionStatus.REJECTED
    assert db.session.get(Residence, held.id).syndic_user_id != submission.user_id
    assert db.session.get(Profile, submission.user_id).verified is False


def test_review_document_is_admin_only(app, acting_as):
    submission = DocumentSubmission.query.first()
    with acting_as(SYNDIC):
        with pytest.raises(PermissionDeniedError):
            review_document(submission.id, "reject", reason="x")


def test_create_resident_issues_access_code(app, acting_as):
    with acting_as(SYNDIC):
        created = create_resident(
            {"full_name": "Leila Fassi", "email": "Leila.Fassi@example.com", "apartment_number": "b2"}
        )
        with pytest.raises(ValueError, match="already assigned"):
            create_resident({"full_name": "Autre", "email": "autre@example.com", "apartment_number": "B2"})

    assert created.email_sent is False
    assert len(created.code) == 6
    assert created.link.apartment_number == "B2"
    assert created.profile.email == "leila.fassi@example.com"
    assert created.profile.resident_onboarding_code == created.code


def test_remove_resident_rules(app, acting_as):
    resident_id = User.query.filter_by(email=RESIDENT).first().id
    with_fees_id = User.query.filter_by(email="salma.kettani@syndic.local").first().id
    newcomer_id = User.query.filter_by(email="nouveau@syndic.local").first().id
    syndic_id = User.query.filter_by(email=SYNDIC).first().id

    with acting_as(SYNDIC):
        with pytest.raises(ValueError, match="contributions on record"):
            remove_resident(resident_id)
        with pytest.raises(ValueError, match="yourself"):
            remove_resident(syndic_id)
        assert remove_resident(with_fees_id) is False
        assert remove_resident(newcomer_id) is True

    assert db.session.get(User, with_fees_id) is not None
    assert db.session.get(User, newcomer_id) is None
    assert Fee.query.filter_by(user_id=with_fees_id).first().profile_residence_id is None
