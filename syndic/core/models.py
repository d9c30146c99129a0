from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum

from flask_login import UserMixin
from sqlalchemy import CheckConstraint, Enum as SAEnum, ForeignKey, Index, UniqueConstraint, event, inspect, text
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates
from werkzeug.security import generate_password_hash

from syndic.core.demo_people import demo_residents
from syndic.core.extensions import db


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _enum_values(enum_cls: type[Enum]) -> list[str]:
    return [member.value for member in enum_cls]


def _enum(enum_cls: type[Enum], name: str) -> SAEnum:
    return SAEnum(enum_cls, name=name, values_callable=_enum_values)


class UserRole(str, Enum):
    SYNDIC = "syndic"
    RESIDENT = "resident"
    GUARD = "guard"
    ADMIN = "admin"


class FeeType(str, Enum):
    ONE_TIME = "one_time"
    FINE = "fine"
    SPECIAL = "special"
    DEPOSIT = "deposit"
    UTILITY = "utility"


class FeeStatus(str, Enum):
    UNPAID = "unpaid"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class PeriodType(str, Enum):
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    SEMI_ANNUAL = "semi_annual"
    ANNUAL = "annual"


class ContributionStatus(str, Enum):
    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class PaymentType(str, Enum):
    CONTRIBUTION = "contribution"
    FEE = "fee"
    FINE = "fine"
    DEPOSIT = "deposit"
    REFUND = "refund"


class PaymentMethod(str, Enum):
    CASH = "cash"
    BANK_TRANSFER = "bank_transfer"
    CHECK = "check"
    CARD = "card"
    MOBILE_MONEY = "mobile_money"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class ExpenseStatus(str, Enum):
    DRAFT = "draft"
    APPROVED = "approved"
    PAID = "paid"
    CANCELLED = "cancelled"


class FundSource(str, Enum):
    CASH = "cash"
    BANK = "bank"


class TransactionType(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"
    ADJUSTMENT = "adjustment"


class IncidentStatus(str, Enum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    CLOSED = "closed"


class ComplaintReason(str, Enum):
    NOISE = "noise"
    TRASH = "trash"
    BEHAVIOR = "behavior"
    PARKING = "parking"
    PETS = "pets"
    PROPERTY_DAMAGE = "property_damage"
    OTHER = "other"


class ComplaintPrivacy(str, Enum):
    PRIVATE = "private"
    ANONYMOUS = "anonymous"


class ComplaintStatus(str, Enum):
    SUBMITTED = "submitted"
    REVIEWED = "reviewed"
    RESOLVED = "resolved"


class SubmissionStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


OPEN_INCIDENT_STATUSES = (IncidentStatus.OPEN, IncidentStatus.IN_PROGRESS)
OUTSTANDING_FEE_STATUSES = (FeeStatus.UNPAID, FeeStatus.OVERDUE)
OUTSTANDING_CONTRIBUTION_STATUSES = (
    ContributionStatus.PENDING,
    ContributionStatus.PARTIAL,
    ContributionStatus.OVERDUE,
)


class User(UserMixin, db.Model):
    __tablename__ = "user_account"

    id: Mapped[int] = mapped_column(primary_key=True)
    email: Mapped[str] = mapped_column(db.String(255), unique=True, nullable=False)
    full_name: Mapped[str] = mapped_column(db.String(120), nullable=False)
    # Residents onboarded by OTP never set a password.
    password_hash: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    is_active: Mapped[bool] = mapped_column(default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    profile = relationship("Profile", back_populates="user", uselist=False, cascade="all, delete-orphan")

    @validates("email")
    def normalize_email(self, _key, value: str) -> str:
        return (value or "").strip().lower()


class Profile(db.Model):
    __tablename__ = "profile"

    id: Mapped[int] = mapped_column(ForeignKey("user_account.id"), primary_key=True)
    role: Mapped[UserRole] = mapped_column(_enum(UserRole, "user_role"), nullable=False, default=UserRole.RESIDENT)
    phone_number: Mapped[str] = mapped_column(db.String(40), nullable=False, default="")
    onboarding_completed: Mapped[bool] = mapped_column(nullable=False, default=False)
    verified: Mapped[bool] = mapped_column(nullable=False, default=False)
    email_verified: Mapped[bool] = mapped_column(nullable=False, default=False)
    resident_onboarding_code: Mapped[str | None] = mapped_column(db.String(6), nullable=True)
    resident_onboarding_code_expires_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)

    user = relationship("User", back_populates="profile")
    residence_links = relationship("ProfileResidence", back_populates="profile", cascade="all, delete-orphan")

    @property
    def full_name(self) -> str:
        return self.user.full_name if self.user else ""

    @property
    def email(self) -> str:
        return self.user.email if self.user else ""


class Residence(db.Model):
    __tablename__ = "residence"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(db.String(160), nullable=False)
    address: Mapped[str] = mapped_column(db.String(255), nullable=False)
    city: Mapped[str] = mapped_column(db.String(120), nullable=False)
    bank_account_rib: Mapped[str | None] = mapped_column(db.String(40), nullable=True)
    total_apartments: Mapped[int | None] = mapped_column(nullable=True)
    # One syndic manages at most one residence.
    syndic_user_id: Mapped[int | None] = mapped_column(
        ForeignKey("user_account.id"), nullable=True, unique=True
    )
    guard_user_id: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    syndic = relationship("User", foreign_keys=[syndic_user_id])
    guard = relationship("User", foreign_keys=[guard_user_id])
    links = relationship("ProfileResidence", back_populates="residence")


class ProfileResidence(db.Model):
    __tablename__ = "profile_residence"
    __table_args__ = (
        UniqueConstraint("profile_id", "residence_id", "apartment_number", name="uq_profile_residence_apartment"),
        Index(
            "ix_profile_residence_apartment_unique",
            "residence_id",
            "apartment_number",
            unique=True,
            sqlite_where=text("apartment_number IS NOT NULL"),
            postgresql_where=text("apartment_number IS NOT NULL"),
        ),
        Index(
            "ix_profile_residence_no_apartment_unique",
            "profile_id",
            "residence_id",
            unique=True,
            sqlite_where=text("apartment_number IS NULL"),
            postgresql_where=text("apartment_number IS NULL"),
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    profile_id: Mapped[int] = mapped_column(ForeignKey("profile.id"), nullable=False, index=True)
    residence_id: Mapped[int] = mapped_column(ForeignKey("residence.id"), nullable=False, index=True)
    apartment_number: Mapped[str | None] = mapped_column(db.String(20), nullable=True)
    verified: Mapped[bool] = mapped_column(nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    profile = relationship("Profile", back_populates="residence_links")
    residence = relationship("Residence", back_populates="links")

    @validates("apartment_number")
    def normalize_apartment(self, _key, value: str | None) -> str | None:
        raw = (value or "").strip().upper()
        return raw or None


class Fee(db.Model):
    __tablename__ = "fee"
    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_fee_amount_positive"),
        Index("ix_fee_residence_status_due", "residence_id", "status", "due_date"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    residence_id: Mapped[int] = mapped_column(ForeignKey("residence.id"), nullable=False, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("user_account.id"), nullable=False, index=True)
    profile_residence_id: Mapped[int | None] = mapped_column(ForeignKey("profile_residence.id"), nullable=True)
    apartment_number: Mapped[str | None] = mapped_column(db.String(20), nullable=True)
    title: Mapped[str] = mapped_column(db.String(160), nullable=False)
    description: Mapped[str] = mapped_column(db.Text, nullable=False, default="")
    fee_type: Mapped[FeeType] = mapped_column(_enum(FeeType, "fee_type"), nullable=False, default=FeeType.ONE_TIME)
    amount: Mapped[Decimal] = mapped_column(db.Numeric(12, 2), nullable=False)
    due_date: Mapped[date] = mapped_column(nullable=False)
    status: Mapped[FeeStatus] = mapped_column(_enum(FeeStatus, "fee_status"), nullable=False, default=FeeStatus.UNPAID)
    paid_date: Mapped[date | None] = mapped_column(nullable=True)
    reason: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    contribution_month: Mapped[int | None] = mapped_column(nullable=True)
    contribution_year: Mapped[int | None] = mapped_column(nullable=True)
    created_by: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    user = relationship("User", foreign_keys=[user_id])

    @validates("amount")
    def validate_amount(self, _key, value):
        if value is not None and Decimal(value) < 0:
            raise ValueError("Fee amount cannot be negative")
        return value


class ContributionPlan(db.Model):
    __tablename__ = "contribution_plan"
    __table_args__ = (
        CheckConstraint("amount_per_period >= 0", name="ck_plan_amount_positive"),
        CheckConstraint("end_date IS NULL OR end_date >= start_date", name="ck_plan_dates"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    residence_id: Mapped[int] = mapped_column(ForeignKey("residence.id"), nullable=False, index=True)
    plan_name: Mapped[str] = mapped_column(db.String(160), nullable=False)
    description: Mapped[str] = mapped_column(db.Text, nullable=False, default="")
    amount_per_period: Mapped[Decimal] = mapped_column(db.Numeric(12, 2), nullable=False)
    period_type: Mapped[PeriodType] = mapped_column(
        _enum(PeriodType, "period_type"), nullable=False, default=PeriodType.MONTHLY
    )
    start_date: Mapped[date] = mapped_column(nullable=False)
    end_date: Mapped[date | None] = mapped_column(nullable=True)
    is_active: Mapped[bool] = mapped_column(nullable=False, default=True)
    due_day: Mapped[int] = mapped_column(nullable=False, default=1)
    late_fee_enabled: Mapped[bool] = mapped_column(nullable=False, default=False)
    late_fee_amount: Mapped[Decimal] = mapped_column(db.Numeric(12, 2), nullable=False, default=0)
    late_fee_days_after: Mapped[int] = mapped_column(nullable=False, default=0)
    created_by: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    @validates("due_day")
    def validate_due_day(self, _key, value: int) -> int:
        if value is not None and not 1 <= int(value) <= 31:
            raise ValueError("Due day must be between 1 and 31")
        return value

    def covers(self, period_start: date, period_end: date) -> bool:
        if self.start_date > period_end:
            return False
        return self.end_date is None or self.end_date >= period_start


class Contribution(db.Model):
    __tablename__ = "contribution"
    __table_args__ = (
        CheckConstraint("amount_due >= 0", name="ck_contribution_amount_positive"),
        UniqueConstraint(
            "profile_residence_id",
            "period_start",
            "period_end",
            name="uq_contribution_link_period",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    residence_id: Mapped[int] = mapped_column(ForeignKey("residence.id"), nullable=False, index=True)
    profile_residence_id: Mapped[int] = mapped_column(ForeignKey("profile_residence.id"), nullable=False, index=True)
    contribution_plan_id: Mapped[int | None] = mapped_column(ForeignKey("contribution_plan.id"), nullable=True)
    apartment_number: Mapped[str] = mapped_column(db.String(20), nullable=False)
    period_start: Mapped[date] = mapped_column(nullable=False)
    period_end: Mapped[date] = mapped_column(nullable=False)
    amount_due: Mapped[Decimal] = mapped_column(db.Numeric(12, 2), nullable=False)
    amount_paid: Mapped[Decimal] = mapped_column(db.Numeric(12, 2), nullable=False, default=0)
    late_fee_applied: Mapped[bool] = mapped_column(nullable=False, default=False)
    status: Mapped[ContributionStatus] = mapped_column(
        _enum(ContributionStatus, "contribution_status"),
        nullable=False,
        default=ContributionStatus.PENDING,
    )
    due_date: Mapped[date] = mapped_column(nullable=False)
    paid_date: Mapped[date | None] = mapped_column(nullable=True)
    is_historical: Mapped[bool] = mapped_column(nullable=False, default=False)
    notes: Mapped[str | None] = mapped_column(db.Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    link = relationship("ProfileResidence")
    plan = relationship("ContributionPlan")

    @property
    def outstanding(self) -> Decimal:
        return max(Decimal(self.amount_due) - Decimal(self.amount_paid or 0), Decimal("0.00"))


class Payment(db.Model):
    __tablename__ = "payment"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_payment_amount_positive"),
        UniqueConstraint("residence_id", "receipt_number", name="uq_payment_residence_receipt"),
        Index("ix_payment_residence_status_paid", "residence_id", "status", "paid_at"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    residence_id: Mapped[int] = mapped_column(ForeignKey("residence.id"), nullable=False, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("user_account.id"), nullable=False, index=True)
    fee_id: Mapped[int | None] = mapped_column(ForeignKey("fee.id"), nullable=True)
    contribution_id: Mapped[int | None] = mapped_column(ForeignKey("contribution.id"), nullable=True)
    apartment_number: Mapped[str | None] = mapped_column(db.String(20), nullable=True)
    amount: Mapped[Decimal] = mapped_column(db.Numeric(12, 2), nullable=False)
    payment_type: Mapped[PaymentType] = mapped_column(
        _enum(PaymentType, "payment_type"), nullable=False, default=PaymentType.FEE
    )
    method: Mapped[PaymentMethod] = mapped_column(
        _enum(PaymentMethod, "payment_method"), nullable=False, default=PaymentMethod.CASH
    )
    status: Mapped[PaymentStatus] = mapped_column(
        _enum(PaymentStatus, "payment_status"), nullable=False, default=PaymentStatus.PENDING
    )
    proof_url: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    receipt_number: Mapped[str | None] = mapped_column(db.String(40), nullable=True)
    paid_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    verified_by: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)
    verified_at: Mapped[datetime | None] = mapped_column(nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    allocated_amount: Mapped[Decimal] = mapped_column(db.Numeric(12, 2), nullable=False, default=0)
    credit_amount: Mapped[Decimal] = mapped_column(db.Numeric(12, 2), nullable=False, default=0)
    notes: Mapped[str | None] = mapped_column(db.Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    user = relationship("User", foreign_keys=[user_id])
    fee = relationship("Fee")
    contribution = relationship("Contribution")


class Expense(db.Model):
    __tablename__ = "expense"
    __table_args__ = (CheckConstraint("amount >= 0", name="ck_expense_amount_positive"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    residence_id: Mapped[int] = mapped_column(ForeignKey("residence.id"), nullable=False, index=True)
    description: Mapped[str] = mapped_column(db.String(255), nullable=False)
    category: Mapped[str] = mapped_column(db.String(60), nullable=False)
    amount: Mapped[Decimal] = mapped_column(db.Numeric(12, 2), nullable=False)
    attachment_url: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    expense_date: Mapped[date] = mapped_column(nullable=False, default=date.today)
    status: Mapped[ExpenseStatus] = mapped_column(
        _enum(ExpenseStatus, "expense_status"), nullable=False, default=ExpenseStatus.DRAFT
    )
    paid_from: Mapped[FundSource | None] = mapped_column(_enum(FundSource, "fund_source"), nullable=True)
    approved_by: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_by: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)


class FeeReminder(db.Model):
    """One reminder email sent for an outstanding fee."""

    __tablename__ = "fee_reminder"
    __table_args__ = (UniqueConstraint("fee_id", "sent_on", name="uq_fee_reminder_fee_day"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    fee_id: Mapped[int] = mapped_column(ForeignKey("fee.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("user_account.id"), nullable=False)
    reminder_type: Mapped[str] = mapped_column(db.String(20), nullable=False)
    days_before: Mapped[int] = mapped_column(nullable=False)
    sent_on: Mapped[date] = mapped_column(nullable=False, default=date.today)
    sent_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)


class TransactionHistory(db.Model):
    __tablename__ = "transaction_history"
    __table_args__ = (Index("ix_transaction_residence_created", "residence_id", "created_at"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    residence_id: Mapped[int] = mapped_column(ForeignKey("residence.id"), nullable=False)
    transaction_type: Mapped[TransactionType] = mapped_column(
        _enum(TransactionType, "transaction_type"), nullable=False
    )
    reference_table: Mapped[str] = mapped_column(db.String(40), nullable=False)
    reference_id: Mapped[int] = mapped_column(nullable=False)
    amount: Mapped[Decimal] = mapped_column(db.Numeric(12, 2), nullable=False)
    method: Mapped[str | None] = mapped_column(db.String(20), nullable=True)
    description: Mapped[str] = mapped_column(db.String(255), nullable=False, default="")
    created_by: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)


class BalanceSnapshot(db.Model):
    __tablename__ = "balance_snapshot"
    __table_args__ = (UniqueConstraint("residence_id", "period_start", name="uq_snapshot_residence_period"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    residence_id: Mapped[int] = mapped_column(ForeignKey("residence.id"), nullable=False, index=True)
    period_start: Mapped[date] = mapped_column(nullable=False)
    period_end: Mapped[date] = mapped_column(nullable=False)
    snapshot_date: Mapped[date] = mapped_column(nullable=False, default=date.today)
    cash_balance: Mapped[Decimal] = mapped_column(db.Numeric(12, 2), nullable=False, default=0)
    bank_balance: Mapped[Decimal] = mapped_column(db.Numeric(12, 2), nullable=False, default=0)
    contributions_collected: Mapped[Decimal] = mapped_column(db.Numeric(12, 2), nullable=False, default=0)
    fees_collected: Mapped[Decimal] = mapped_column(db.Numeric(12, 2), nullable=False, default=0)
    total_expenses: Mapped[Decimal] = mapped_column(db.Numeric(12, 2), nullable=False, default=0)
    net_change: Mapped[Decimal] = mapped_column(db.Numeric(12, 2), nullable=False, default=0)
    outstanding_contributions: Mapped[Decimal] = mapped_column(db.Numeric(12, 2), nullable=False, default=0)
    outstanding_fees: Mapped[Decimal] = mapped_column(db.Numeric(12, 2), nullable=False, default=0)
    notes: Mapped[str | None] = mapped_column(db.Text, nullable=True)
    created_by: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    @property
    def total_balance(self) -> Decimal:
        return Decimal(self.cash_balance) + Decimal(self.bank_balance)


class Incident(db.Model):
    __tablename__ = "incident"

    id: Mapped[int] = mapped_column(primary_key=True)
    residence_id: Mapped[int] = mapped_column(ForeignKey("residence.id"), nullable=False, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("user_account.id"), nullable=False)
    title: Mapped[str] = mapped_column(db.String(160), nullable=False)
    description: Mapped[str] = mapped_column(db.Text, nullable=False)
    photo_url: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    status: Mapped[IncidentStatus] = mapped_column(
        _enum(IncidentStatus, "incident_status"), nullable=False, default=IncidentStatus.OPEN
    )
    assigned_to: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)

    reporter = relationship("User", foreign_keys=[user_id])
    assignee = relationship("User", foreign_keys=[assigned_to])


class Complaint(db.Model):
    __tablename__ = "complaint"
    __table_args__ = (
        CheckConstraint("complainant_id <> complained_about_id", name="ck_complaint_not_self"),
        Index("ix_complaint_residence_status", "residence_id", "status"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    residence_id: Mapped[int] = mapped_column(ForeignKey("residence.id"), nullable=False)
    complainant_id: Mapped[int] = mapped_column(ForeignKey("user_account.id"), nullable=False)
    complained_about_id: Mapped[int] = mapped_column(ForeignKey("user_account.id"), nullable=False)
    reason: Mapped[ComplaintReason] = mapped_column(_enum(ComplaintReason, "complaint_reason"), nullable=False)
    privacy: Mapped[ComplaintPrivacy] = mapped_column(
        _enum(ComplaintPrivacy, "complaint_privacy"), nullable=False, default=ComplaintPrivacy.PRIVATE
    )
    title: Mapped[str] = mapped_column(db.String(160), nullable=False)
    description: Mapped[str] = mapped_column(db.Text, nullable=False)
    status: Mapped[ComplaintStatus] = mapped_column(
        _enum(ComplaintStatus, "complaint_status"), nullable=False, default=ComplaintStatus.SUBMITTED
    )
    reviewed_by: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    resolution_notes: Mapped[str | None] = mapped_column(db.Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)

    complainant = relationship("User", foreign_keys=[complainant_id])
    complained_about = relationship("User", foreign_keys=[complained_about_id])
    evidence = relationship(
        "ComplaintEvidence",
        back_populates="complaint",
        cascade="all, delete-orphan",
        order_by="ComplaintEvidence.id",
    )


class ComplaintEvidence(db.Model):
    __tablename__ = "complaint_evidence"
    __table_args__ = (
        CheckConstraint("file_type IN ('image', 'audio', 'video')", name="ck_complaint_evidence_file_type"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    complaint_id: Mapped[int] = mapped_column(ForeignKey("complaint.id"), nullable=False, index=True)
    file_url: Mapped[str] = mapped_column(db.String(255), nullable=False)
    file_name: Mapped[str] = mapped_column(db.String(255), nullable=False)
    file_type: Mapped[str] = mapped_column(db.String(10), nullable=False)
    file_size: Mapped[int] = mapped_column(nullable=False)
    mime_type: Mapped[str] = mapped_column(db.String(120), nullable=False)
    uploaded_by: Mapped[int] = mapped_column(ForeignKey("user_account.id"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    complaint = relationship("Complaint", back_populates="evidence")


class DocumentSubmission(db.Model):
    __tablename__ = "document_submission"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("user_account.id"), nullable=False, index=True)
    document_url: Mapped[str] = mapped_column(db.String(255), nullable=False)
    id_card_url: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    status: Mapped[SubmissionStatus] = mapped_column(
        _enum(SubmissionStatus, "submission_status"), nullable=False, default=SubmissionStatus.PENDING
    )
    submitted_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    reviewed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    reviewed_by: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    assigned_residence_id: Mapped[int | None] = mapped_column(ForeignKey("residence.id"), nullable=True)

    user = relationship("User", foreign_keys=[user_id])
    assigned_residence = relationship("Residence")


class Announcement(db.Model):
    __tablename__ = "announcement"

    id: Mapped[int] = mapped_column(primary_key=True)
    residence_id: Mapped[int] = mapped_column(ForeignKey("residence.id"), nullable=False, index=True)
    title: Mapped[str] = mapped_column(db.String(160), nullable=False)
    body: Mapped[str] = mapped_column(db.Text, nullable=False, default="")
    created_by: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)


def _payment_history_row(target: Payment) -> dict[str, object]:
    return {
        "residence_id": target.residence_id,
        "transaction_type": TransactionType.INCOME.value,
        "reference_table": "payment",
        "reference_id": target.id,
        "amount": target.amount,
        "method": PaymentMethod(target.method).value,
        "description": f"Payment {PaymentType(target.payment_type).value} apt {target.apartment_number or '-'}",
        "created_by": target.verified_by,
        "created_at": utcnow(),
    }


@event.listens_for(Payment, "after_insert")
def payment_after_insert(_mapper, connection, target: Payment) -> None:
    # Cash-desk payments are verified on creation.
    if target.status == PaymentStatus.VERIFIED:
        connection.execute(TransactionHistory.__table__.insert().values(**_payment_history_row(target)))


@event.listens_for(Payment, "after_update")
def payment_after_update(_mapper, connection, target: Payment) -> None:
    state = inspect(target)
    if state.attrs.status.history.has_changes() and target.status == PaymentStatus.VERIFIED:
        connection.execute(TransactionHistory.__table__.insert().values(**_payment_history_row(target)))


@event.listens_for(Expense, "after_update")
def expense_after_update(_mapper, connection, target: Expense) -> None:
    state = inspect(target)
    if state.attrs.status.history.has_changes() and target.status == ExpenseStatus.PAID:
        connection.execute(
            TransactionHistory.__table__.insert().values(
                residence_id=target.residence_id,
                transaction_type=TransactionType.EXPENSE.value,
                reference_table="expense",
                reference_id=target.id,
                amount=target.amount,
                method=FundSource(target.paid_from).value if target.paid_from else None,
                description=f"{target.category}: {target.description}",
                created_by=target.approved_by,
                created_at=utcnow(),
            )
        )


def _user_with_profile(
    session,
    email: str,
    full_name: str,
    role: UserRole,
    password: str | None = None,
    **profile_fields,
) -> User:
    user = User(
        email=email,
        full_name=full_name,
        password_hash=generate_password_hash(password) if password else None,
    )
    session.add(user)
    session.flush()
    session.add(Profile(id=user.id, role=role, **profile_fields))
    return user


def seed_demo_data(session) -> None:
    today = date.today()
    year_start = date(today.year, 1, 1)

    admin = _user_with_profile(
        session, "admin@syndic.local", "Admin Plateforme", UserRole.ADMIN, "admin123",
        verified=True, email_verified=True, onboarding_completed=True,
    )
    syndic = _user_with_profile(
        session, "syndic@syndic.local", "Karim Bennani", UserRole.SYNDIC, "syndic123",
        verified=True, email_verified=True, onboarding_completed=True, phone_number="+212600000001",
    )
    guard = _user_with_profile(
        session, "guard@syndic.local", "Hassan Idrissi", UserRole.GUARD, "guard123", verified=True,
    )
    resident = _user_with_profile(
        session, "resident@syndic.local", "Yassine Alaoui", UserRole.RESIDENT, "resident123",
        verified=True, email_verified=True, onboarding_completed=True, phone_number="+212600000002",
    )
    pending_syndic = _user_with_profile(
        session, "nouveau.syndic@syndic.local", "Nadia Tazi", UserRole.SYNDIC, "syndic123",
        email_verified=True,
    )

    residence = Residence(
        name="Résidence Al Amal",
        address="12 Rue des Orangers",
        city="Casablanca",
        bank_account_rib="011780000012345678901234",
        total_apartments=12,
        syndic_user_id=syndic.id,
        guard_user_id=guard.id,
    )
    vacant_residence = Residence(name="Résidence Yasmine", address="4 Avenue Hassan II", city="Rabat")
    session.add_all([residence, vacant_residence])
    session.flush()

    link_main = ProfileResidence(profile_id=resident.id, residence_id=residence.id, apartment_number="A1", verified=True)
    session.add_all(
        [
            link_main,
            ProfileResidence(profile_id=syndic.id, residence_id=residence.id, apartment_number=None, verified=True),
            ProfileResidence(profile_id=guard.id, residence_id=residence.id, apartment_number=None, verified=True),
        ]
    )

    neighbours: list[tuple[User, ProfileResidence]] = []
    for person in demo_residents(3):
        user = _user_with_profile(
            session, person["email"], person["full_name"], UserRole.RESIDENT, "resident123", verified=True,
        )
        link = ProfileResidence(
            profile_id=user.id, residence_id=residence.id, apartment_number=person["apartment"], verified=True,
        )
        session.add(link)
        neighbours.append((user, link))
    newcomer = _user_with_profile(session, "nouveau@syndic.local", "Imane Chraibi", UserRole.RESIDENT)
    session.add(ProfileResidence(profile_id=newcomer.id, residence_id=residence.id, apartment_number="B1"))
    session.flush()

    neighbour, neighbour_link = neighbours[0]
    other, other_link = neighbours[1]

    fee_elevator = Fee(
        residence_id=residence.id, user_id=resident.id, profile_residence_id=link_main.id, apartment_number="A1",
        title="Réparation ascenseur", fee_type=FeeType.SPECIAL, amount=Decimal("400.00"),
        due_date=today - timedelta(days=30), status=FeeStatus.PAID, paid_date=today - timedelta(days=20),
        created_by=syndic.id,
    )
    fee_facade = Fee(
        residence_id=residence.id, user_id=resident.id, profile_residence_id=link_main.id, apartment_number="A1",
        title="Nettoyage façade", fee_type=FeeType.ONE_TIME, amount=Decimal("300.00"),
        due_date=today + timedelta(days=10), status=FeeStatus.UNPAID, created_by=syndic.id,
    )
    fee_parking = Fee(
        residence_id=residence.id, user_id=resident.id, profile_residence_id=link_main.id, apartment_number="A1",
        title="Amende parking", fee_type=FeeType.FINE, amount=Decimal("200.00"),
        due_date=today - timedelta(days=15), status=FeeStatus.OVERDUE, reason="Stationnement sur place pompiers",
        created_by=syndic.id,
    )
    fee_neighbour = Fee(
        residence_id=residence.id, user_id=neighbour.id, profile_residence_id=neighbour_link.id,
        apartment_number=neighbour_link.apartment_number, title="Réparation ascenseur", fee_type=FeeType.SPECIAL,
        amount=Decimal("400.00"), due_date=today - timedelta(days=30), status=FeeStatus.PAID,
        paid_date=today - timedelta(days=25), created_by=syndic.id,
    )
    fee_other = Fee(
        residence_id=residence.id, user_id=other.id, profile_residence_id=other_link.id,
        apartment_number=other_link.apartment_number, title="Réparation ascenseur", fee_type=FeeType.SPECIAL,
        amount=Decimal("400.00"), due_date=today + timedelta(days=5), status=FeeStatus.UNPAID, created_by=syndic.id,
    )
    session.add_all([fee_elevator, fee_facade, fee_parking, fee_neighbour, fee_other])

    plan = ContributionPlan(
        residence_id=residence.id, plan_name="Charges mensuelles", description="Entretien et gardiennage",
        amount_per_period=Decimal("250.00"), period_type=PeriodType.MONTHLY, start_date=year_start,
        due_day=5, late_fee_enabled=True, late_fee_amount=Decimal("50.00"), late_fee_days_after=10,
        created_by=syndic.id,
    )
    session.add(plan)
    session.flush()

    january = Contribution(
        residence_id=residence.id, profile_residence_id=link_main.id, contribution_plan_id=plan.id,
        apartment_number="A1", period_start=year_start, period_end=date(today.year, 1, 31),
        amount_due=Decimal("250.00"), amount_paid=Decimal("250.00"), status=ContributionStatus.PAID,
        due_date=date(today.year, 1, 5), paid_date=date(today.year, 1, 4),
    )
    february = Contribution(
        residence_id=residence.id, profile_residence_id=link_main.id, contribution_plan_id=plan.id,
        apartment_number="A1", period_start=date(today.year, 2, 1), period_end=date(today.year, 2, 28),
        amount_due=Decimal("250.00"), amount_paid=Decimal("100.00"), status=ContributionStatus.PARTIAL,
        due_date=date(today.year, 2, 5),
    )
    session.add_all([january, february])
    session.flush()

    payments = [
        Payment(
            residence_id=residence.id, user_id=resident.id, fee_id=fee_elevator.id, apartment_number="A1",
            amount=Decimal("400.00"), payment_type=PaymentType.FEE, method=PaymentMethod.CASH,
            status=PaymentStatus.VERIFIED, receipt_number=f"R-{today.year}-0001",
            paid_at=utcnow() - timedelta(days=20), verified_by=syndic.id, verified_at=utcnow() - timedelta(days=20),
        ),
        Payment(
            residence_id=residence.id, user_id=neighbour.id, fee_id=fee_neighbour.id,
            apartment_number=neighbour_link.apartment_number, amount=Decimal("400.00"),
            payment_type=PaymentType.FEE, method=PaymentMethod.BANK_TRANSFER, status=PaymentStatus.VERIFIED,
            receipt_number=f"R-{today.year}-0002", paid_at=utcnow() - timedelta(days=25),
            verified_by=syndic.id, verified_at=utcnow() - timedelta(days=24),
        ),
        Payment(
            residence_id=residence.id, user_id=resident.id, contribution_id=january.id, apartment_number="A1",
            amount=Decimal("250.00"), payment_type=PaymentType.CONTRIBUTION, method=PaymentMethod.CASH,
            status=PaymentStatus.VERIFIED, receipt_number=f"R-{today.year}-0003",
            paid_at=datetime(today.year, 1, 4, 10, 0, tzinfo=timezone.utc), verified_by=syndic.id,
            verified_at=datetime(today.year, 1, 4, 10, 0, tzinfo=timezone.utc),
        ),
        Payment(
            residence_id=residence.id, user_id=resident.id, contribution_id=february.id, apartment_number="A1",
            amount=Decimal("100.00"), payment_type=PaymentType.CONTRIBUTION, method=PaymentMethod.CASH,
            status=PaymentStatus.VERIFIED, receipt_number=f"R-{today.year}-0004",
            paid_at=datetime(today.year, 2, 6, 10, 0, tzinfo=timezone.utc), verified_by=syndic.id,
            verified_at=datetime(today.year, 2, 6, 10, 0, tzinfo=timezone.utc),
        ),
        Payment(
            residence_id=residence.id, user_id=resident.id, fee_id=fee_facade.id, apartment_number="A1",
            amount=Decimal("300.00"), payment_type=PaymentType.FEE, method=PaymentMethod.BANK_TRANSFER,
            status=PaymentStatus.PENDING, proof_url="storage/proofs/virement-a1.pdf",
            paid_at=utcnow() - timedelta(days=1),
        ),
    ]
    for payment in payments:
        if payment.status == PaymentStatus.VERIFIED:
            payment.allocated_amount = payment.amount
    session.add_all(payments)

    electricity = Expense(
        residence_id=residence.id, description="Électricité parties communes", category="utilities",
        amount=Decimal("350.00"), expense_date=today - timedelta(days=12), status=ExpenseStatus.DRAFT,
        created_by=syndic.id,
    )
    session.add_all(
        [
            electricity,
            Expense(
                residence_id=residence.id, description="Entretien jardin", category="maintenance",
                amount=Decimal("200.00"), expense_date=today - timedelta(days=3), status=ExpenseStatus.APPROVED,
                approved_by=syndic.id, approved_at=utcnow(), created_by=syndic.id,
            ),
            Expense(
                residence_id=residence.id, description="Peinture cage d'escalier", category="repairs",
                amount=Decimal("1200.00"), expense_date=today, status=ExpenseStatus.DRAFT, created_by=syndic.id,
            ),
        ]
    )
    session.flush()
    # Paid through an update so the ledger listener records it.
    electricity.status = ExpenseStatus.PAID
    electricity.paid_from = FundSource.CASH
    electricity.approved_by = syndic.id
    electricity.approved_at = utcnow()
    electricity.paid_at = utcnow()

    session.add_all(
        [
            Incident(
                residence_id=residence.id, user_id=resident.id, title="Fuite d'eau parking",
                description="Infiltration au niveau -1 près de la place 12", status=IncidentStatus.OPEN,
            ),
            Incident(
                residence_id=residence.id, user_id=neighbour.id, title="Lampe hall d'entrée",
                description="Ampoule grillée dans le hall", status=IncidentStatus.IN_PROGRESS,
                assigned_to=guard.id,
            ),
            Complaint(
                residence_id=residence.id, complainant_id=resident.id, complained_about_id=neighbour.id,
                reason=ComplaintReason.NOISE, privacy=ComplaintPrivacy.PRIVATE, title="Bruit nocturne",
                description="Musique forte après minuit",
            ),
            Announcement(
                residence_id=residence.id, title="Assemblée générale",
                body="L'assemblée générale annuelle se tiendra dans le hall.", created_by=syndic.id,
            ),
            DocumentSubmission(
                user_id=pending_syndic.id, document_url="storage/documents/pv-demo.pdf",
                id_card_url="storage/documents/cin-demo.jpg", status=SubmissionStatus.PENDING,
            ),
        ]
    )
    session.commit()
