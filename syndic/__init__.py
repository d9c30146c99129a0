from __future__ import annotations

from datetime import date

import click
from flask import Flask, g, redirect, render_template, url_for
from flask_login import login_required

from syndic.admin import admin_bp, onboarding_bp
from syndic.community import community_bp
from syndic.core.auth import auth_bp
from syndic.core.config import Config
from syndic.core.extensions import db, login_manager, migrate
from syndic.core.i18n import get_locale, translate
from syndic.core.logging import configure_logging, get_logger, register_request_logging
from syndic.core.models import Residence, User, UserRole, seed_demo_data
from syndic.core.permissions import require_profile
from syndic.core.tenancy import load_tenant_context
from syndic.core.utils import money
from syndic.finance import finance_api_bp, finance_bp
from syndic.mobile import mobile_bp

log = get_logger(__name__)


def create_app(config_object: type[Config] | None = None) -> Flask:
    app = Flask(__name__)
    app.config.from_object(config_object or Config)
    configure_logging(app.config.get("LOG_LEVEL", "INFO"), app.config.get("LOG_FORMAT", "console"))

    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)

    app.before_request(load_tenant_context)
    register_request_logging(app)
    app.context_processor(_template_context)

    app.register_blueprint(auth_bp)
    app.register_blueprint(finance_bp)
    app.register_blueprint(finance_api_bp)
    app.register_blueprint(community_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(onboarding_bp)
    app.register_blueprint(mobile_bp)

    register_cli(app)
    register_routes(app)
    log.info("app_created", env=app.config.get("APP_ENV"))
    return app


def register_routes(app: Flask) -> None:
    @app.get("/")
    def home():
        return redirect(url_for("dashboard_page"))

    @app.get("/dashboard")
    @login_required
    @require_profile
    def dashboard_page():
        from syndic.community.services import list_announcements
        from syndic.finance.services import dashboard_stats, resident_dashboard

        profile = g.profile
        if profile.role == UserRole.ADMIN:
            return redirect(url_for("admin.documents_page"))
        if profile.role == UserRole.SYNDIC and g.residence is None:
            return redirect(url_for("onboarding.onboarding_page"))
        if g.residence is None:
            return render_template("dashboard.html", stats=None, resident=None, announcements=[])
        if profile.role == UserRole.RESIDENT:
            return render_template(
                "dashboard.html",
                stats=None,
                resident=resident_dashboard(profile),
                announcements=list_announcements(5),
            )
        return render_template(
            "dashboard.html",
            stats=dashboard_stats(profile),
            resident=None,
            announcements=list_announcements(5),
        )

    @app.errorhandler(403)
    def forbidden(_error):
        return render_template("errors/403.html"), 403

    @app.errorhandler(404)
    def not_found(_error):
        return render_template("errors/404.html"), 404


def register_cli(app: Flask) -> None:
    @app.cli.command("seed-demo")
    @click.option("--reset", is_flag=True, help="Delete existing data before seed.")
    def seed_demo(reset: bool) -> None:
        """Seed demo residences, residents and ledger entries."""
        if reset:
            db.drop_all()
            db.create_all()
        if not Residence.query.first():
            seed_demo_data(db.session)
            click.echo("Demo data seeded.")
        else:
            click.echo("Seed skipped: existing residences found.")

    @app.cli.command("fees-mark-overdue")
    @click.option("--date", "as_of", type=click.DateTime(formats=["%Y-%m-%d"]), default=None)
    def fees_mark_overdue(as_of) -> None:
        """Flag unpaid fees whose due date has passed."""
        from syndic.finance.services import mark_overdue_fees

        count = mark_overdue_fees(as_of.date() if as_of else date.today())
        click.echo(f"Fees marked overdue: {count}")

    @app.cli.command("fees-send-reminders")
    @click.option("--date", "as_of", type=click.DateTime(formats=["%Y-%m-%d"]), default=None)
    @click.option("--residence-id", type=int, default=None, help="Only this residence.")
    def fees_send_reminders(as_of, residence_id: int | None) -> None:
        """Email payment reminders for fees due soon, due today or overdue."""
        from syndic.finance.services import send_fee_reminders

        count = send_fee_reminders(as_of.date() if as_of else date.today(), residence_id)
        click.echo(f"Reminders sent: {count}")

    @app.cli.command("contributions-generate")
    @click.option("--year", type=int, required=True)
    @click.option("--month", type=int, required=True)
    @click.option("--residence-id", type=int, default=None, help="Only this residence.")
    def contributions_generate(year: int, month: int, residence_id: int | None) -> None:
        """Create the period's contributions for every residence with a plan."""
        from syndic.core.utils import month_bounds
        from syndic.finance.services import generate_contributions

        start, end = month_bounds(year, month)
        query = Residence.query
        if residence_id:
            query = query.filter_by(id=residence_id)
        residences = query.order_by(Residence.id.asc()).all()
        if not residences:
            click.echo("No residences found.")
            return
        for residence in residences:
            try:
                result = generate_contributions(start, end, residence=residence)
            except ValueError as exc:
                click.echo(f"[{residence.name}] skipped: {exc}")
                continue
            click.echo(
                f"[{residence.name}] {result.period_start} - {result.period_end} "
                f"created={result.created} existing={result.existing}"
            )

    @app.cli.command("contributions-apply-late-fees")
    @click.option("--date", "as_of", type=click.DateTime(formats=["%Y-%m-%d"]), default=None)
    def contributions_apply_late_fees(as_of) -> None:
        """Add plan late fees to contributions still unpaid after the grace period."""
        from syndic.finance.services import apply_late_fees

        count = apply_late_fees(as_of.date() if as_of else date.today())
        click.echo(f"Late fees applied: {count}")


def _template_context() -> dict[str, object]:
    return {
        "t": translate,
        "current_lang": get_locale(),
        "money": money,
    }


@login_manager.user_loader
def load_user(user_id: str) -> User | None:
    return db.session.get(User, int(user_id))
