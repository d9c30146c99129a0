from __future__ import annotations

import sys
from contextlib import contextmanager
from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest
from flask import g

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from syndic import create_app
from syndic.core.config import Config
from syndic.core.extensions import db
from syndic.core.models import (
    Fee,
    FeeStatus,
    FeeType,
    Profile,
    ProfileResidence,
    Residence,
    User,
    UserRole,
    seed_demo_data,
)
from syndic.core.tenancy import bind_tenant
from syndic.core.tokens import issue_mobile_token


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SECRET_KEY = "test-secret"
    APP_ENV = "test"
    LOG_LEVEL = "WARNING"
    SMTP_HOST = ""


@pytest.fixture
def app(tmp_path):
    app = create_app(TestConfig)
    app.instance_path = str(tmp_path)
    with app.app_context():
        db.create_all()
        seed_demo_data(db.session)
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def _login_as(client, email: str, password: str):
    def _login():
        return client.post(
            "/auth/login",
            data={"email": email, "password": password},
            follow_redirects=True,
        )

    return _login


@pytest.fixture
def login_syndic(client):
    return _login_as(client, "syndic@syndic.local", "syndic123")


@pytest.fixture
def login_resident(client):
    return _login_as(client, "resident@syndic.local", "resident123")


@pytest.fixture
def login_guard(client):
    return _login_as(client, "guard@syndic.local", "guard123")


@pytest.fixture
def login_admin(client):
    return _login_as(client, "admin@syndic.local", "admin123")


@pytest.fixture
def acting_as(app):
    """Run service calls with the tenant context of the user owning ``email``."""

    @contextmanager
    def _acting_as(email: str):
        user = User.query.filter_by(email=email).first()
        bind_tenant(user)
        try:
            yield user
        finally:
            g.user = g.profile = g.residence = None

    return _acting_as


@pytest.fixture
def mobile_headers(app):
    def _headers(email: str) -> dict[str, str]:
        user = User.query.filter_by(email=email).first()
        return {"Authorization": f"Bearer {issue_mobile_token(user.id)}"}

    return _headers


@pytest.fixture
def second_residence_fee(app):
    residence = Residence(name="Résidence Atlas", address="1 Boulevard Zerktouni", city="Marrakech")
    user = User(email="atlas@example.com", full_name="Rachid Atlas", password_hash="x")
    db.session.add_all([residence, user])
    db.session.flush()
    db.session.add(Profile(id=user.id, role=UserRole.RESIDENT, verified=True))
    link = ProfileResidence(profile_id=user.id, residence_id=residence.id, apartment_number="C1", verified=True)
    db.session.add(link)
    db.session.flush()
    fee = Fee(
        residence_id=residence.id,
        user_id=user.id,
        profile_residence_id=link.id,
        apartment_number="C1",
        title="Atlas fee",
        fee_type=FeeType.ONE_TIME,
        amount=Decimal("100.00"),
        due_date=date.today(),
        status=FeeStatus.UNPAID,
    )
    db.session.add(fee)
    db.session.commit()
    return fee.id
