"""Bearer-token sign-in for the mobile app.

Residents have no password: they receive a short one-time code by email and
trade it for a signed token that the app sends as ``Authorization: Bearer``.
"""

from __future__ import annotations

from functools import wraps

from flask import request

from syndic.community.services import request_onboarding_code, verify_onboarding_code
from syndic.core.api import json_payload, ok
from syndic.core.errors import AuthenticationError
from syndic.core.extensions import db
from syndic.core.logging import get_logger
from syndic.core.models import Profile, User
from syndic.core.tenancy import bind_tenant
from syndic.core.tokens import issue_mobile_token, read_mobile_token
from syndic.mobile import mobile_bp

log = get_logger(__name__)


def _bearer_token() -> str:
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthenticationError("Unauthorized")
    return token.strip()


def mobile_auth_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        user_id = read_mobile_token(_bearer_token())
        user = db.session.get(User, user_id)
        if user is None or not user.is_active:
            raise AuthenticationError("Unauthorized")
        bind_tenant(user)
        return fn(*args, **kwargs)

    return wrapper


def profile_block(profile: Profile) -> dict[str, object]:
    return {
        "id": profile.id,
        "full_name": profile.full_name,
        "email": profile.email,
        "phone_number": profile.phone_number,
        "role": profile.role.value,
        "verified": profile.verified,
        "email_verified": profile.email_verified,
        "onboarding_completed": profile.onboarding_completed,
    }


@mobile_bp.post("/auth/check-email")
def check_email():
    email = str(json_payload().get("email") or "").strip().lower()
    if not email:
        raise ValueError("Email is required")
    user = User.query.filter_by(email=email).first()
    if user is None or user.profile is None:
        return ok({"exists": False, "role": None})
    return ok({"exists": True, "role": user.profile.role.value, "has_password": bool(user.password_hash)})


@mobile_bp.post("/auth/resend-otp")
def resend_otp():
    email_sent = request_onboarding_code(str(json_payload().get("email") or ""))
    return ok({"email_sent": email_sent})


@mobile_bp.post("/auth/verify-otp")
def verify_otp():
    payload = json_payload()
    profile = verify_onboarding_code(str(payload.get("email") or ""), str(payload.get("code") or ""))
    log.info("mobile_signed_in", user_id=profile.id)
    return ok(
        {
            "token": issue_mobile_token(profile.id),
            "userId": profile.id,
            "profile": profile_block(profile),
        }
    )
